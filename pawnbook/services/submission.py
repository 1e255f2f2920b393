"""Loan submission - turns a reviewed wizard draft into customer, item, loan and NEW_LOAN fact"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from pawnbook.config import Settings, settings as default_settings
from pawnbook.domain.enums import TransactionType
from pawnbook.domain.exceptions import ConflictError, DomainException, SubmissionError, ValidationError
from pawnbook.domain.models import TransactionAmounts
from pawnbook.domain.wizard import LoanWizard, WizardStep
from pawnbook.infrastructure.database.models import DimCustomer, DimItem, DimLoan, FactTransaction
from pawnbook.infrastructure.database.session import UnitOfWork
from pawnbook.infrastructure.observability.logging import log_submission, log_submission_failure
from pawnbook.infrastructure.observability.metrics import record_loan_created, record_submission_failure
from pawnbook.services.customers import CustomerVersioningService
from pawnbook.services.loans import LoanLifecycleService
from pawnbook.services.transactions import TransactionRecorder
from pawnbook.utils.date_utils import Clock, local_date, utcnow

logger = logging.getLogger(__name__)

STEP_CUSTOMER = "customer"
STEP_ITEM = "item"
STEP_LOAN = "loan"
STEP_TRANSACTION = "transaction"
STEP_COMMIT = "commit"


@dataclass
class SubmissionResult:
    """Everything the review screen prints once a ticket is issued"""

    ticket_number: str
    scan_code: str
    loan: DimLoan
    customer: DimCustomer
    item: DimItem
    transaction: Optional[FactTransaction]
    replayed: bool = False


class LoanSubmissionService:
    def __init__(
        self,
        uow: UnitOfWork,
        customers: Optional[CustomerVersioningService] = None,
        loans: Optional[LoanLifecycleService] = None,
        recorder: Optional[TransactionRecorder] = None,
        clock: Clock = utcnow,
        config: Settings = default_settings,
    ):
        self.uow = uow
        self.clock = clock
        self.config = config
        self.recorder = recorder or TransactionRecorder(uow, clock=clock, config=config)
        self.customers = customers or CustomerVersioningService(uow, clock=clock, config=config)
        self.loans = loans or LoanLifecycleService(uow, recorder=self.recorder, clock=clock, config=config)

    def _gate(self, wizard: LoanWizard) -> None:
        if wizard.step != WizardStep.REVIEW:
            raise ValidationError("Loan can only be submitted from the review step", {"step": wizard.step.name})
        errors = wizard.validate_step(WizardStep.REVIEW)
        if self.config.screening_required:
            errors.update(wizard.screening.gate_errors())
        if errors:
            raise ValidationError("Loan draft is incomplete", errors)

    def _replay(self, loan: DimLoan) -> SubmissionResult:
        facts = [f for f in self.recorder.by_loan(loan.loan_key) if f.type_code == TransactionType.NEW_LOAN.value]
        logger.info("Submission replayed", extra={"loan_id": loan.loan_id})
        return SubmissionResult(
            ticket_number=loan.loan_id,
            scan_code=loan.loan_id,
            loan=loan,
            customer=loan.customer,
            item=loan.item,
            transaction=facts[0] if facts else None,
            replayed=True,
        )

    def submit(self, wizard: LoanWizard, request_id: Optional[str] = None) -> SubmissionResult:
        """
        Persist a reviewed draft as one transaction.

        Steps run in order: resolve or create the customer, create the item,
        create the loan, record the NEW_LOAN fact. A failure at any step rolls
        back all of them and raises SubmissionError naming that step. The
        wizard's idempotency key makes a retried submission return the loan it
        already created.
        """
        self._gate(wizard)

        existing = self.loans.find_by_idempotency_key(wizard.idempotency_key)
        if existing is not None:
            return self._replay(existing)

        start_time = time.time()
        completed: List[str] = []
        step = STEP_CUSTOMER
        try:
            with self.uow:
                if wizard.selected_customer is not None:
                    customer = self.customers.get_current(wizard.selected_customer.customer_key)
                else:
                    customer = self.customers.create_customer(wizard.customer.to_fields())
                if wizard.screening.all_completed:
                    applied = self.customers.apply_screening_result(
                        customer.customer_key, wizard.screening.completion_event()
                    )
                    customer = applied or customer
                completed.append(step)

                step = STEP_ITEM
                item = self.loans.create_item(wizard.item.to_fields())
                completed.append(step)

                step = STEP_LOAN
                quote = wizard.quote(local_date(self.clock(), self.config.timezone))
                loan = self.loans.create_loan(
                    {
                        "customer_key": customer.customer_key,
                        "item_key": item.item_key,
                        "principal": quote.principal,
                        "interest_rate": quote.interest_rate,
                        "term_days": quote.term_days,
                        "service_fee": quote.service_fee,
                        "interest_amount": quote.interest_amount,
                        "total_due": quote.total_due,
                        "loan_date": quote.loan_date,
                        "maturity_date": quote.maturity_date,
                        "purpose_of_loan": wizard.terms.purpose_of_loan,
                        "idempotency_key": wizard.idempotency_key,
                    }
                )
                completed.append(step)

                step = STEP_TRANSACTION
                txn = self.recorder.record(
                    TransactionType.NEW_LOAN,
                    TransactionAmounts(principal=loan.principal, service_fee=loan.service_fee),
                    customer_key=customer.customer_key,
                    loan_key=loan.loan_key,
                    item_key=item.item_key,
                    branch_key=loan.branch_key,
                    payment_method="cash",
                )
                completed.append(step)
                step = STEP_COMMIT

        except ConflictError as e:
            # A concurrent submission with the same key won the race
            winner = self.loans.find_by_idempotency_key(wizard.idempotency_key)
            if winner is not None:
                return self._replay(winner)
            raise self._failed(step, completed, e, request_id) from e
        except DomainException as e:
            raise self._failed(step, completed, e, request_id) from e

        duration_ms = (time.time() - start_time) * 1000
        record_loan_created(loan.principal, new_customer=wizard.selected_customer is None)
        log_submission(
            request_id,
            loan.loan_id,
            customer.customer_id,
            loan.principal,
            new_customer=wizard.selected_customer is None,
            replayed=False,
            duration_ms=duration_ms,
        )
        return SubmissionResult(
            ticket_number=loan.loan_id,
            scan_code=loan.loan_id,
            loan=loan,
            customer=customer,
            item=item,
            transaction=txn,
        )

    @staticmethod
    def _failed(step: str, completed: List[str], error: Exception, request_id: Optional[str]) -> SubmissionError:
        record_submission_failure(step)
        log_submission_failure(request_id, step, completed, str(error))
        return SubmissionError(step, completed, error)
