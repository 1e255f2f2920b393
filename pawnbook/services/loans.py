"""Loan Lifecycle Service - items, loans, status transitions and renewal chains"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pawnbook.config import Settings, settings as default_settings
from pawnbook.domain import calculator
from pawnbook.domain.enums import (
    LOAN_TO_ITEM_STATUS,
    ItemCategory,
    ItemStatus,
    LoanStatus,
    PaymentStatus,
    TransactionType,
)
from pawnbook.domain.exceptions import ConflictError, NotFound, TransitionError, ValidationError
from pawnbook.domain.identifiers import ITEM_SEQUENCE, LOAN_SEQUENCE, item_id, ticket_number
from pawnbook.domain.models import PortfolioSummary, RedemptionReceipt, TransactionAmounts
from pawnbook.domain.wizard import CATEGORY_REQUIRED_FIELDS, ITEM_CODE_FIELDS
from pawnbook.infrastructure.database.models import DimCustomer, DimItem, DimLoan
from pawnbook.infrastructure.database.repositories import (
    CustomerRepository,
    ItemRepository,
    LoanRepository,
    SequenceRepository,
)
from pawnbook.infrastructure.database.session import UnitOfWork
from pawnbook.infrastructure.observability.logging import log_status_change
from pawnbook.infrastructure.observability.metrics import record_status_transition
from pawnbook.services.transactions import TransactionRecorder
from pawnbook.utils.date_utils import Clock, as_date, day_scope, to_local, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    LoanStatus.ACTIVE: frozenset({LoanStatus.RENEWED, LoanStatus.REDEEMED, LoanStatus.FORFEITED}),
    LoanStatus.FORFEITED: frozenset({LoanStatus.AUCTIONED}),
}

STATUS_TIMESTAMPS = {
    LoanStatus.RENEWED: "renewed_at",
    LoanStatus.REDEEMED: "redeemed_at",
    LoanStatus.FORFEITED: "forfeited_at",
    LoanStatus.AUCTIONED: "auctioned_at",
}

ITEM_FIELDS = frozenset(
    c.name for c in DimItem.__table__.columns if c.name not in ("item_key", "item_id", "status", "created_at", "updated_at")
)

LOAN_REQUIRED_FIELDS = (
    "customer_key",
    "item_key",
    "principal",
    "interest_rate",
    "term_days",
    "interest_amount",
    "total_due",
    "loan_date",
    "maturity_date",
)
LOAN_OPTIONAL_FIELDS = (
    "service_fee",
    "branch_key",
    "created_by_employee_key",
    "purpose_of_loan",
    "idempotency_key",
    "grace_period_days",
)


@dataclass
class LoanListing:
    """A loan with the current version of its customer and its due-date classification"""

    loan: DimLoan
    customer: DimCustomer
    days_until_due: int
    payment_status: PaymentStatus


def describe_item(values: Dict[str, Any]) -> Optional[str]:
    """Default one-line description for tickets and lists, e.g. 'Necklace - 10g 18k'"""
    if values.get("category") == ItemCategory.GOLD.value:
        weight = f"{values['weight_grams']}g" if values.get("weight_grams") else None
        detail = " ".join(str(p) for p in (weight, values.get("karat")) if p)
        return " - ".join(str(p) for p in (values.get("gold_type"), detail) if p) or None
    return " ".join(str(values[p]) for p in ("brand", "model") if values.get(p)) or None


class LoanLifecycleService:
    def __init__(
        self,
        uow: UnitOfWork,
        recorder: Optional[TransactionRecorder] = None,
        clock: Clock = utcnow,
        config: Settings = default_settings,
    ):
        self.uow = uow
        self.clock = clock
        self.config = config
        self.recorder = recorder or TransactionRecorder(uow, clock=clock, config=config)
        self.loans = LoanRepository(uow.db)
        self.items = ItemRepository(uow.db)
        self.customers = CustomerRepository(uow.db)
        self.sequences = SequenceRepository(uow.db)

    def _local(self, moment: datetime) -> datetime:
        """Shop wall-clock time for a stored UTC timestamp"""
        return to_local(moment, self.config.timezone)

    # Creation

    def create_item(self, fields: Dict[str, Any]) -> DimItem:
        """Validate collateral against its category table, allocate ITM id, status pawned"""
        unknown = sorted(set(fields) - ITEM_FIELDS)
        if unknown:
            raise ValidationError("Unknown item fields", {name: "unknown field" for name in unknown})
        values = {name: value for name, value in fields.items() if value is not None}

        errors: Dict[str, str] = {}
        category = ItemCategory.parse(values.get("category"), "category")
        values["category"] = category.value
        for name, code in ITEM_CODE_FIELDS.items():
            if values.get(name) is not None:
                values[name] = code.parse(values[name], name).value
        for name in CATEGORY_REQUIRED_FIELDS[category]:
            if not values.get(name):
                errors[name] = "required"
        if int(values.get("appraisal_value") or 0) <= 0:
            errors["appraisal_value"] = "must be greater than zero"
        if values.get("weight_grams") is not None and Decimal(str(values["weight_grams"])) <= 0:
            errors["weight_grams"] = "must be greater than zero"
        if errors:
            raise ValidationError("Item is incomplete", errors)

        if category is ItemCategory.GOLD and "purity_percentage" not in values:
            values["purity_percentage"] = calculator.purity_fraction(values.get("karat")) * 100
        values.setdefault("description", describe_item(values))

        now = self.clock()
        with self.uow:
            seq = self.sequences.next_value(ITEM_SEQUENCE, day_scope(self._local(now)))
            row = self.items.insert(
                {
                    **values,
                    "item_id": item_id(self._local(now).date(), seq),
                    "status": ItemStatus.PAWNED.value,
                    "appraised_at": values.get("appraised_at") or now,
                }
            )
        logger.info("Item created", extra={"item_id": row.item_id, "category": row.category})
        return row

    def create_loan(self, fields: Dict[str, Any]) -> DimLoan:
        """
        Persist a loan with caller-computed figures (the calculator's output).

        Allocates the day-scoped ticket number, status active, renewal_count 0.
        """
        unknown = sorted(set(fields) - set(LOAN_REQUIRED_FIELDS) - set(LOAN_OPTIONAL_FIELDS))
        if unknown:
            raise ValidationError("Unknown loan fields", {name: "unknown field" for name in unknown})
        errors = {name: "required" for name in LOAN_REQUIRED_FIELDS if fields.get(name) is None}
        if errors:
            raise ValidationError("Loan is incomplete", errors)
        for name in ("principal", "interest_rate", "term_days"):
            if fields[name] <= 0:
                errors[name] = "must be greater than zero"
        if (fields.get("service_fee") or 0) < 0:
            errors["service_fee"] = "must not be negative"
        if errors:
            raise ValidationError("Loan terms are invalid", errors)
        return self._insert_loan(dict(fields), parent=None)

    def _insert_loan(self, values: Dict[str, Any], parent: Optional[DimLoan]) -> DimLoan:
        with self.uow:
            if self.customers.get_by_key(values["customer_key"]) is None:
                raise NotFound("Customer", values["customer_key"])
            if self.items.get_by_key(values["item_key"]) is None:
                raise NotFound("Item", values["item_key"])

            loan_date = as_date(values["loan_date"])
            seq = self.sequences.next_value(LOAN_SEQUENCE, day_scope(loan_date))
            values.setdefault("service_fee", 0)
            values.setdefault("grace_period_days", self.config.grace_period_days)
            values.setdefault("branch_key", self.config.default_branch_key)
            row = self.loans.insert(
                {
                    **values,
                    "loan_id": ticket_number(loan_date, seq),
                    "status": LoanStatus.ACTIVE.value,
                    "parent_loan_key": parent.loan_key if parent else None,
                    "renewal_count": parent.renewal_count + 1 if parent else 0,
                }
            )
        logger.info(
            "Loan created",
            extra={"loan_id": row.loan_id, "principal": row.principal, "parent_loan_key": row.parent_loan_key},
        )
        return row

    # Reads

    def get_loan(self, identifier: Union[int, str]) -> DimLoan:
        """By loan_key or by ticket number"""
        with self.uow:
            if isinstance(identifier, str) and not identifier.isdigit():
                loan = self.loans.get_by_loan_id(identifier)
            else:
                loan = self.loans.get_by_key(int(identifier))
        if loan is None:
            raise NotFound("Loan", identifier)
        return loan

    def find_by_idempotency_key(self, idempotency_key: str) -> Optional[DimLoan]:
        with self.uow:
            return self.loans.get_by_idempotency_key(idempotency_key)

    # Status transitions

    def _transition(self, loan: DimLoan, target: LoanStatus, at: datetime) -> Optional[ItemStatus]:
        current = LoanStatus(loan.status)
        if target not in ALLOWED_TRANSITIONS.get(current, ()):
            raise TransitionError(current.value, target.value)
        updated = self.loans.transition(
            loan.loan_key,
            current.value,
            {"status": target.value, STATUS_TIMESTAMPS[target]: at},
        )
        if updated == 0:
            raise ConflictError(f"Loan {loan.loan_id} changed status concurrently")

        item_status = LOAN_TO_ITEM_STATUS.get(target)
        if item_status is not None and self.items.set_status(loan.item_key, item_status.value) == 0:
            # Raising here rolls back the loan update with it
            raise NotFound("Item", loan.item_key)
        return item_status

    def _after_transition(self, loan_id: str, from_status: str, to_status: str, item_status: Optional[ItemStatus]) -> None:
        record_status_transition(from_status, to_status)
        log_status_change(loan_id, from_status, to_status, item_status.value if item_status else None)

    def update_status(self, loan_key: int, new_status: str) -> DimLoan:
        """
        Move a loan along its state machine and cascade the item status.

        Renewals must go through renew(), which creates the successor loan in
        the same transaction.
        """
        target = LoanStatus.parse(new_status, "status")
        if target is LoanStatus.RENEWED:
            raise ValidationError("Renew the loan instead of setting the status", {"status": "use renew"})
        with self.uow:
            loan = self.get_loan(loan_key)
            from_status = loan.status
            item_status = self._transition(loan, target, self.clock())
        self._after_transition(loan.loan_id, from_status, target.value, item_status)
        return loan

    def _penalty(self, loan: DimLoan, now: datetime) -> int:
        overdue = calculator.days_overdue(loan.maturity_date, self._local(now))
        return calculator.penalty_amount(
            loan.principal,
            self.config.penalty_rate_percent,
            overdue,
            loan.grace_period_days or 0,
        )

    def renew(
        self,
        loan_key: int,
        new_term_days: Optional[int] = None,
        interest_rate: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
        employee_key: Optional[int] = None,
    ) -> DimLoan:
        """
        Close an active loan as renewed and open its successor.

        The successor starts on the renewal date with the same principal, fee,
        item and customer. Interest on the closed loan (plus any penalty) is
        collected as a RENEWAL fact. All three writes commit together.
        """
        term = self.config.default_term_days if new_term_days is None else new_term_days
        if term not in self.config.allowed_term_days:
            allowed = ", ".join(str(d) for d in self.config.allowed_term_days)
            raise ValidationError("Unsupported term", {"term_days": f"must be one of: {allowed}"})
        if interest_rate is not None and Decimal(str(interest_rate)) <= 0:
            raise ValidationError("Interest rate must be positive", {"interest_rate": "must be greater than zero"})

        now = self.clock()
        with self.uow:
            old = self.get_loan(loan_key)
            penalty = self._penalty(old, now)
            self._transition(old, LoanStatus.RENEWED, now)

            quote = calculator.renewal_quote(
                principal=old.principal,
                monthly_rate_percent=interest_rate if interest_rate is not None else old.interest_rate,
                new_term_days=term,
                service_fee=old.service_fee,
                renewal_date=self._local(now).date(),
            )
            child = self._insert_loan(
                {
                    "customer_key": old.customer_key,
                    "item_key": old.item_key,
                    "branch_key": old.branch_key,
                    "created_by_employee_key": employee_key,
                    "principal": quote.principal,
                    "interest_rate": quote.interest_rate,
                    "term_days": quote.term_days,
                    "service_fee": quote.service_fee,
                    "interest_amount": quote.interest_amount,
                    "total_due": quote.total_due,
                    "loan_date": quote.loan_date,
                    "maturity_date": quote.maturity_date,
                    "purpose_of_loan": old.purpose_of_loan,
                    "grace_period_days": old.grace_period_days,
                },
                parent=old,
            )
            self.recorder.record(
                TransactionType.RENEWAL,
                TransactionAmounts(interest=old.interest_amount, penalty=penalty),
                customer_key=old.customer_key,
                loan_key=old.loan_key,
                item_key=old.item_key,
                branch_key=old.branch_key,
                employee_key=employee_key,
                payment_method=payment_method or "cash",
                notes=f"Renewed as {child.loan_id}",
            )
        self._after_transition(old.loan_id, LoanStatus.ACTIVE.value, LoanStatus.RENEWED.value, None)
        return child

    def redemption_quote(self, loan_key: int, discount: int = 0) -> Dict[str, int]:
        """Amount a customer must pay today to redeem"""
        loan = self.get_loan(loan_key)
        penalty = self._penalty(loan, self.clock())
        return {
            "total_due": loan.total_due,
            "penalty": penalty,
            "discount": discount,
            "amount_due": calculator.redemption_due(loan.total_due, penalty, discount),
        }

    def redeem(
        self,
        loan_key: int,
        amount_received: int,
        payment_method: str = "cash",
        discount: int = 0,
        employee_key: Optional[int] = None,
    ) -> RedemptionReceipt:
        if discount < 0:
            raise ValidationError("Discount must not be negative", {"discount": "must not be negative"})
        now = self.clock()
        with self.uow:
            loan = self.get_loan(loan_key)
            if loan.status != LoanStatus.ACTIVE.value:
                raise TransitionError(loan.status, LoanStatus.REDEEMED.value)
            penalty = self._penalty(loan, now)
            amount_due = calculator.redemption_due(loan.total_due, penalty, discount)
            if amount_received < amount_due:
                raise ValidationError(
                    "Payment is less than the amount due",
                    {"amount_received": f"must be at least {amount_due}"},
                )
            item_status = self._transition(loan, LoanStatus.REDEEMED, now)
            txn = self.recorder.record(
                TransactionType.REDEMPTION,
                TransactionAmounts(
                    principal=loan.principal,
                    interest=loan.interest_amount,
                    service_fee=loan.service_fee,
                    penalty=penalty,
                    discount=discount,
                ),
                customer_key=loan.customer_key,
                loan_key=loan.loan_key,
                item_key=loan.item_key,
                branch_key=loan.branch_key,
                employee_key=employee_key,
                payment_method=payment_method,
            )
        self._after_transition(loan.loan_id, LoanStatus.ACTIVE.value, LoanStatus.REDEEMED.value, item_status)
        return RedemptionReceipt(
            loan_id=loan.loan_id,
            amount_due=amount_due,
            penalty=penalty,
            discount=discount,
            amount_received=amount_received,
            change=calculator.change_due(amount_received, amount_due),
            transaction_id=txn.transaction_id,
        )

    def forfeit(self, loan_key: int, employee_key: Optional[int] = None) -> DimLoan:
        """Keep the collateral; books the loan value without moving cash"""
        with self.uow:
            loan = self.get_loan(loan_key)
            from_status = loan.status
            item_status = self._transition(loan, LoanStatus.FORFEITED, self.clock())
            self.recorder.record(
                TransactionType.FORFEITURE,
                TransactionAmounts(principal=loan.principal, interest=loan.interest_amount),
                customer_key=loan.customer_key,
                loan_key=loan.loan_key,
                item_key=loan.item_key,
                branch_key=loan.branch_key,
                employee_key=employee_key,
            )
        self._after_transition(loan.loan_id, from_status, LoanStatus.FORFEITED.value, item_status)
        return loan

    def auction(
        self,
        loan_key: int,
        sale_amount: int,
        payment_method: str = "cash",
        employee_key: Optional[int] = None,
    ) -> DimLoan:
        if sale_amount <= 0:
            raise ValidationError("Sale amount must be positive", {"sale_amount": "must be greater than zero"})
        with self.uow:
            loan = self.get_loan(loan_key)
            from_status = loan.status
            item_status = self._transition(loan, LoanStatus.AUCTIONED, self.clock())
            self.recorder.record(
                TransactionType.AUCTION_SALE,
                TransactionAmounts(principal=sale_amount),
                customer_key=loan.customer_key,
                loan_key=loan.loan_key,
                item_key=loan.item_key,
                branch_key=loan.branch_key,
                employee_key=employee_key,
                payment_method=payment_method,
                notes=f"Auction sale of {loan.item.item_id}",
            )
        self._after_transition(loan.loan_id, from_status, LoanStatus.AUCTIONED.value, item_status)
        return loan

    def delete(self, loan_key: int) -> None:
        """
        Hard-delete a loan, and its item when no other loan still references it.

        Loans inside a renewal chain are refused. Transaction facts are kept.
        """
        with self.uow:
            loan = self.get_loan(loan_key)
            if loan.parent_loan_key is not None or self.loans.children(loan.loan_key):
                raise ConflictError(f"Loan {loan.loan_id} is part of a renewal chain and cannot be deleted")
            loan_id, item_key = loan.loan_id, loan.item_key
            self.loans.delete(loan.loan_key)
            item_deleted = self.loans.count_for_item(item_key) == 0
            if item_deleted:
                self.items.delete(item_key)
        logger.warning("Loan deleted", extra={"loan_id": loan_id, "item_deleted": item_deleted})

    # Queries

    def _listings(self, rows, now: datetime) -> List[LoanListing]:
        listings = []
        for loan, customer in rows:
            days = calculator.days_until_due(loan.maturity_date, self._local(now))
            listings.append(
                LoanListing(
                    loan=loan,
                    customer=customer,
                    days_until_due=days,
                    payment_status=calculator.classify_days_until_due(days, self.config.due_soon_days),
                )
            )
        return listings

    def due_within(self, days: Optional[int] = None) -> List[LoanListing]:
        """Active loans with 0 < days_until_due <= days"""
        days = self.config.due_soon_days if days is None else days
        if days < 0:
            raise ValidationError("Days must not be negative", {"days": "must not be negative"})
        now = self.clock()
        today = self._local(now).date()
        with self.uow:
            rows = self.loans.active_maturing_between(today, today + timedelta(days=days))
        return self._listings(rows, now)

    def overdue(self) -> List[LoanListing]:
        """Active loans with days_until_due <= 0"""
        now = self.clock()
        with self.uow:
            rows = self.loans.active_maturing_on_or_before(self._local(now).date())
        return self._listings(rows, now)

    def by_customer(self, customer_key: int) -> List[LoanListing]:
        """Loans written against any version of the customer owning customer_key"""
        with self.uow:
            row = self.customers.get_by_key(customer_key)
            if row is None:
                raise NotFound("Customer", customer_key)
            rows = self.loans.by_customer_id(row.customer_id)
        return self._listings(rows, self.clock())

    def renewal_chain(self, loan_key: int) -> List[DimLoan]:
        """Every loan in the chain, original first"""
        with self.uow:
            loan = self.get_loan(loan_key)
            while loan.parent_loan_key is not None:
                loan = self.get_loan(loan.parent_loan_key)
            chain = [loan]
            children = self.loans.children(loan.loan_key)
            while children:
                chain.append(children[0])
                children = self.loans.children(children[0].loan_key)
        return chain

    def portfolio_summary(self) -> PortfolioSummary:
        now = self.clock()
        today = self._local(now).date()
        with self.uow:
            rows = self.loans.active_with_customer()
        listings = self._listings(rows, now)
        return PortfolioSummary(
            active_loans=len(listings),
            due_today=sum(1 for entry in listings if entry.loan.maturity_date == today),
            due_soon=sum(1 for entry in listings if entry.payment_status is PaymentStatus.DUE_SOON),
            overdue=sum(1 for entry in listings if entry.payment_status is PaymentStatus.OVERDUE),
            capital_out=sum(entry.loan.principal for entry in listings),
        )
