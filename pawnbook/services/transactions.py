"""Transaction Recorder - append-only cash-flow facts and their aggregates"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from pawnbook.config import Settings, settings as default_settings
from pawnbook.domain.enums import PaymentMethod, TransactionType
from pawnbook.domain.exceptions import NotFound, ValidationError
from pawnbook.domain.identifiers import TRANSACTION_SEQUENCE, transaction_id
from pawnbook.domain.models import CashFlowSummary, TransactionAmounts
from pawnbook.domain.transactions import compute_totals, direction_for
from pawnbook.infrastructure.database.models import FactTransaction
from pawnbook.infrastructure.database.repositories import (
    CustomerRepository,
    SequenceRepository,
    TransactionRepository,
)
from pawnbook.infrastructure.database.session import UnitOfWork
from pawnbook.utils.date_utils import Clock, date_key, day_scope, local_date, utcnow

logger = logging.getLogger(__name__)

MAX_RECENT = 200


class TransactionRecorder:
    def __init__(self, uow: UnitOfWork, clock: Clock = utcnow, config: Settings = default_settings):
        self.uow = uow
        self.clock = clock
        self.config = config
        self.transactions = TransactionRepository(uow.db)
        self.sequences = SequenceRepository(uow.db)
        self.customers = CustomerRepository(uow.db)

    def record(
        self,
        txn_type: TransactionType,
        amounts: TransactionAmounts,
        customer_key: Optional[int] = None,
        loan_key: Optional[int] = None,
        item_key: Optional[int] = None,
        branch_key: Optional[int] = None,
        employee_key: Optional[int] = None,
        payment_method: Optional[str] = None,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> FactTransaction:
        """
        Append one fact. The direction comes from the type table and the signed
        net_cash_flow is fixed here, once; aggregates never re-derive it.
        """
        txn_type = TransactionType.parse(txn_type, "type")
        total, net = compute_totals(txn_type, amounts)
        if payment_method is not None:
            payment_method = PaymentMethod.parse(payment_method, "payment_method").value
        now = self.clock()
        business_day = local_date(now, self.config.timezone)

        with self.uow:
            seq = self.sequences.next_value(TRANSACTION_SEQUENCE, day_scope(business_day))
            row = self.transactions.insert(
                {
                    "transaction_id": transaction_id(business_day, seq),
                    "date_key": date_key(business_day),
                    "type_code": txn_type.value,
                    "cash_flow_direction": direction_for(txn_type).value,
                    "customer_key": customer_key,
                    "loan_key": loan_key,
                    "item_key": item_key,
                    "branch_key": branch_key if branch_key is not None else self.config.default_branch_key,
                    "employee_key": employee_key,
                    "principal": amounts.principal,
                    "interest": amounts.interest,
                    "service_fee": amounts.service_fee,
                    "penalty": amounts.penalty,
                    "discount": amounts.discount,
                    "other_charges": amounts.other_charges,
                    "total_amount": total,
                    "net_cash_flow": net,
                    "payment_method": payment_method,
                    "reference_number": reference_number,
                    "notes": notes,
                    "created_at": now,
                }
            )
        logger.info(
            "Transaction recorded",
            extra={
                "transaction_id": row.transaction_id,
                "type": txn_type.value,
                "loan_key": loan_key,
                "net_cash_flow": net,
            },
        )
        return row

    def by_loan(self, loan_key: int) -> List[FactTransaction]:
        with self.uow:
            return self.transactions.by_loan(loan_key)

    def by_customer(self, customer_key: int) -> List[FactTransaction]:
        """Facts for every version of the customer owning customer_key"""
        with self.uow:
            row = self.customers.get_by_key(customer_key)
            if row is None:
                raise NotFound("Customer", customer_key)
            keys = [version.customer_key for version in self.customers.history(row.customer_id)]
            return self.transactions.by_customer_keys(keys)

    def recent(self, limit: int = 20, branch_key: Optional[int] = None) -> List[FactTransaction]:
        if limit <= 0:
            raise ValidationError("Limit must be positive", {"limit": "must be greater than zero"})
        with self.uow:
            return self.transactions.recent(min(limit, MAX_RECENT), branch_key)

    def cash_flow(self, start: date, end: date, branch_key: Optional[int] = None) -> CashFlowSummary:
        """Sum stored signed flows for start..end inclusive"""
        if end < start:
            raise ValidationError("End date is before start date", {"end": "must not be before start"})
        with self.uow:
            disbursed, collected, net, count = self.transactions.cash_flow_totals(
                date_key(start), date_key(end), branch_key
            )
        return CashFlowSummary(
            disbursements=disbursed,
            collections=collected,
            net_cash_flow=net,
            transaction_count=count,
        )

    def today_cash_flow(self, branch_key: Optional[int] = None) -> CashFlowSummary:
        today = local_date(self.clock(), self.config.timezone)
        return self.cash_flow(today, today, branch_key)

    def dashboard_stats(self, branch_key: Optional[int] = None) -> Dict[str, CashFlowSummary]:
        """Today's figures plus the trailing seven days (today included)"""
        today = local_date(self.clock(), self.config.timezone)
        return {
            "today": self.cash_flow(today, today, branch_key),
            "week": self.cash_flow(today - timedelta(days=6), today, branch_key),
        }
