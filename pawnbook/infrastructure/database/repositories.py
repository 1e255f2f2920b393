"""Data access layer for pawnshop entities"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, aliased

from pawnbook.infrastructure.database.models import (
    DimCustomer,
    DimItem,
    DimLoan,
    FactTransaction,
    IdSequence,
)


class SequenceRepository:
    """Atomic per-scope counters backing every human-facing identifier"""

    def __init__(self, db: Session):
        self.db = db

    def _increment(self, name: str, scope: str) -> int:
        return (
            self.db.query(IdSequence)
            .filter(IdSequence.name == name, IdSequence.scope == scope)
            .update({IdSequence.last_value: IdSequence.last_value + 1}, synchronize_session=False)
        )

    def next_value(self, name: str, scope: str) -> int:
        """Increment and return the counter; the row stays locked until commit"""
        if self._increment(name, scope) == 0:
            try:
                with self.db.begin_nested():
                    self.db.add(IdSequence(name=name, scope=scope, last_value=1))
                return 1
            except IntegrityError:
                # Another session created the counter first
                self._increment(name, scope)
        return (
            self.db.query(IdSequence.last_value)
            .filter(IdSequence.name == name, IdSequence.scope == scope)
            .scalar()
        )


class CustomerRepository:
    """Repository for versioned customer rows"""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, values: Dict[str, Any]) -> DimCustomer:
        row = DimCustomer(**values)
        self.db.add(row)
        self.db.flush()  # Get customer_key without committing
        return row

    def get_by_key(self, customer_key: int) -> Optional[DimCustomer]:
        return self.db.query(DimCustomer).filter(DimCustomer.customer_key == customer_key).first()

    def get_current_by_id(self, customer_id: str) -> Optional[DimCustomer]:
        return (
            self.db.query(DimCustomer)
            .filter(DimCustomer.customer_id == customer_id, DimCustomer.is_current.is_(True))
            .first()
        )

    def close_version(self, customer_key: int, closed_at: datetime) -> int:
        """Close a row only if it is still current; returns affected row count"""
        return (
            self.db.query(DimCustomer)
            .filter(DimCustomer.customer_key == customer_key, DimCustomer.is_current.is_(True))
            .update(
                {DimCustomer.is_current: False, DimCustomer.valid_to: closed_at},
                synchronize_session="fetch",
            )
        )

    def update_current_in_place(self, customer_key: int, values: Dict[str, Any]) -> int:
        return (
            self.db.query(DimCustomer)
            .filter(DimCustomer.customer_key == customer_key, DimCustomer.is_current.is_(True))
            .update(values, synchronize_session="fetch")
        )

    def history(self, customer_id: str) -> List[DimCustomer]:
        """All versions, newest first"""
        return (
            self.db.query(DimCustomer)
            .filter(DimCustomer.customer_id == customer_id)
            .order_by(DimCustomer.valid_from.desc(), DimCustomer.customer_key.desc())
            .all()
        )

    def as_of(self, customer_id: str, at: datetime) -> Optional[DimCustomer]:
        """Version whose [valid_from, valid_to) interval contains `at`"""
        return (
            self.db.query(DimCustomer)
            .filter(
                DimCustomer.customer_id == customer_id,
                DimCustomer.valid_from <= at,
                or_(DimCustomer.valid_to.is_(None), DimCustomer.valid_to > at),
            )
            .order_by(DimCustomer.valid_from.desc())
            .first()
        )

    def search_current(self, query: str, limit: int) -> List[DimCustomer]:
        """Case-insensitive substring match; LIKE wildcards in query match literally"""
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        return (
            self.db.query(DimCustomer)
            .filter(
                DimCustomer.is_current.is_(True),
                or_(
                    DimCustomer.full_name.ilike(pattern, escape="\\"),
                    DimCustomer.phone.ilike(pattern, escape="\\"),
                    DimCustomer.id_number.ilike(pattern, escape="\\"),
                ),
            )
            .order_by(DimCustomer.full_name)
            .limit(limit)
            .all()
        )

    def current_row_counts(self) -> List[Tuple[str, int]]:
        """(customer_id, number of current rows) for every customer_id not at exactly one"""
        current = func.sum(case((DimCustomer.is_current.is_(True), 1), else_=0))
        return (
            self.db.query(DimCustomer.customer_id, current)
            .group_by(DimCustomer.customer_id)
            .having(current != 1)
            .all()
        )

    def customer_ids(self) -> List[str]:
        return [row[0] for row in self.db.query(DimCustomer.customer_id).distinct().all()]

    def all_current(self) -> List[DimCustomer]:
        return (
            self.db.query(DimCustomer)
            .filter(DimCustomer.is_current.is_(True))
            .order_by(DimCustomer.customer_id)
            .all()
        )

    def registration_times(self) -> Dict[str, datetime]:
        """customer_id -> valid_from of the first version"""
        rows = self.db.query(DimCustomer.customer_id, func.min(DimCustomer.valid_from)).group_by(
            DimCustomer.customer_id
        )
        return dict(rows.all())


class ItemRepository:
    """Repository for collateral items"""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, values: Dict[str, Any]) -> DimItem:
        row = DimItem(**values)
        self.db.add(row)
        self.db.flush()
        return row

    def get_by_key(self, item_key: int) -> Optional[DimItem]:
        return self.db.query(DimItem).filter(DimItem.item_key == item_key).first()

    def set_status(self, item_key: int, status: str) -> int:
        return (
            self.db.query(DimItem)
            .filter(DimItem.item_key == item_key)
            .update({DimItem.status: status}, synchronize_session="fetch")
        )

    def delete(self, item_key: int) -> int:
        return self.db.query(DimItem).filter(DimItem.item_key == item_key).delete(synchronize_session="fetch")


class LoanRepository:
    """Repository for loans and their renewal chains"""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, values: Dict[str, Any]) -> DimLoan:
        row = DimLoan(**values)
        self.db.add(row)
        self.db.flush()
        return row

    def get_by_key(self, loan_key: int) -> Optional[DimLoan]:
        return self.db.query(DimLoan).filter(DimLoan.loan_key == loan_key).first()

    def get_by_loan_id(self, loan_id: str) -> Optional[DimLoan]:
        return self.db.query(DimLoan).filter(DimLoan.loan_id == loan_id).first()

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[DimLoan]:
        return self.db.query(DimLoan).filter(DimLoan.idempotency_key == idempotency_key).first()

    def transition(self, loan_key: int, from_status: str, values: Dict[str, Any]) -> int:
        """Conditional status write; 0 rows means the loan moved on concurrently"""
        return (
            self.db.query(DimLoan)
            .filter(DimLoan.loan_key == loan_key, DimLoan.status == from_status)
            .update(values, synchronize_session="fetch")
        )

    def children(self, loan_key: int) -> List[DimLoan]:
        return self.db.query(DimLoan).filter(DimLoan.parent_loan_key == loan_key).all()

    def count_for_item(self, item_key: int) -> int:
        return self.db.query(func.count(DimLoan.loan_key)).filter(DimLoan.item_key == item_key).scalar()

    def delete(self, loan_key: int) -> int:
        return self.db.query(DimLoan).filter(DimLoan.loan_key == loan_key).delete(synchronize_session="fetch")

    def _visible(self) -> Tuple[Query, Any]:
        """Loans joined to the *current* version of the customer they were written for"""
        origin = aliased(DimCustomer)
        current = aliased(DimCustomer)
        query = (
            self.db.query(DimLoan, current)
            .join(origin, DimLoan.customer_key == origin.customer_key)
            .join(
                current,
                and_(current.customer_id == origin.customer_id, current.is_current.is_(True)),
            )
        )
        return query, origin

    def active_maturing_between(self, after: date, until: date) -> List[Tuple[DimLoan, DimCustomer]]:
        """Active loans with after < maturity_date <= until"""
        query, _ = self._visible()
        return (
            query.filter(
                DimLoan.status == "active",
                DimLoan.maturity_date > after,
                DimLoan.maturity_date <= until,
            )
            .order_by(DimLoan.maturity_date)
            .all()
        )

    def active_maturing_on_or_before(self, until: date) -> List[Tuple[DimLoan, DimCustomer]]:
        query, _ = self._visible()
        return (
            query.filter(DimLoan.status == "active", DimLoan.maturity_date <= until)
            .order_by(DimLoan.maturity_date)
            .all()
        )

    def by_customer_id(self, customer_id: str) -> List[Tuple[DimLoan, DimCustomer]]:
        query, origin = self._visible()
        return (
            query.filter(origin.customer_id == customer_id)
            .order_by(DimLoan.loan_date.desc(), DimLoan.loan_key.desc())
            .all()
        )

    def active_with_customer(self) -> List[Tuple[DimLoan, DimCustomer]]:
        query, _ = self._visible()
        return query.filter(DimLoan.status == "active").order_by(DimLoan.maturity_date).all()

    def all_with_customer(self) -> List[Tuple[DimLoan, DimCustomer]]:
        query, _ = self._visible()
        return query.order_by(DimLoan.loan_date.desc(), DimLoan.loan_key.desc()).all()


class TransactionRepository:
    """Append-only access to cash-flow facts"""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, values: Dict[str, Any]) -> FactTransaction:
        row = FactTransaction(**values)
        self.db.add(row)
        self.db.flush()
        return row

    def by_loan(self, loan_key: int) -> List[FactTransaction]:
        return (
            self.db.query(FactTransaction)
            .filter(FactTransaction.loan_key == loan_key)
            .order_by(FactTransaction.created_at.desc(), FactTransaction.transaction_key.desc())
            .all()
        )

    def by_customer_keys(self, customer_keys: Sequence[int]) -> List[FactTransaction]:
        return (
            self.db.query(FactTransaction)
            .filter(FactTransaction.customer_key.in_(list(customer_keys)))
            .order_by(FactTransaction.created_at.desc(), FactTransaction.transaction_key.desc())
            .all()
        )

    def recent(self, limit: int, branch_key: Optional[int] = None) -> List[FactTransaction]:
        query = self.db.query(FactTransaction)
        if branch_key is not None:
            query = query.filter(FactTransaction.branch_key == branch_key)
        return (
            query.order_by(FactTransaction.created_at.desc(), FactTransaction.transaction_key.desc())
            .limit(limit)
            .all()
        )

    def cash_flow_totals(
        self,
        start_key: int,
        end_key: int,
        branch_key: Optional[int] = None,
    ) -> Tuple[int, int, int, int]:
        """(disbursements, collections, net, count) from stored signed flows"""
        net = FactTransaction.net_cash_flow
        query = self.db.query(
            func.coalesce(func.sum(case((net < 0, -net), else_=0)), 0),
            func.coalesce(func.sum(case((net > 0, net), else_=0)), 0),
            func.coalesce(func.sum(net), 0),
            func.count(FactTransaction.transaction_key),
        ).filter(FactTransaction.date_key >= start_key, FactTransaction.date_key <= end_key)
        if branch_key is not None:
            query = query.filter(FactTransaction.branch_key == branch_key)
        disbursed, collected, total, count = query.one()
        return int(disbursed), int(collected), int(total), int(count)
