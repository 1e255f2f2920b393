"""Customer Versioning Service - SCD Type 2 on top of the customer repository

Every versioned update closes the current row (conditional on it still being
current) and inserts a successor carrying forward all unset fields. Both writes
happen in one unit of work, so a customer can never be left without a current row.
"""

import logging
from dataclasses import fields as dataclass_fields
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from pawnbook.config import Settings, settings as default_settings
from pawnbook.domain.enums import KycStatus, RiskLevel, WatchlistStatus
from pawnbook.domain.exceptions import ConflictError, NotFound, ValidationError
from pawnbook.domain.identifiers import CUSTOMER_SEQUENCE, GLOBAL_SCOPE, customer_id as format_customer_id
from pawnbook.domain.models import CustomerDraft, ScreeningCompleted
from pawnbook.domain.wizard import ADDRESS_PARTS, CUSTOMER_CODE_FIELDS, compose_address, compose_full_name
from pawnbook.infrastructure.database.models import CUSTOMER_ATTRIBUTE_COLUMNS, CUSTOMER_SYSTEM_COLUMNS, DimCustomer
from pawnbook.infrastructure.database.repositories import CustomerRepository, SequenceRepository
from pawnbook.infrastructure.database.session import UnitOfWork
from pawnbook.infrastructure.observability.metrics import record_scd_conflict
from pawnbook.utils.date_utils import Clock, utcnow

logger = logging.getLogger(__name__)

# Columns that must hold a value on every version
REQUIRED_CUSTOMER_FIELDS = ("full_name", "id_type", "id_number", "phone", "address")

COMPLIANCE_CODE_FIELDS = {
    "kyc_status": KycStatus,
    "risk_level": RiskLevel,
    "watchlist_status": WatchlistStatus,
}

NAME_PARTS = ("first_name", "middle_name", "last_name", "suffix")


class CustomerFieldPolicy:
    """Decides which attribute changes bypass versioning and update the current row in place"""

    def __init__(self, mutable_fields: Iterable[str] = ()):
        unknown = set(mutable_fields) - set(CUSTOMER_ATTRIBUTE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown customer fields in mutable policy: {', '.join(sorted(unknown))}")
        self.mutable_fields = frozenset(mutable_fields)

    @classmethod
    def from_settings(cls, config: Settings) -> "CustomerFieldPolicy":
        return cls(config.customer_mutable_fields)

    def is_in_place(self, changed: Iterable[str]) -> bool:
        changed = set(changed)
        return bool(changed) and changed <= self.mutable_fields


def customer_snapshot(row: DimCustomer) -> CustomerDraft:
    """Wizard-side copy of a stored customer version"""
    return CustomerDraft(**{f.name: getattr(row, f.name) for f in dataclass_fields(CustomerDraft)})


class CustomerVersioningService:
    def __init__(
        self,
        uow: UnitOfWork,
        clock: Clock = utcnow,
        policy: Optional[CustomerFieldPolicy] = None,
        config: Settings = default_settings,
    ):
        self.uow = uow
        self.clock = clock
        self.config = config
        self.policy = policy or CustomerFieldPolicy.from_settings(config)
        self.customers = CustomerRepository(uow.db)
        self.sequences = SequenceRepository(uow.db)

    def _clean(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Reject system/unknown columns and normalize closed code fields"""
        system = sorted(set(values) & CUSTOMER_SYSTEM_COLUMNS)
        if system:
            raise ValidationError("Versioning columns cannot be set directly", {name: "read-only" for name in system})
        unknown = sorted(set(values) - set(CUSTOMER_ATTRIBUTE_COLUMNS))
        if unknown:
            raise ValidationError("Unknown customer fields", {name: "unknown field" for name in unknown})

        cleaned = {}
        for name, value in values.items():
            if isinstance(value, str):
                value = value.strip() or None
            code = CUSTOMER_CODE_FIELDS.get(name) or COMPLIANCE_CODE_FIELDS.get(name)
            if code is not None and value is not None:
                value = code.parse(value, name).value
            cleaned[name] = value
        return cleaned

    @staticmethod
    def _compose(values: Dict[str, Any], changed: Iterable[str], prior: Optional[Dict[str, Any]] = None) -> None:
        """
        Fill address/full_name from their parts.

        On update, a changed part only refreshes the text when the prior text was
        itself composed from the prior parts; free-text values are carried forward.
        """
        changed = set(changed)
        for target, parts, compose in (
            ("address", ADDRESS_PARTS, compose_address),
            ("full_name", NAME_PARTS, compose_full_name),
        ):
            if not values.get(target):
                values[target] = compose(values)
            elif target in changed or not changed & set(parts):
                continue
            elif prior is None or prior.get(target) == compose(prior):
                values[target] = compose(values) or values[target]

    @staticmethod
    def _check_required(values: Dict[str, Any]) -> None:
        errors = {name: "required" for name in REQUIRED_CUSTOMER_FIELDS if not values.get(name)}
        if errors:
            raise ValidationError("Customer is missing required fields", errors)

    def create_customer(self, fields: Dict[str, Any]) -> DimCustomer:
        """Register a customer: allocate CUS-NNNNNN and insert the first, current version"""
        values = self._clean(fields)
        self._compose(values, values)
        self._check_required(values)

        with self.uow:
            seq = self.sequences.next_value(CUSTOMER_SEQUENCE, GLOBAL_SCOPE)
            row = self.customers.insert(
                {
                    **values,
                    "customer_id": format_customer_id(seq),
                    "is_current": True,
                    "valid_from": self.clock(),
                    "valid_to": None,
                }
            )
        logger.info("Customer registered", extra={"customer_id": row.customer_id, "customer_key": row.customer_key})
        return row

    def _current_for(self, identifier: Union[int, str]) -> DimCustomer:
        if isinstance(identifier, str) and not identifier.isdigit():
            current = self.customers.get_current_by_id(identifier)
        else:
            row = self.customers.get_by_key(int(identifier))
            if row is None:
                raise NotFound("Customer", identifier)
            current = row if row.is_current else self.customers.get_current_by_id(row.customer_id)
        if current is None:
            raise NotFound("Current customer version", identifier)
        return current

    def get_current(self, identifier: Union[int, str]) -> DimCustomer:
        """Current version by customer_key (any version's key) or by CUS- id"""
        with self.uow:
            return self._current_for(identifier)

    def update(self, customer_key: int, fields: Dict[str, Any]) -> DimCustomer:
        """
        Close the version at customer_key and insert its successor.

        Raises:
            NotFound: customer_key does not exist
            ConflictError: the row is no longer current (lost a race); re-read and retry
        """
        changes = self._clean(fields)
        if not changes:
            raise ValidationError("Nothing to update", {"fields": "at least one field is required"})

        with self.uow:
            prior = self.customers.get_by_key(customer_key)
            if prior is None:
                raise NotFound("Customer", customer_key)
            now = max(self.clock(), prior.valid_from)

            if self.customers.close_version(customer_key, now) == 0:
                record_scd_conflict()
                raise ConflictError(f"Customer version {customer_key} is no longer current")

            previous = {name: getattr(prior, name) for name in CUSTOMER_ATTRIBUTE_COLUMNS}
            values = {**previous, **changes}
            self._compose(values, changes, previous)
            self._check_required(values)
            row = self.customers.insert(
                {
                    **values,
                    "customer_id": prior.customer_id,
                    "is_current": True,
                    "valid_from": now,
                    "valid_to": None,
                }
            )
        logger.info(
            "Customer version created",
            extra={"customer_id": row.customer_id, "customer_key": row.customer_key, "fields": sorted(changes)},
        )
        return row

    def update_current(self, customer_id: str, fields: Dict[str, Any]) -> DimCustomer:
        """Versioned update of whatever row is current, retrying lost races with a fresh read"""
        attempts = max(1, self.config.scd_max_retries)
        for attempt in range(1, attempts + 1):
            current = self.get_current(customer_id)
            try:
                return self.update(current.customer_key, fields)
            except ConflictError:
                # Inside an enclosing transaction the conflict must surface to its owner
                if self.uow.active or attempt == attempts:
                    raise
                logger.warning(
                    "Customer update lost a race, retrying",
                    extra={"customer_id": customer_id, "attempt": attempt},
                )
        raise ConflictError(f"Customer {customer_id} could not be updated")

    def get_history(self, customer_id: str) -> List[DimCustomer]:
        with self.uow:
            rows = self.customers.history(customer_id)
        if not rows:
            raise NotFound("Customer", customer_id)
        return rows

    def get_as_of(self, customer_id: str, at: datetime) -> DimCustomer:
        with self.uow:
            row = self.customers.as_of(customer_id, at)
        if row is None:
            raise NotFound("Customer version", f"{customer_id} at {at.isoformat()}")
        return row

    def _set_flags(self, customer_key: int, fields: Dict[str, Any]) -> DimCustomer:
        if not self.policy.is_in_place(fields):
            return self.update(customer_key, fields)

        values = self._clean(fields)
        with self.uow:
            if self.customers.update_current_in_place(customer_key, values) == 0:
                row = self.customers.get_by_key(customer_key)
                if row is None:
                    raise NotFound("Customer", customer_key)
                record_scd_conflict()
                raise ConflictError(f"Customer version {customer_key} is no longer current")
            row = self.customers.get_by_key(customer_key)
        logger.info(
            "Customer flags updated in place",
            extra={"customer_id": row.customer_id, "customer_key": customer_key, "fields": sorted(values)},
        )
        return row

    def set_watchlist_status(self, customer_key: int, status: str, notes: Optional[str] = None) -> DimCustomer:
        """Existing notes are kept unless new notes are given"""
        fields: Dict[str, Any] = {"watchlist_status": status}
        if notes is not None:
            fields["watchlist_notes"] = notes
        return self._set_flags(customer_key, fields)

    def set_kyc_status(self, customer_key: int, status: str, verified_by: Optional[int] = None) -> DimCustomer:
        status = KycStatus.parse(status, "kyc_status")
        verified = status is KycStatus.VERIFIED
        return self._set_flags(
            customer_key,
            {
                "kyc_status": status.value,
                "kyc_verified_at": self.clock() if verified else None,
                "kyc_verified_by": verified_by if verified else None,
            },
        )

    def apply_screening_result(self, customer_key: int, event: ScreeningCompleted) -> Optional[DimCustomer]:
        """Write a completed screening onto the customer; a no-op unless enabled in config"""
        if not self.config.screening_updates_watchlist:
            logger.debug("Screening result not applied to customer", extra={"customer_key": customer_key})
            return None
        fields: Dict[str, Any] = {"watchlist_status": event.watchlist_status, "watchlist_notes": event.notes or None}
        if event.is_pep:
            fields["is_pep"] = True
        return self._set_flags(customer_key, fields)

    def search(self, query: Optional[str], limit: Optional[int] = None) -> List[DimCustomer]:
        """Case-insensitive substring match on name, phone and ID number of current rows"""
        query = (query or "").strip()
        if len(query) < self.config.customer_search_min_chars:
            return []
        limit = min(limit or self.config.customer_search_limit, self.config.customer_search_limit)
        with self.uow:
            return self.customers.search_current(query, limit)

    def find_inconsistent_customers(self) -> Dict[str, str]:
        """customer_id -> problem, for any customer whose versions break the SCD invariant"""
        problems: Dict[str, str] = {}
        with self.uow:
            for cid, current_rows in self.customers.current_row_counts():
                problems[cid] = f"{current_rows} current rows"
            for cid in self.customers.customer_ids():
                if cid in problems:
                    continue
                versions = sorted(self.customers.history(cid), key=lambda r: (r.valid_from, r.customer_key))
                for earlier, later in zip(versions, versions[1:]):
                    if earlier.valid_to is None or earlier.valid_to != later.valid_from:
                        problems[cid] = f"interval break between versions {earlier.customer_key} and {later.customer_key}"
                        break
                else:
                    if versions and versions[-1].valid_to is not None:
                        problems[cid] = "latest version is closed"
        if problems:
            logger.warning("Customer versioning inconsistencies found", extra={"count": len(problems)})
        return problems
