"""CSV export of customers and loans for external systems"""

import csv
import io
import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pawnbook.config import Settings, settings as default_settings
from pawnbook.domain import calculator
from pawnbook.infrastructure.database.repositories import CustomerRepository, LoanRepository
from pawnbook.infrastructure.database.session import UnitOfWork
from pawnbook.utils.date_utils import Clock, local_date, to_local, utcnow

CUSTOMER_HEADERS = {
    "customer_id": "Customer ID",
    "full_name": "Full Name",
    "last_name": "Last Name",
    "first_name": "First Name",
    "middle_name": "Middle Name",
    "suffix": "Suffix",
    "date_of_birth": "Date of Birth",
    "gender": "Gender",
    "nationality": "Nationality",
    "id_type": "ID Type",
    "id_number": "ID Number",
    "id_expiry_date": "ID Expiry Date",
    "id_issuing_authority": "ID Issuing Authority",
    "phone": "Phone",
    "alternate_phone": "Alternate Phone",
    "email": "Email",
    "address": "Address",
    "address_line_1": "Address Line 1",
    "address_line_2": "Address Line 2",
    "barangay": "Barangay",
    "city_municipality": "City/Municipality",
    "province": "Province",
    "postal_code": "Postal Code",
    "occupation": "Occupation",
    "employer_business_name": "Employer/Business",
    "nature_of_work": "Nature of Work",
    "monthly_income_range": "Monthly Income Range",
    "source_of_income": "Source of Income",
    "is_pep": "Is PEP",
    "pep_details": "PEP Details",
    "kyc_status": "KYC Status",
    "risk_level": "Risk Level",
    "watchlist_status": "Watchlist Status",
    "registered_at": "Registered At",
    "created_at": "Created At",
    "updated_at": "Updated At",
}

# Photos, versioning columns and internal compliance notes never leave the system
CUSTOMER_EXCLUDE = (
    "customer_key",
    "photo",
    "id_front_photo",
    "id_back_photo",
    "signature",
    "is_current",
    "valid_from",
    "valid_to",
    "created_by",
    "updated_by",
    "kyc_verified_by",
    "kyc_verified_at",
    "watchlist_notes",
    "is_address_verified",
    "address_proof_type",
    "expected_transaction_frequency",
    "expected_transaction_value",
)

LOAN_HEADERS = {
    "loan_id": "Ticket Number",
    "customer_name": "Customer Name",
    "customer_phone": "Customer Phone",
    "item_category": "Item Category",
    "item_description": "Item Description",
    "principal": "Principal (₱)",
    "interest_rate": "Interest Rate (%)",
    "term_days": "Term (Days)",
    "service_fee": "Service Fee (₱)",
    "interest_amount": "Interest Amount (₱)",
    "total_due": "Total Due (₱)",
    "loan_date": "Loan Date",
    "maturity_date": "Maturity Date",
    "status": "Status",
    "days_until_due": "Days Until Due",
    "purpose_of_loan": "Purpose of Loan",
    "renewal_count": "Renewal Count",
    "created_at": "Created At",
}

LOAN_EXCLUDE = (
    "loan_key",
    "customer_key",
    "item_key",
    "branch_key",
    "created_by_employee_key",
    "parent_loan_key",
    "customer",
    "item",
    "grace_period_days",
    "renewed_at",
    "redeemed_at",
    "forfeited_at",
    "auctioned_at",
    "idempotency_key",
    "updated_at",
)


def row_to_dict(row: Any) -> Dict[str, Any]:
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return "; ".join(format_value(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def rows_to_csv(
    rows: Sequence[Dict[str, Any]],
    headers: Optional[Dict[str, str]] = None,
    exclude_fields: Iterable[str] = (),
) -> str:
    """
    Columns are the union of row keys in first-seen order, minus exclusions;
    headers maps a key to its display name. No rows -> empty string.
    """
    if not rows:
        return ""
    excluded = set(exclude_fields)
    keys: List[str] = []
    for row in rows:
        for key in row:
            if key not in excluded and key not in keys:
                keys.append(key)

    headers = headers or {}
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([headers.get(key, key) for key in keys])
    for row in rows:
        writer.writerow([format_value(row.get(key)) for key in keys])
    return buffer.getvalue()


def filter_by_date_range(
    rows: Sequence[Dict[str, Any]],
    start: Optional[date],
    end: Optional[date],
    date_field: str = "created_at",
) -> List[Dict[str, Any]]:
    """Keep rows whose date_field falls within whole days start..end; rows without it are dropped"""
    if start is None and end is None:
        return list(rows)
    low = datetime.combine(start, time.min) if start else datetime.min
    high = datetime.combine(end, time.max) if end else datetime.max
    kept = []
    for row in rows:
        value = row.get(date_field)
        if not value:
            continue
        if not isinstance(value, datetime):
            value = datetime.combine(value, time.min)
        if low <= value <= high:
            kept.append(row)
    return kept


def export_filename(prefix: str, start: Optional[date], end: Optional[date], today: date) -> str:
    suffix = f"_{start.isoformat()}_to_{end.isoformat()}" if start and end else "_all"
    return f"{prefix}{suffix}_exported_{today.isoformat()}.csv"


class CsvExporter:
    """Builds the customer and loan exports from current store contents"""

    def __init__(self, uow: UnitOfWork, clock: Clock = utcnow, config: Settings = default_settings):
        self.uow = uow
        self.clock = clock
        self.config = config
        self.customers = CustomerRepository(uow.db)
        self.loans = LoanRepository(uow.db)

    def _today(self) -> date:
        return local_date(self.clock(), self.config.timezone)

    def export_customers_csv(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        prefix: str = "customers",
    ) -> Tuple[str, str, int]:
        """(filename, csv text, row count) for current customer versions, filtered on registration date"""
        with self.uow:
            registered = self.customers.registration_times()
            rows = []
            for customer in self.customers.all_current():
                values = row_to_dict(customer)
                values["registered_at"] = to_local(registered[customer.customer_id], self.config.timezone)
                rows.append(values)
        rows = filter_by_date_range(rows, start, end, "registered_at")
        filename = export_filename(prefix, start, end, self._today())
        return filename, rows_to_csv(rows, CUSTOMER_HEADERS, CUSTOMER_EXCLUDE), len(rows)

    def export_loans_csv(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        prefix: str = "loans",
    ) -> Tuple[str, str, int]:
        """(filename, csv text, row count) for loans dated in range, flattened with customer and item"""
        local_now = to_local(self.clock(), self.config.timezone)
        with self.uow:
            pairs = self.loans.all_with_customer()
            rows = []
            for loan, customer in pairs:
                values = row_to_dict(loan)
                values.update(
                    {
                        "customer_name": customer.full_name or "",
                        "customer_phone": customer.phone or "",
                        "item_category": loan.item.category if loan.item else "",
                        "item_description": (loan.item.description if loan.item else "") or "",
                        "days_until_due": calculator.days_until_due(loan.maturity_date, local_now),
                    }
                )
                rows.append(values)
        rows = filter_by_date_range(rows, start, end, "loan_date")
        filename = export_filename(prefix, start, end, self._today())
        return filename, rows_to_csv(rows, LOAN_HEADERS, LOAN_EXCLUDE), len(rows)
