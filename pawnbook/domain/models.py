"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional


@dataclass
class CustomerDraft:
    """Customer fields captured by the wizard before anything is saved"""

    full_name: Optional[str] = None
    last_name: Optional[str] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    date_of_birth: Optional[date] = None
    nationality: Optional[str] = None
    gender: Optional[str] = None

    id_type: Optional[str] = None
    id_number: Optional[str] = None
    id_expiry_date: Optional[date] = None
    id_issuing_authority: Optional[str] = None

    # Evidentiary photo references (storage URLs or object keys)
    photo: Optional[str] = None
    id_front_photo: Optional[str] = None
    id_back_photo: Optional[str] = None
    signature: Optional[str] = None

    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    barangay: Optional[str] = None
    city_municipality: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    alternate_phone: Optional[str] = None
    email: Optional[str] = None

    occupation: Optional[str] = None
    employer_business_name: Optional[str] = None
    nature_of_work: Optional[str] = None
    monthly_income_range: Optional[str] = None
    source_of_income: Optional[str] = None
    is_pep: bool = False
    pep_details: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        """Populated fields only, ready for the customer store"""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ItemDraft:
    """Collateral details captured by the wizard"""

    category: Optional[str] = None
    description: Optional[str] = None
    photos: List[str] = field(default_factory=list)
    appraisal_value: int = 0

    # Gold
    gold_type: Optional[str] = None
    karat: Optional[str] = None
    weight_grams: Optional[Decimal] = None
    gold_price_per_gram: Optional[Decimal] = None

    # Electronics / mobile
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    imei: Optional[str] = None
    item_condition: Optional[str] = None
    accessories: List[str] = field(default_factory=list)

    item_source: Optional[str] = None
    ownership_proof: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None and v != []}


@dataclass
class LoanTerms:
    """Terms entered in the wizard's third step"""

    principal: int = 0
    interest_rate: Decimal = Decimal("3")
    term_days: int = 30
    service_fee: int = 0
    purpose_of_loan: Optional[str] = None


@dataclass
class LoanQuote:
    """Derived loan figures for a set of terms"""

    principal: int
    interest_rate: Decimal
    term_days: int
    service_fee: int
    ltv_percent: int
    ltv_warning: bool
    interest_amount: int
    total_due: int
    loan_date: date
    maturity_date: date


@dataclass
class RenewalQuote:
    """Terms of the successor loan created by a renewal"""

    principal: int
    interest_rate: Decimal
    term_days: int
    service_fee: int
    interest_amount: int
    total_due: int
    loan_date: date
    maturity_date: date


@dataclass
class ScreeningResult:
    """Outcome of one screening check"""

    status: str = "pending"
    details: Optional[str] = None
    notes: Optional[str] = None
    manual: bool = False


@dataclass
class ScreeningCompleted:
    """Emitted when all checks are settled; consumed by the customer flag updater"""

    customer_name: str
    watchlist_status: str
    is_pep: bool
    notes: str
    completed_at: datetime


@dataclass
class TransactionAmounts:
    """Monetary breakdown of a cash-flow fact"""

    principal: int = 0
    interest: int = 0
    service_fee: int = 0
    penalty: int = 0
    discount: int = 0
    other_charges: int = 0


@dataclass
class CashFlowSummary:
    """Signed cash-flow totals over a date range"""

    disbursements: int
    collections: int
    net_cash_flow: int
    transaction_count: int


@dataclass
class RedemptionReceipt:
    """Figures printed when a ticket is redeemed"""

    loan_id: str
    amount_due: int
    penalty: int
    discount: int
    amount_received: int
    change: int
    transaction_id: str


@dataclass
class PortfolioSummary:
    """Dashboard figures for active loans"""

    active_loans: int
    due_today: int
    due_soon: int
    overdue: int
    capital_out: int
