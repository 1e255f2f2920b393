"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CustomerFields(BaseModel):
    """Customer attributes accepted on create and update (all optional here; the service enforces required ones)"""

    model_config = ConfigDict(extra="forbid")

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
    id_front_photo: Optional[str] = None
    id_back_photo: Optional[str] = None
    photo: Optional[str] = None
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
    is_pep: Optional[bool] = None
    pep_details: Optional[str] = None


class CustomerResponse(CustomerFields):
    """One stored customer version"""

    model_config = ConfigDict(from_attributes=True)

    customer_key: int
    customer_id: str
    kyc_status: str
    risk_level: str
    watchlist_status: str
    watchlist_notes: Optional[str] = None
    is_current: bool
    valid_from: datetime
    valid_to: Optional[datetime] = None


class WatchlistUpdate(BaseModel):
    status: str = Field(..., description="clear | flagged | blocked")
    notes: Optional[str] = None


class KycUpdate(BaseModel):
    status: str = Field(..., description="pending | verified | rejected")
    verified_by: Optional[int] = None


class ItemFields(BaseModel):
    """Collateral captured in the item step"""

    model_config = ConfigDict(extra="forbid")

    category: str
    description: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    appraisal_value: int = Field(..., gt=0, description="Appraised value in pesos")
    gold_type: Optional[str] = None
    karat: Optional[str] = None
    weight_grams: Optional[Decimal] = None
    gold_price_per_gram: Optional[Decimal] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    imei: Optional[str] = None
    item_condition: Optional[str] = None
    accessories: List[str] = Field(default_factory=list)
    item_source: Optional[str] = None
    ownership_proof: Optional[str] = None


class ItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_key: int
    item_id: str
    category: str
    description: Optional[str] = None
    appraisal_value: int
    status: str


class TermsFields(BaseModel):
    principal: int = Field(..., gt=0, description="Principal in pesos")
    interest_rate: Decimal = Field(..., gt=0, description="Percent per 30 days")
    term_days: int = Field(..., gt=0)
    service_fee: int = Field(0, ge=0)
    purpose_of_loan: Optional[str] = None


class QuoteRequest(TermsFields):
    appraisal_value: int = Field(..., ge=0)
    loan_date: Optional[date] = None


class QuoteResponse(BaseModel):
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
    principal_presets: Dict[int, int]


class ScreeningDecision(BaseModel):
    status: str = Field(..., description="clear | flagged | blocked")
    notes: Optional[str] = None


class LoanSubmissionRequest(BaseModel):
    """Full wizard draft; exactly one of customer_key / customer is expected"""

    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=128)
    customer_key: Optional[int] = None
    customer: Optional[CustomerFields] = None
    item: ItemFields
    terms: TermsFields
    screening: Dict[str, ScreeningDecision] = Field(default_factory=dict)
    run_screening: bool = False


class LoanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    loan_key: int
    loan_id: str
    customer_key: int
    item_key: int
    principal: int
    interest_rate: Decimal
    term_days: int
    service_fee: int
    interest_amount: int
    total_due: int
    loan_date: date
    maturity_date: date
    status: str
    parent_loan_key: Optional[int] = None
    renewal_count: int


class SubmissionResponse(BaseModel):
    ticket_number: str
    scan_code: str
    replayed: bool
    customer_id: str
    item_id: str
    transaction_id: Optional[str] = None
    loan: LoanResponse


class LoanListingResponse(BaseModel):
    loan: LoanResponse
    customer_id: str
    customer_name: str
    customer_phone: str
    days_until_due: int
    payment_status: str


class StatusChangeRequest(BaseModel):
    status: str
    sale_amount: Optional[int] = Field(None, gt=0, description="Required when auctioning")


class RenewRequest(BaseModel):
    term_days: Optional[int] = None
    interest_rate: Optional[Decimal] = Field(None, gt=0)
    payment_method: Optional[str] = None


class RedeemRequest(BaseModel):
    amount_received: int = Field(..., ge=0)
    payment_method: str = "cash"
    discount: int = Field(0, ge=0)


class RedemptionResponse(BaseModel):
    loan_id: str
    amount_due: int
    penalty: int
    discount: int
    amount_received: int
    change: int
    transaction_id: str


class PortfolioSummaryResponse(BaseModel):
    active_loans: int
    due_today: int
    due_soon: int
    overdue: int
    capital_out: int


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    date_key: int
    type_code: str
    cash_flow_direction: str
    customer_key: Optional[int] = None
    loan_key: Optional[int] = None
    principal: int
    interest: int
    service_fee: int
    penalty: int
    discount: int
    other_charges: int
    total_amount: int
    net_cash_flow: int
    payment_method: Optional[str] = None
    created_at: datetime


class CashFlowResponse(BaseModel):
    disbursements: int
    collections: int
    net_cash_flow: int
    transaction_count: int
