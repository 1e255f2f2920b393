"""SQLAlchemy ORM models for the pawnshop star schema"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class DimCustomer(Base):
    """Customer version row (SCD Type 2): one row per version, one current row per customer_id"""

    __tablename__ = "dim_customer"

    customer_key = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Text, nullable=False, index=True)

    # Identity
    full_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=True)
    first_name = Column(Text, nullable=True)
    middle_name = Column(Text, nullable=True)
    suffix = Column(Text, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    nationality = Column(Text, nullable=True)
    gender = Column(Text, nullable=True)

    # Government ID
    id_type = Column(Text, nullable=False)
    id_number = Column(Text, nullable=False, index=True)
    id_expiry_date = Column(Date, nullable=True)
    id_issuing_authority = Column(Text, nullable=True)
    id_front_photo = Column(Text, nullable=True)
    id_back_photo = Column(Text, nullable=True)
    photo = Column(Text, nullable=True)
    signature = Column(Text, nullable=True)

    # Contact
    address_line_1 = Column(Text, nullable=True)
    address_line_2 = Column(Text, nullable=True)
    barangay = Column(Text, nullable=True)
    city_municipality = Column(Text, nullable=True)
    province = Column(Text, nullable=True)
    postal_code = Column(Text, nullable=True)
    address = Column(Text, nullable=False)
    phone = Column(Text, nullable=False, index=True)
    alternate_phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    is_address_verified = Column(Boolean, nullable=False, default=False)
    address_proof_type = Column(Text, nullable=True)

    # Financial profile
    occupation = Column(Text, nullable=True)
    employer_business_name = Column(Text, nullable=True)
    nature_of_work = Column(Text, nullable=True)
    monthly_income_range = Column(Text, nullable=True)
    source_of_income = Column(Text, nullable=True)
    expected_transaction_frequency = Column(Text, nullable=True)
    expected_transaction_value = Column(Text, nullable=True)

    # Compliance
    is_pep = Column(Boolean, nullable=False, default=False)
    pep_details = Column(Text, nullable=True)
    kyc_status = Column(Text, nullable=False, default="pending")
    kyc_verified_at = Column(DateTime, nullable=True)
    kyc_verified_by = Column(Integer, nullable=True)
    risk_level = Column(Text, nullable=False, default="low")
    watchlist_status = Column(Text, nullable=False, default="clear")
    watchlist_notes = Column(Text, nullable=True)

    # Versioning
    is_current = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime, nullable=False)
    valid_to = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)

    __table_args__ = (
        # At most one current version per customer_id
        Index(
            "uq_dim_customer_current",
            "customer_id",
            unique=True,
            postgresql_where=is_current.is_(True),
            sqlite_where=is_current.is_(True),
        ),
    )


# Columns owned by the versioning scheme; never copied or set by callers
CUSTOMER_SYSTEM_COLUMNS = frozenset(
    {
        "customer_key",
        "customer_id",
        "is_current",
        "valid_from",
        "valid_to",
        "created_at",
        "updated_at",
    }
)

CUSTOMER_ATTRIBUTE_COLUMNS = tuple(
    c.name for c in DimCustomer.__table__.columns if c.name not in CUSTOMER_SYSTEM_COLUMNS
)


class DimItem(Base):
    """Pawned collateral"""

    __tablename__ = "dim_item"

    item_key = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Text, nullable=False, unique=True)
    branch_key = Column(Integer, nullable=True)

    category = Column(Text, nullable=False)
    subcategory = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    photos = Column(JSON, nullable=True)

    gold_type = Column(Text, nullable=True)
    karat = Column(Text, nullable=True)
    weight_grams = Column(Numeric(10, 3), nullable=True)
    purity_percentage = Column(Numeric(6, 3), nullable=True)

    brand = Column(Text, nullable=True)
    model = Column(Text, nullable=True)
    serial_number = Column(Text, nullable=True)
    imei = Column(Text, nullable=True)
    item_condition = Column(Text, nullable=True)
    accessories = Column(JSON, nullable=True)

    appraisal_value = Column(BigInteger, nullable=False)
    gold_price_per_gram = Column(Numeric(12, 2), nullable=True)
    appraised_by = Column(Integer, nullable=True)
    appraised_at = Column(DateTime, nullable=True)

    storage_location = Column(Text, nullable=True)
    item_source = Column(Text, nullable=True)
    ownership_proof = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default="pawned")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


class DimLoan(Base):
    """Pawn loan (one ticket); renewals chain through parent_loan_key"""

    __tablename__ = "dim_loan"

    loan_key = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(Text, nullable=False, unique=True)
    customer_key = Column(Integer, ForeignKey("dim_customer.customer_key"), nullable=False, index=True)
    item_key = Column(Integer, ForeignKey("dim_item.item_key"), nullable=False, index=True)
    branch_key = Column(Integer, nullable=True)
    created_by_employee_key = Column(Integer, nullable=True)

    principal = Column(BigInteger, nullable=False)
    interest_rate = Column(Numeric(6, 3), nullable=False)
    term_days = Column(Integer, nullable=False)
    service_fee = Column(BigInteger, nullable=False, default=0)
    interest_amount = Column(BigInteger, nullable=False)
    total_due = Column(BigInteger, nullable=False)

    loan_date = Column(Date, nullable=False)
    maturity_date = Column(Date, nullable=False, index=True)
    grace_period_days = Column(Integer, nullable=False, default=0)

    status = Column(Text, nullable=False, default="active", index=True)
    renewed_at = Column(DateTime, nullable=True)
    redeemed_at = Column(DateTime, nullable=True)
    forfeited_at = Column(DateTime, nullable=True)
    auctioned_at = Column(DateTime, nullable=True)

    purpose_of_loan = Column(Text, nullable=True)
    parent_loan_key = Column(Integer, ForeignKey("dim_loan.loan_key"), nullable=True, index=True)
    renewal_count = Column(Integer, nullable=False, default=0)
    idempotency_key = Column(Text, nullable=True, unique=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    customer = relationship("DimCustomer", lazy="joined")
    item = relationship("DimItem", lazy="joined")


class FactTransaction(Base):
    """Append-only cash-flow fact; keys are plain columns so facts outlive deleted loans"""

    __tablename__ = "fact_transactions"

    transaction_key = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(Text, nullable=False, unique=True)
    date_key = Column(Integer, nullable=False, index=True)
    type_code = Column(Text, nullable=False)
    cash_flow_direction = Column(Text, nullable=False)

    customer_key = Column(Integer, nullable=True, index=True)
    loan_key = Column(Integer, nullable=True, index=True)
    item_key = Column(Integer, nullable=True)
    branch_key = Column(Integer, nullable=True)
    employee_key = Column(Integer, nullable=True)

    principal = Column(BigInteger, nullable=False, default=0)
    interest = Column(BigInteger, nullable=False, default=0)
    service_fee = Column(BigInteger, nullable=False, default=0)
    penalty = Column(BigInteger, nullable=False, default=0)
    discount = Column(BigInteger, nullable=False, default=0)
    other_charges = Column(BigInteger, nullable=False, default=0)
    total_amount = Column(BigInteger, nullable=False)
    net_cash_flow = Column(BigInteger, nullable=False)

    payment_method = Column(Text, nullable=True)
    reference_number = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False)


class IdSequence(Base):
    """Server-side counters for human-facing identifiers"""

    __tablename__ = "id_sequence"

    name = Column(Text, primary_key=True)
    scope = Column(Text, primary_key=True)
    last_value = Column(BigInteger, nullable=False, default=0)
