"""Closed code sets and their lookup tables"""

from decimal import Decimal
from enum import Enum
from typing import Mapping, Type, TypeVar

from pawnbook.domain.exceptions import ValidationError

E = TypeVar("E", bound="CodeEnum")


class CodeEnum(str, Enum):
    """String-valued enum that rejects unknown codes with a ValidationError"""

    @classmethod
    def parse(cls: Type[E], value: object, field: str = "") -> E:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower() if cls._lowercase_codes() else str(value).strip())
        except ValueError:
            name = field or cls.__name__
            allowed = ", ".join(member.value for member in cls)
            raise ValidationError(
                f"Unknown {name} '{value}'",
                {name: f"must be one of: {allowed}"},
            ) from None

    @classmethod
    def _lowercase_codes(cls) -> bool:
        return True

    def __str__(self) -> str:
        return self.value


class IdType(CodeEnum):
    DRIVERS_LICENSE = "drivers_license"
    PASSPORT = "passport"
    UMID = "umid"
    SSS = "sss"
    PHILHEALTH = "philhealth"
    VOTERS_ID = "voters_id"
    TIN = "tin"
    POSTAL_ID = "postal_id"
    PRC_LICENSE = "prc_license"


class Gender(CodeEnum):
    MALE = "male"
    FEMALE = "female"


class OccupationType(CodeEnum):
    EMPLOYED = "employed"
    SELF_EMPLOYED = "self_employed"
    UNEMPLOYED = "unemployed"
    STUDENT = "student"
    RETIRED = "retired"


class IncomeRange(CodeEnum):
    BELOW_10K = "<10k"
    FROM_10K_TO_30K = "10k-30k"
    FROM_30K_TO_50K = "30k-50k"
    FROM_50K_TO_100K = "50k-100k"
    ABOVE_100K = ">100k"
    UNDISCLOSED = "undisclosed"


class KycStatus(CodeEnum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class RiskLevel(CodeEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WatchlistStatus(CodeEnum):
    CLEAR = "clear"
    FLAGGED = "flagged"
    BLOCKED = "blocked"


class LoanStatus(CodeEnum):
    ACTIVE = "active"
    RENEWED = "renewed"
    REDEEMED = "redeemed"
    FORFEITED = "forfeited"
    AUCTIONED = "auctioned"


class ItemStatus(CodeEnum):
    PAWNED = "pawned"
    REDEEMED = "redeemed"
    FORFEITED = "forfeited"
    SOLD = "sold"
    RETURNED = "returned"


class ItemCategory(CodeEnum):
    GOLD = "gold"
    ELECTRONICS = "electronics"
    MOBILE = "mobile"
    OTHER = "other"


class ItemCondition(CodeEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class Karat(CodeEnum):
    K10 = "10k"
    K14 = "14k"
    K18 = "18k"
    K21 = "21k"
    K22 = "22k"
    K24 = "24k"


class PaymentMethod(CodeEnum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    GCASH = "gcash"
    MAYA = "maya"


class CashFlowDirection(CodeEnum):
    INFLOW = "INFLOW"
    OUTFLOW = "OUTFLOW"
    NEUTRAL = "NEUTRAL"

    @classmethod
    def _lowercase_codes(cls) -> bool:
        return False


class TransactionType(CodeEnum):
    NEW_LOAN = "NEW_LOAN"
    REDEMPTION = "REDEMPTION"
    RENEWAL = "RENEWAL"
    PARTIAL_PAYMENT = "PARTIAL_PAYMENT"
    INTEREST_PAYMENT = "INTEREST_PAYMENT"
    PENALTY_PAYMENT = "PENALTY_PAYMENT"
    FEE_COLLECTION = "FEE_COLLECTION"
    FORFEITURE = "FORFEITURE"
    AUCTION_SALE = "AUCTION_SALE"

    @classmethod
    def _lowercase_codes(cls) -> bool:
        return False


class PaymentStatus(CodeEnum):
    """Days-until-due classification shared by every loan view"""

    CURRENT = "current"
    DUE_SOON = "due-soon"
    OVERDUE = "overdue"


class ScreeningCheck(CodeEnum):
    WATCHLIST = "watchlist"
    PEP = "pep"
    ADVERSE_MEDIA = "adverse_media"


class ScreeningStatus(CodeEnum):
    PENDING = "pending"
    CLEAR = "clear"
    FLAGGED = "flagged"
    BLOCKED = "blocked"


def _exhaustive(table: Mapping, enum_cls: Type[Enum]) -> Mapping:
    """Fail at import time if a lookup table misses an enum member"""
    missing = [member.value for member in enum_cls if member not in table]
    if missing:
        raise RuntimeError(f"{enum_cls.__name__} table is missing: {', '.join(missing)}")
    return table


ID_TYPE_LABELS = _exhaustive(
    {
        IdType.DRIVERS_LICENSE: "Driver's License",
        IdType.PASSPORT: "Passport",
        IdType.UMID: "UMID",
        IdType.SSS: "SSS",
        IdType.PHILHEALTH: "PhilHealth",
        IdType.VOTERS_ID: "Voter's ID",
        IdType.TIN: "TIN",
        IdType.POSTAL_ID: "Postal ID",
        IdType.PRC_LICENSE: "PRC License",
    },
    IdType,
)

INCOME_RANGE_LABELS = _exhaustive(
    {
        IncomeRange.BELOW_10K: "Below ₱10,000",
        IncomeRange.FROM_10K_TO_30K: "₱10,000 - ₱30,000",
        IncomeRange.FROM_30K_TO_50K: "₱30,000 - ₱50,000",
        IncomeRange.FROM_50K_TO_100K: "₱50,000 - ₱100,000",
        IncomeRange.ABOVE_100K: "Above ₱100,000",
        IncomeRange.UNDISCLOSED: "Prefer not to say",
    },
    IncomeRange,
)

# Fraction of pure gold per karat rating
KARAT_PURITY = _exhaustive(
    {
        Karat.K10: Decimal("0.417"),
        Karat.K14: Decimal("0.583"),
        Karat.K18: Decimal("0.75"),
        Karat.K21: Decimal("0.875"),
        Karat.K22: Decimal("0.917"),
        Karat.K24: Decimal("0.999"),
    },
    Karat,
)

TRANSACTION_DIRECTIONS = _exhaustive(
    {
        TransactionType.NEW_LOAN: CashFlowDirection.OUTFLOW,
        TransactionType.REDEMPTION: CashFlowDirection.INFLOW,
        TransactionType.RENEWAL: CashFlowDirection.INFLOW,
        TransactionType.PARTIAL_PAYMENT: CashFlowDirection.INFLOW,
        TransactionType.INTEREST_PAYMENT: CashFlowDirection.INFLOW,
        TransactionType.PENALTY_PAYMENT: CashFlowDirection.INFLOW,
        TransactionType.FEE_COLLECTION: CashFlowDirection.INFLOW,
        TransactionType.AUCTION_SALE: CashFlowDirection.INFLOW,
        TransactionType.FORFEITURE: CashFlowDirection.NEUTRAL,
    },
    TransactionType,
)

PAYMENT_STATUS_LABELS = _exhaustive(
    {
        PaymentStatus.CURRENT: "Active",
        PaymentStatus.DUE_SOON: "Due Soon",
        PaymentStatus.OVERDUE: "Overdue",
    },
    PaymentStatus,
)

# Item status each closing loan status cascades to; absent means no cascade
LOAN_TO_ITEM_STATUS = {
    LoanStatus.REDEEMED: ItemStatus.REDEEMED,
    LoanStatus.FORFEITED: ItemStatus.FORFEITED,
    LoanStatus.AUCTIONED: ItemStatus.SOLD,
}

TERMINAL_LOAN_STATUSES = frozenset({LoanStatus.REDEEMED, LoanStatus.FORFEITED, LoanStatus.AUCTIONED})
