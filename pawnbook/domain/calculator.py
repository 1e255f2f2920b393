"""Loan term arithmetic - pure functions shared by the wizard preview, submission and lifecycle

Amounts are whole pesos (int). Rates, weights and prices may be int, float or
Decimal; every computation runs in Decimal and rounds half-up to a whole peso so
the preview shown to the operator and the persisted ticket always agree.

Inputs are assumed validated (non-negative numbers). Nothing here raises.
"""

import math
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional, Sequence, Tuple, Union

from pawnbook.domain.enums import KARAT_PURITY, Karat, PaymentStatus
from pawnbook.domain.models import LoanQuote, RenewalQuote
from pawnbook.utils.date_utils import add_days, as_datetime

Number = Union[int, float, Decimal]

DAYS_PER_RATE_PERIOD = 30
DEFAULT_DUE_SOON_DAYS = 7
DEFAULT_LTV_WARNING_PERCENT = 80


def _dec(value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal(0)


def round_peso(value: Number) -> int:
    """Round half-up to the nearest whole peso"""
    return int(_dec(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def loan_to_value_percent(principal: Number, appraisal: Number) -> int:
    """Principal as a whole percentage of appraisal; 0 without an appraisal"""
    appraisal_dec = _dec(appraisal)
    if appraisal_dec <= 0:
        return 0
    return round_peso(_dec(principal) / appraisal_dec * 100)


def is_ltv_warning(ltv_percent: int, threshold: int = DEFAULT_LTV_WARNING_PERCENT) -> bool:
    return ltv_percent > threshold


def interest_amount(principal: Number, monthly_rate_percent: Number, term_days: int) -> int:
    """
    Simple interest prorated per 30-day period.

    Example:
        50,000 at 3% for 90 days -> 50,000 x 0.03 x 3 = 4,500
    """
    return round_peso(
        _dec(principal) * (_dec(monthly_rate_percent) / 100) * (_dec(term_days) / DAYS_PER_RATE_PERIOD)
    )


def total_due(principal: int, interest: int, service_fee: int = 0) -> int:
    return principal + interest + (service_fee or 0)


def maturity_date(loan_date: Union[date, datetime], term_days: int) -> date:
    if isinstance(loan_date, datetime):
        loan_date = loan_date.date()
    return add_days(loan_date, term_days)


def purity_fraction(karat: Union[Karat, str, None]) -> Decimal:
    """Gold fraction for a karat rating; unknown or missing karat counts as 18k"""
    if karat is None:
        return KARAT_PURITY[Karat.K18]
    try:
        return KARAT_PURITY[Karat(str(karat).strip().lower())]
    except ValueError:
        return KARAT_PURITY[Karat.K18]


def gold_value(weight_grams: Number, price_per_gram: Number, karat: Union[Karat, str, None]) -> int:
    return round_peso(_dec(weight_grams) * _dec(price_per_gram) * purity_fraction(karat))


def principal_presets(appraisal: Number, percents: Sequence[int] = (60, 70, 80)) -> List[Tuple[int, int]]:
    """Quick-select principal amounts as (percent, amount) pairs"""
    return [(pct, round_peso(_dec(appraisal) * pct / 100)) for pct in percents]


def days_until_due(maturity: Union[date, datetime], now: Union[date, datetime]) -> int:
    """Whole days until maturity, rounded up; negative when overdue"""
    delta = as_datetime(maturity) - as_datetime(now)
    return math.ceil(delta / timedelta(days=1))


def classify_days_until_due(days: int, due_soon_days: int = DEFAULT_DUE_SOON_DAYS) -> PaymentStatus:
    if days > due_soon_days:
        return PaymentStatus.CURRENT
    if days > 0:
        return PaymentStatus.DUE_SOON
    return PaymentStatus.OVERDUE


def payment_status(
    maturity: Union[date, datetime],
    now: Union[date, datetime],
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> PaymentStatus:
    return classify_days_until_due(days_until_due(maturity, now), due_soon_days)


def days_overdue(maturity: Union[date, datetime], now: Union[date, datetime]) -> int:
    return max(0, -days_until_due(maturity, now))


def penalty_amount(
    principal: Number,
    penalty_rate_percent: Number,
    overdue_days: int,
    grace_period_days: int = 0,
) -> int:
    """Penalty for each started 30-day period past maturity, after the grace period"""
    if overdue_days <= grace_period_days:
        return 0
    periods = math.ceil(overdue_days / DAYS_PER_RATE_PERIOD)
    return round_peso(_dec(principal) * (_dec(penalty_rate_percent) / 100) * periods)


def redemption_due(loan_total_due: int, penalty: int = 0, discount: int = 0) -> int:
    return max(0, loan_total_due + penalty - discount)


def change_due(amount_received: int, amount_due: int) -> int:
    return amount_received - amount_due if amount_received > amount_due else 0


def quote_loan(
    principal: int,
    appraisal: int,
    monthly_rate_percent: Number,
    term_days: int,
    service_fee: int = 0,
    loan_date: Optional[date] = None,
    ltv_warning_percent: int = DEFAULT_LTV_WARNING_PERCENT,
) -> LoanQuote:
    """Every derived figure shown in the terms step, computed in one place"""
    loan_date = loan_date or date.today()
    ltv = loan_to_value_percent(principal, appraisal)
    interest = interest_amount(principal, monthly_rate_percent, term_days)
    return LoanQuote(
        principal=principal,
        interest_rate=_dec(monthly_rate_percent),
        term_days=term_days,
        service_fee=service_fee or 0,
        ltv_percent=ltv,
        ltv_warning=is_ltv_warning(ltv, ltv_warning_percent),
        interest_amount=interest,
        total_due=total_due(principal, interest, service_fee),
        loan_date=loan_date,
        maturity_date=maturity_date(loan_date, term_days),
    )


def renewal_quote(
    principal: int,
    monthly_rate_percent: Number,
    new_term_days: int,
    service_fee: int,
    renewal_date: date,
) -> RenewalQuote:
    """Terms for a successor loan: same principal and fee, interest for the new term"""
    interest = interest_amount(principal, monthly_rate_percent, new_term_days)
    return RenewalQuote(
        principal=principal,
        interest_rate=_dec(monthly_rate_percent),
        term_days=new_term_days,
        service_fee=service_fee,
        interest_amount=interest,
        total_due=total_due(principal, interest, service_fee),
        loan_date=renewal_date,
        maturity_date=maturity_date(renewal_date, new_term_days),
    )


def format_peso(amount: int) -> str:
    return f"₱ {amount:,}"
