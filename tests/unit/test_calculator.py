"""Unit tests for loan term arithmetic"""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from pawnbook.domain.calculator import (
    change_due,
    classify_days_until_due,
    days_overdue,
    days_until_due,
    format_peso,
    gold_value,
    interest_amount,
    is_ltv_warning,
    loan_to_value_percent,
    maturity_date,
    payment_status,
    penalty_amount,
    principal_presets,
    purity_fraction,
    quote_loan,
    redemption_due,
    renewal_quote,
    round_peso,
    total_due,
)
from pawnbook.domain.enums import PaymentStatus


def test_interest_for_one_period():
    """Test 50,000 at 3% for 30 days"""
    assert interest_amount(50_000, 3, 30) == 1_500
    assert total_due(50_000, 1_500) == 51_500


def test_interest_for_three_periods():
    """Test 50,000 at 3% for 90 days is three periods of interest"""
    interest = interest_amount(50_000, 3, 90)
    assert interest == 4_500
    assert total_due(50_000, interest) == 54_500


def test_interest_prorated_and_rounded_half_up():
    """Test partial periods prorate and round half-up to a whole peso"""
    # 10,000 x 2.5% x 45/30 = 375
    assert interest_amount(10_000, Decimal("2.5"), 45) == 375
    # 1,001 x 5% x 30/30 = 50.05 -> 50
    assert interest_amount(1_001, 5, 30) == 50
    # 10 x 5% x 30/30 = 0.5 -> 1
    assert interest_amount(10, 5, 30) == 1


def test_interest_accepts_float_rates_without_binary_error():
    """Test a float rate gives the same result as its decimal spelling"""
    assert interest_amount(33_333, 3.3, 30) == interest_amount(33_333, Decimal("3.3"), 30)


def test_interest_monotonic_in_principal_rate_and_term():
    """Test interest never decreases when any input grows"""
    base = interest_amount(20_000, 3, 60)
    assert interest_amount(25_000, 3, 60) >= base
    assert interest_amount(20_000, 4, 60) >= base
    assert interest_amount(20_000, 3, 90) >= base


def test_total_due_includes_service_fee():
    """Test service fee is added to principal and interest"""
    assert total_due(10_000, 300, 150) == 10_450
    assert total_due(10_000, 300, None) == 10_300


def test_round_peso_half_up():
    """Test rounding is half-up, not banker's rounding"""
    assert round_peso(Decimal("2.5")) == 3
    assert round_peso(Decimal("3.5")) == 4
    assert round_peso(Decimal("2.49")) == 2


def test_loan_to_value():
    """Test LTV percent and warning threshold"""
    assert loan_to_value_percent(32_000, 40_000) == 80
    assert loan_to_value_percent(33_000, 40_000) == 83
    assert loan_to_value_percent(1_000, 0) == 0
    assert is_ltv_warning(80) is False
    assert is_ltv_warning(81) is True
    assert is_ltv_warning(75, threshold=70) is True


def test_maturity_date_is_calendar_days():
    """Test maturity adds calendar days across month ends"""
    assert maturity_date(date(2026, 1, 19), 30) == date(2026, 2, 18)
    assert maturity_date(datetime(2026, 12, 15, 18, 30), 30) == date(2027, 1, 14)


def test_gold_value_18k():
    """Test 10g at 3,500/g and 18k purity"""
    assert gold_value(10, 3_500, "18k") == 26_250


def test_gold_value_other_karats():
    """Test purity table drives the estimate"""
    assert gold_value(10, 3_500, "24k") == round_peso(Decimal("10") * 3_500 * Decimal("0.999"))
    assert gold_value(Decimal("5.5"), 3_000, "14k") == round_peso(Decimal("5.5") * 3_000 * Decimal("0.583"))


def test_purity_defaults_to_18k():
    """Test missing or unknown karat counts as 18k"""
    assert purity_fraction(None) == Decimal("0.75")
    assert purity_fraction("9k") == Decimal("0.75")
    assert purity_fraction(" 22K ") == Decimal("0.917")


def test_principal_presets():
    """Test quick-select amounts at 60/70/80 percent of appraisal"""
    assert principal_presets(40_000) == [(60, 24_000), (70, 28_000), (80, 32_000)]
    assert principal_presets(10_005, (50,)) == [(50, 5_003)]


def test_days_until_due_due_soon():
    """Test maturity five days out is due-soon"""
    now = datetime(2026, 1, 19, 10, 0)
    maturity = now.date() + timedelta(days=5)
    assert days_until_due(maturity, now) == 5
    assert payment_status(maturity, now) is PaymentStatus.DUE_SOON


def test_days_until_due_overdue():
    """Test maturity two days ago is overdue by two days"""
    now = datetime(2026, 1, 19, 10, 0)
    maturity = now.date() - timedelta(days=2)
    assert days_until_due(maturity, now) == -2
    assert days_overdue(maturity, now) == 2
    assert payment_status(maturity, now) is PaymentStatus.OVERDUE


def test_maturity_today_is_overdue():
    """Test a loan maturing today is already overdue by the afternoon"""
    now = datetime(2026, 1, 19, 15, 0)
    assert days_until_due(now.date(), now) == 0
    assert payment_status(now.date(), now) is PaymentStatus.OVERDUE
    assert days_overdue(now.date(), now) == 0


@pytest.mark.parametrize(
    "days,expected",
    [
        (30, PaymentStatus.CURRENT),
        (8, PaymentStatus.CURRENT),
        (7, PaymentStatus.DUE_SOON),
        (1, PaymentStatus.DUE_SOON),
        (0, PaymentStatus.OVERDUE),
        (-15, PaymentStatus.OVERDUE),
    ],
)
def test_classification_partitions_integers(days: int, expected: PaymentStatus):
    """Test every day count lands in exactly one class"""
    assert classify_days_until_due(days) is expected


def test_classification_window_is_configurable():
    """Test a wider due-soon window"""
    assert classify_days_until_due(10, due_soon_days=14) is PaymentStatus.DUE_SOON


def test_penalty_per_started_period():
    """Test penalty counts each started 30-day period past maturity"""
    assert penalty_amount(20_000, 2, 0) == 0
    assert penalty_amount(20_000, 2, 1) == 400
    assert penalty_amount(20_000, 2, 30) == 400
    assert penalty_amount(20_000, 2, 31) == 800


def test_penalty_grace_period():
    """Test nothing is charged within the grace period"""
    assert penalty_amount(20_000, 2, 3, grace_period_days=5) == 0
    assert penalty_amount(20_000, 2, 6, grace_period_days=5) == 400


def test_redemption_and_change():
    """Test redemption amount and change"""
    assert redemption_due(20_600, penalty=400, discount=100) == 20_900
    assert redemption_due(100, discount=500) == 0
    assert change_due(21_000, 20_900) == 100
    assert change_due(20_000, 20_900) == 0


def test_quote_loan():
    """Test the full terms-step quote"""
    quote = quote_loan(32_000, 40_000, 3, 60, service_fee=100, loan_date=date(2026, 1, 19))
    assert quote.interest_amount == 1_920
    assert quote.total_due == 34_020
    assert quote.ltv_percent == 80
    assert quote.ltv_warning is False
    assert quote.maturity_date == date(2026, 3, 20)


def test_quote_loan_warns_on_high_ltv():
    """Test LTV above the threshold is flagged"""
    quote = quote_loan(36_000, 40_000, 3, 30, loan_date=date(2026, 1, 19))
    assert quote.ltv_percent == 90
    assert quote.ltv_warning is True


def test_renewal_quote():
    """Test successor terms keep principal and fee"""
    quote = renewal_quote(20_000, Decimal("3"), 60, 100, date(2026, 2, 18))
    assert quote.principal == 20_000
    assert quote.interest_amount == 1_200
    assert quote.total_due == 21_300
    assert quote.maturity_date == date(2026, 4, 19)


def test_format_peso():
    """Test thousands separators"""
    assert format_peso(1_234_567) == "₱ 1,234,567"
