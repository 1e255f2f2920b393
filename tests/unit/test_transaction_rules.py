"""Unit tests for cash-flow rules"""

import pytest
from pawnbook.domain.enums import CashFlowDirection, TransactionType
from pawnbook.domain.exceptions import ValidationError
from pawnbook.domain.models import TransactionAmounts
from pawnbook.domain.transactions import compute_totals, direction_for, sign_matches_direction


def test_new_loan_is_outflow_of_principal():
    """Test NEW_LOAN nets minus principal even with a fee"""
    total, net = compute_totals(TransactionType.NEW_LOAN, TransactionAmounts(principal=20_000, service_fee=100))
    assert total == 20_100
    assert net == -20_000
    assert direction_for(TransactionType.NEW_LOAN) is CashFlowDirection.OUTFLOW


def test_redemption_collects_total():
    """Test REDEMPTION nets plus the total collected"""
    amounts = TransactionAmounts(principal=20_000, interest=600, service_fee=100, penalty=400, discount=100)
    total, net = compute_totals(TransactionType.REDEMPTION, amounts)
    assert total == 21_000
    assert net == 21_000


def test_forfeiture_moves_no_cash():
    """Test FORFEITURE records value but nets zero"""
    total, net = compute_totals(TransactionType.FORFEITURE, TransactionAmounts(principal=20_000, interest=600))
    assert total == 20_600
    assert net == 0


@pytest.mark.parametrize("txn_type", list(TransactionType))
def test_sign_law_holds_for_every_type(txn_type: TransactionType):
    """Test computed net cash flow always matches the type's direction"""
    amounts = TransactionAmounts(principal=1_000, interest=50, service_fee=10, penalty=5, discount=15, other_charges=2)
    _, net = compute_totals(txn_type, amounts)
    assert sign_matches_direction(txn_type, net)


def test_sign_matches_direction_rejects_wrong_sign():
    """Test wrong-signed flows are detected"""
    assert not sign_matches_direction(TransactionType.NEW_LOAN, 500)
    assert not sign_matches_direction(TransactionType.REDEMPTION, -1)
    assert not sign_matches_direction(TransactionType.FORFEITURE, 10)


def test_negative_amounts_rejected():
    """Test negative components are a validation error"""
    with pytest.raises(ValidationError) as exc_info:
        compute_totals(TransactionType.REDEMPTION, TransactionAmounts(principal=-1))
    assert exc_info.value.errors == {"principal": "must not be negative"}


def test_discount_cannot_exceed_charges():
    """Test an oversized discount is rejected"""
    with pytest.raises(ValidationError) as exc_info:
        compute_totals(TransactionType.INTEREST_PAYMENT, TransactionAmounts(interest=100, discount=101))
    assert "discount" in exc_info.value.errors
