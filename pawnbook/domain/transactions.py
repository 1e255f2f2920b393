"""Cash-flow rules for transaction facts"""

from dataclasses import asdict
from typing import Tuple

from pawnbook.domain.enums import TRANSACTION_DIRECTIONS, CashFlowDirection, TransactionType
from pawnbook.domain.exceptions import ValidationError
from pawnbook.domain.models import TransactionAmounts


def direction_for(txn_type: TransactionType) -> CashFlowDirection:
    return TRANSACTION_DIRECTIONS[txn_type]


def compute_totals(txn_type: TransactionType, amounts: TransactionAmounts) -> Tuple[int, int]:
    """
    Resolve (total_amount, net_cash_flow) for a fact.

    total_amount = principal + interest + service_fee + penalty + other_charges - discount

    net_cash_flow by direction:
    - OUTFLOW: -principal (cash handed to the customer)
    - INFLOW:  +total_amount (cash collected)
    - NEUTRAL: 0 (e.g. forfeiture books value without moving cash)
    """
    negative = {name: "must not be negative" for name, value in asdict(amounts).items() if value < 0}
    if negative:
        raise ValidationError("Transaction amounts must not be negative", negative)

    gross = (
        amounts.principal
        + amounts.interest
        + amounts.service_fee
        + amounts.penalty
        + amounts.other_charges
    )
    if amounts.discount > gross:
        raise ValidationError(
            "Discount exceeds the amount being charged",
            {"discount": f"must not exceed {gross}"},
        )
    total = gross - amounts.discount

    direction = direction_for(txn_type)
    if direction is CashFlowDirection.OUTFLOW:
        net = -amounts.principal
    elif direction is CashFlowDirection.INFLOW:
        net = total
    else:
        net = 0
    return total, net


def sign_matches_direction(txn_type: TransactionType, net_cash_flow: int) -> bool:
    direction = direction_for(txn_type)
    if direction is CashFlowDirection.OUTFLOW:
        return net_cash_flow <= 0
    if direction is CashFlowDirection.INFLOW:
        return net_cash_flow >= 0
    return net_cash_flow == 0
