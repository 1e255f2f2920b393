"""Human-facing identifier formats

Sequence numbers are always allocated by the store (see SequenceRepository);
these functions only render them.
"""

import re
from datetime import date

from pawnbook.utils.date_utils import day_scope

CUSTOMER_SEQUENCE = "customer"
ITEM_SEQUENCE = "item"
LOAN_SEQUENCE = "loan"
TRANSACTION_SEQUENCE = "transaction"

GLOBAL_SCOPE = "global"

TICKET_PATTERN = re.compile(r"^PT\d{6}-\d{4,}$")
CUSTOMER_ID_PATTERN = re.compile(r"^CUS-\d{6,}$")


def customer_id(seq: int) -> str:
    """CUS-000042"""
    return f"CUS-{seq:06d}"


def ticket_number(on: date, seq: int) -> str:
    """PT260119-0007"""
    return f"PT{day_scope(on)}-{seq:04d}"


def item_id(on: date, seq: int) -> str:
    """ITM260119-0007"""
    return f"ITM{day_scope(on)}-{seq:04d}"


def transaction_id(on: date, seq: int) -> str:
    """TRX-260119-0007"""
    return f"TRX-{day_scope(on)}-{seq:04d}"


def is_ticket_number(value: str) -> bool:
    return bool(TICKET_PATTERN.match(value))


def is_customer_id(value: str) -> bool:
    return bool(CUSTOMER_ID_PATTERN.match(value))
