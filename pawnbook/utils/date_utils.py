"""Date manipulation utilities

Stored timestamps are naive UTC. Business dates (loan dates, ticket prefixes,
transaction date keys, due classification) follow the shop's local calendar.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Union
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every stored timestamp uses"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_local(moment: datetime, tz_name: str) -> datetime:
    """Naive UTC timestamp -> naive wall-clock time in tz_name"""
    return moment.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


def local_date(moment: datetime, tz_name: str) -> date:
    return to_local(moment, tz_name).date()


def as_datetime(value: Union[date, datetime]) -> datetime:
    """Promote a date to midnight of that day; datetimes pass through"""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def add_days(from_date: date, days: int) -> date:
    """Add calendar days (no business-day adjustment)"""
    return from_date + timedelta(days=days)


def date_key(value: Union[date, datetime]) -> int:
    """YYYYMMDD integer key used by the transaction facts"""
    d = as_date(value)
    return d.year * 10_000 + d.month * 100 + d.day


def day_scope(value: Union[date, datetime]) -> str:
    """YYMMDD string used in ticket/item identifiers and daily sequences"""
    return as_date(value).strftime("%y%m%d")
