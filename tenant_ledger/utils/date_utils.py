"""Date manipulation utilities"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def as_utc(value: Union[date, datetime]) -> datetime:
    """Coerce a date or datetime to an aware UTC datetime (dates become midnight)"""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def days_elapsed(reference: Union[date, datetime], now: Optional[datetime] = None) -> int:
    """Whole days between reference and now, floored and clamped at zero"""
    now = as_utc(now or utcnow())
    return max(0, (now - as_utc(reference)) // ONE_DAY)


def in_range(day: date, start: Optional[date], end: Optional[date]) -> bool:
    """Inclusive range check; a missing bound is open"""
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True
