"""
Calendar date helpers for subscription expiry.

All arithmetic is done in UTC so results do not depend on the region the
Lambda runs in.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

Timestamp = Union[int, float, date, datetime]


def to_datetime_utc(value: Timestamp) -> datetime:
    """Normalize a Unix timestamp, date or datetime to an aware UTC datetime.

    Naive datetimes are assumed to already be in UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise TypeError("Boolean is not a valid timestamp")
    return datetime.fromtimestamp(value, tz=timezone.utc)


def to_calendar_date_utc(value: Timestamp) -> str:
    """Format a timestamp as YYYY-MM-DD in UTC."""
    dt = to_datetime_utc(value)
    return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"


def yesterday_utc(now: Optional[datetime] = None) -> datetime:
    """Return the current UTC instant minus one calendar day."""
    current = to_datetime_utc(now) if now is not None else datetime.now(timezone.utc)
    return current - timedelta(days=1)


def add_months_utc(value: Timestamp, months: int) -> datetime:
    """
    Add calendar months, clamping to the last day of the target month.

    Jan 31 + 1 month is Feb 28 (Feb 29 in leap years), never Mar 3.
    Time of day is preserved.

    Args:
        value: Starting point (Unix timestamp, date or datetime)
        months: Whole months to add (may be negative)

    Returns:
        Aware UTC datetime
    """
    dt = to_datetime_utc(value)
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)
