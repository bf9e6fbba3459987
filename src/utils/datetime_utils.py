"""
Datetime utilities for consistent date handling across the application.

Appointment and ledger times are kept in UTC. Weekdays follow the numbering
persisted by the scheduling tables: 0=Sunday, 1=Monday, ..., 6=Saturday.
"""

import logging
from datetime import datetime, timezone, timedelta, date, time
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Get the current timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Convert a datetime to timezone-aware UTC.

    Naive datetimes are taken to be UTC already. Aware datetimes are converted,
    so 13:00+03:00 becomes 10:00+00:00.

    Args:
        dt: Datetime to normalize, or None

    Returns:
        The same instant in UTC, or None if dt is None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def weekday_index(day: date) -> int:
    """
    Get the weekday of a date using 0=Sunday numbering.

    Python's ``date.weekday()`` uses 0=Monday, so we shift from ISO numbering.
    """
    return day.isoweekday() % 7


def format_appointment_time(dt: datetime) -> str:
    """
    Format a datetime for charge descriptions and messages.

    Formats as "DD.MM.YYYY HH:MM" (e.g. "07.01.2025 10:00").
    """
    return dt.strftime("%d.%m.%Y %H:%M")


def format_long_date(dt: datetime) -> str:
    """Format a datetime as e.g. "07 January 2025"."""
    return dt.strftime("%d %B %Y")


def day_bounds(start_date: date, end_date: date) -> Tuple[datetime, datetime]:
    """
    Convert an inclusive date range into a half-open UTC datetime range.

    Returns:
        (start of start_date, start of the day after end_date)
    """
    start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end
