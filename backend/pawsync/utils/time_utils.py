# backend/pawsync/utils/time_utils.py
"""
Time utilities.

All timestamps stored by pawsync are timezone-aware UTC.
"""

from datetime import datetime, timezone
from typing import Optional

# Constant for UTC timezone to avoid hardcoded timezone.utc references
UTC_TIMEZONE = timezone.utc


def utc_now() -> datetime:
    """
    Get current UTC timestamp.

    Returns:
        Current timezone-aware UTC datetime object
    """
    return datetime.now(UTC_TIMEZONE)


def utc_timestamp() -> float:
    """Get current UTC time as a POSIX timestamp"""
    return utc_now().timestamp()


def format_iso(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string for a datetime, None passes through"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC_TIMEZONE)
    return value.isoformat()


def elapsed_ms(start: datetime, end: Optional[datetime] = None) -> int:
    """Milliseconds between two datetimes (end defaults to now)"""
    end = end or utc_now()
    return int((end - start).total_seconds() * 1000)
