"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to UTC.

    Naive datetimes (SQLite drops tzinfo on round-trip) are assumed to already
    be in UTC, so values read back from any backend compare consistently.

    Args:
        value: Aware or naive datetime

    Returns:
        Timezone-aware UTC datetime
    """
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)
