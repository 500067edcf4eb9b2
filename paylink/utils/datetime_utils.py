"""
Datetime utilities.

Provides timezone-aware datetime functions.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes read back from stores without tz support.

    Args:
        value: Datetime, naive or aware

    Returns:
        Timezone-aware datetime in UTC
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def add_days(value: datetime, days: int) -> datetime:
    """Add whole days to a datetime."""
    return value + timedelta(days=days)
