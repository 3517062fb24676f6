"""
Shared utility functions for tagindex.

Timestamps are stored as naive UTC ISO strings in the database.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp; None and garbage give None."""
    if not value:
        return None
    try:
        return to_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))
    except (ValueError, AttributeError):
        return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return to_utc(value).isoformat(sep=' ')
