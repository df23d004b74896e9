"""
Timestamp helpers for Freshservice payloads
"""
from datetime import datetime, timezone as dt_timezone
from typing import Any, Optional

from dateutil import parser as date_parser


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt_timezone.utc)
    return value


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an API timestamp leniently

    Args:
        value: ISO string, datetime or None

    Returns:
        Timezone-aware datetime, or None when missing or unparseable
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if not isinstance(value, str):
        return None
    try:
        return ensure_aware(date_parser.isoparse(value))
    except (ValueError, OverflowError):
        return None


def hours_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 3600


def minutes_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 60
