"""
Timestamp helpers.

Timestamps are stored as naive UTC (SQLite has no timezone type), so every
datetime entering the engine is normalised here first.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed, never negative."""
    delta = as_naive_utc(later) - as_naive_utc(earlier)
    return max(0, delta.days)
