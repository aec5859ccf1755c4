"""UTC time helpers.

All timestamps are stored as naive UTC datetimes.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """Return the current time as a naive UTC datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def utc_day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return ``[midnight, next midnight)`` of the UTC day containing ``now``."""
    now = as_naive_utc(now)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)
