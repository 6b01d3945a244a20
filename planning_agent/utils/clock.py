"""Clock utilities for testability."""

from datetime import UTC, date, datetime

DAYS_PER_MONTH = 30


def utc_now() -> datetime:
    """Return current UTC time. Override in tests."""
    return datetime.now(UTC)


def days_until(target: date, now: datetime) -> int:
    """Whole days from the date of ``now`` to ``target`` (negative when past)."""
    return (target - now.date()).days


def months_until(target: date, now: datetime) -> float:
    """Approximate months to ``target`` using 30-day months."""
    return days_until(target, now) / DAYS_PER_MONTH
