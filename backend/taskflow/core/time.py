"""Time helpers shared by models and services."""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime (the DB column convention)."""
    return datetime.now(UTC).replace(tzinfo=None)


def seconds_between(start: datetime | None, end: datetime) -> int:
    """Whole seconds elapsed from ``start`` to ``end``; zero when unknown or negative."""
    if start is None:
        return 0
    return max(int((end - start).total_seconds()), 0)


def as_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
