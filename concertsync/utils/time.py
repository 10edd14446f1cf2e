"""Clock helpers shared by the breaker, limiter and scoring code."""

from __future__ import annotations

from datetime import UTC, date, datetime
import time as _time

__all__ = ["days_until", "epoch_ms", "monotonic_ms", "now_utc", "to_iso"]


def now_utc() -> datetime:
    """Return the current UTC time with timezone information."""

    return datetime.now(UTC)


def monotonic_ms() -> int:
    """Return a monotonic timestamp in milliseconds."""

    return _time.monotonic_ns() // 1_000_000


def epoch_ms() -> int:
    return _time.time_ns() // 1_000_000


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def days_until(target: date, *, today: date | None = None) -> int:
    """Return whole calendar days from ``today`` until ``target``."""

    reference = today or now_utc().date()
    return (target - reference).days
