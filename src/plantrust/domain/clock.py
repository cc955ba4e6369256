"""Clock seam so time-dependent rules stay deterministic under test."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    def __call__(self) -> datetime: ...


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Normalise ``value`` to UTC, rejecting naive datetimes."""

    if value.tzinfo is None:
        raise ValueError("Timestamps must include timezone information")
    return value.astimezone(UTC)


__all__ = ["Clock", "ensure_aware", "utcnow"]
