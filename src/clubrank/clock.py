# src/clubrank/clock.py

"""Injectable time source for time-driven transitions.

All timestamps are naive UTC datetimes, matching how they are stored in
the database.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


def utcnow_naive() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return utcnow_naive()


class FrozenClock:
    """A clock that only moves when told to. Used by tests and replays."""

    def __init__(self, start: datetime) -> None:
        self._now = to_naive_utc(start)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = to_naive_utc(value)

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by a ``timedelta(**kwargs)`` and return the new time."""
        self._now = self._now + timedelta(**kwargs)
        return self._now
