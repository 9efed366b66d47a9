"""
Injectable time source.

Services stamp submissions, reviews, uploads and logins with ``now_utc()``;
the compliance window is anchored on ``today()``.  Nothing in the kernel
reads the system clock except ``SystemClock``.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("Clock times must be timezone-aware")
    return value.astimezone(UTC)


class Clock(ABC):
    """Where services get the current instant, always aware UTC."""

    @abstractmethod
    def now_utc(self) -> datetime:
        ...

    def today(self) -> date:
        """UTC calendar date; reporting months are derived from it."""
        return self.now_utc().date()


class SystemClock(Clock):
    """Wall-clock time."""

    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    A clock that only moves when told to.

    Starts at 2024-03-15 12:00 UTC unless given a start.  Repeated calls
    return the same instant, so a return created and submitted in one test
    step carries identical timestamps.
    """

    DEFAULT_START = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)

    def __init__(self, start: datetime | None = None):
        self._now = _require_aware(start or self.DEFAULT_START)

    def now_utc(self) -> datetime:
        return self._now

    def set_time(self, when: datetime) -> None:
        self._now = _require_aware(when)

    def advance(self, seconds: int = 1) -> None:
        self._now += timedelta(seconds=seconds)
