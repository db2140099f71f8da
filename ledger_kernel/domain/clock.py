"""
Clock -- injectable time abstraction.

Services never call ``datetime.now()`` directly.  Entry-number years,
``posted_at`` and audit timestamps all come from an injected Clock, so tests
can pin them (including across a year boundary).
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current time.  ``now()`` is always timezone-aware."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Current calendar date in UTC; decides the entry-number year."""
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock frozen at a given instant.

    Time only moves through ``set_time()`` or ``advance()``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = _aware(fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._now

    def set_time(self, time: datetime) -> None:
        self._now = _aware(time)

    def advance(self, seconds: float = 1) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("Clock times must be timezone-aware")
    return value
