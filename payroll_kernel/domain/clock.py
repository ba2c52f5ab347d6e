"""
Injectable time source.

Services never read the wall clock directly.  "Has this leave started",
"is this filing overdue" and every stamped timestamp (finalized_at,
submission_date, audit occurred_at) come from the Clock handed to the
service, so a test can pin the payroll calendar to any day.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

# Noon keeps today() stable whichever local offset a reader converts to.
_NOON = (12, 0, 0)


class Clock(ABC):
    """Source of the current instant; ``today()`` is its calendar date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock pinned to a fixed instant, 2026-01-01 12:00 UTC unless given.

    Time only moves when a test moves it: ``set_date`` jumps to noon of a
    payroll day, ``advance`` steps forward in seconds.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2026, 1, 1, *_NOON, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def set_date(self, day: date) -> None:
        self.set_time(datetime(day.year, day.month, day.day, *_NOON, tzinfo=timezone.utc))

    def advance(self, seconds: int = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
