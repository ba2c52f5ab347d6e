"""
Business-day calendar (``payroll_kernel.domain.calendar``).

Responsibility:
    Answers "is this a working day?" for leave day counts, final-month
    salary pro-rating and hourly base pay.  The ``HolidayCalendar`` protocol
    is the seam to an external holiday source; ``WeekendCalendar`` excludes
    Saturdays and Sundays only, ``FixedHolidayCalendar`` additionally
    excludes a known set of dates.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - ``count_business_days`` counts both endpoints (end date inclusive).
    - A range whose end precedes its start counts zero days.
"""

from collections.abc import Iterable
from datetime import date, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class HolidayCalendar(Protocol):
    """External collaborator deciding working days."""

    def is_business_day(self, day: date) -> bool:
        ...


class WeekendCalendar:
    """Monday to Friday are business days; no public holidays."""

    def is_business_day(self, day: date) -> bool:
        return day.weekday() < 5


class FixedHolidayCalendar(WeekendCalendar):
    """Weekend calendar with an explicit set of public holidays."""

    def __init__(self, holidays: Iterable[date] = ()):
        self._holidays = frozenset(holidays)

    @property
    def holidays(self) -> frozenset[date]:
        return self._holidays

    def is_business_day(self, day: date) -> bool:
        return super().is_business_day(day) and day not in self._holidays


def count_business_days(calendar: HolidayCalendar, start: date, end: date) -> int:
    """Number of business days from ``start`` to ``end``, both inclusive."""
    if end < start:
        return 0
    count = 0
    day = start
    while day <= end:
        if calendar.is_business_day(day):
            count += 1
        day += timedelta(days=1)
    return count


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    first = date(year, month, 1)
    if month == 12:
        last = date(year, 12, 31)
    else:
        last = date(year, month + 1, 1) - timedelta(days=1)
    return first, last


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the target month's end."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    _, last = month_bounds(year, month)
    return date(year, month, min(day.day, last.day))
