"""
Pure domain layer.

Value objects and pure functions with NO dependencies on the ORM, the
database or I/O.  Time enters only through an injected ``Clock``.
"""

from payroll_kernel.domain.calendar import (
    FixedHolidayCalendar,
    HolidayCalendar,
    WeekendCalendar,
    count_business_days,
)
from payroll_kernel.domain.cancellation import CancellationToken
from payroll_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from payroll_kernel.domain.values import ZERO, round_money, to_decimal
from payroll_kernel.domain.workflow import Guard, Transition, Workflow, next_state

__all__ = [
    "CancellationToken",
    "Clock",
    "DeterministicClock",
    "FixedHolidayCalendar",
    "Guard",
    "HolidayCalendar",
    "SystemClock",
    "Transition",
    "WeekendCalendar",
    "Workflow",
    "ZERO",
    "count_business_days",
    "next_state",
    "round_money",
    "to_decimal",
]
