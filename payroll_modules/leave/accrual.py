"""
Leave accrual rules (``payroll_modules.leave.accrual``).

Pure functions that roll a balance forward from the date it was last
accrued through to ``as_of``.  Month boundaries are processed in order;
at each one:

1. Carried-over days whose expiry date has been reached lapse (only the
   part still unused, capped by what is available).
2. At the start of the leave cycle the available balance is capped at
   ``carry_over_limit`` (excess forfeited) and what remains becomes the
   new carried-over amount, expiring ``carry_over_expire_months`` later.
   Annual types receive their yearly grant here.
3. Monthly types accrue ``accrual_rate``.

``none`` types never accrue but still honour the carry-over cap.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from payroll_kernel.domain.calendar import add_months
from payroll_kernel.domain.values import ZERO, round_days
from payroll_modules.leave.models import AccrualMethod, LeaveBalance, LeaveType


@dataclass(frozen=True)
class AccrualOutcome:
    accrued: Decimal
    carried_over: Decimal
    carry_over_expires_on: date | None
    granted: Decimal
    forfeited: Decimal
    expired: Decimal

    @property
    def changed(self) -> bool:
        return bool(self.granted or self.forfeited or self.expired)


def month_starts_between(after: date, through: date) -> list[date]:
    """First-of-month dates ``d`` with ``after < d <= through``."""
    current = date(after.year, after.month, 1)
    starts: list[date] = []
    while True:
        current = add_months(current, 1)
        if current > through:
            return starts
        starts.append(current)


def roll_forward(leave_type: LeaveType, balance: LeaveBalance, as_of: date) -> AccrualOutcome:
    accrued = balance.accrued
    carried = balance.carried_over
    expires_on = balance.carry_over_expires_on
    granted = forfeited = expired = ZERO
    since = balance.accrued_through or as_of

    def available() -> Decimal:
        return accrued - balance.taken - balance.pending

    def lapse() -> Decimal:
        return min(carried, max(available(), ZERO))

    for boundary in month_starts_between(since, as_of):
        if expires_on is not None and expires_on <= boundary:
            lost = lapse()
            accrued -= lost
            expired += lost
            carried, expires_on = ZERO, None

        if boundary.month == leave_type.cycle_start_month:
            limit = leave_type.carry_over_limit
            if limit is not None and available() > limit:
                excess = available() - limit
                accrued -= excess
                forfeited += excess
            carried = max(available(), ZERO)
            expires_on = (
                add_months(boundary, leave_type.carry_over_expire_months)
                if leave_type.carry_over_expire_months and carried > 0
                else None
            )
            if leave_type.accrual_method is AccrualMethod.ANNUAL:
                accrued += leave_type.accrual_rate
                granted += leave_type.accrual_rate

        if leave_type.accrual_method is AccrualMethod.MONTHLY:
            accrued += leave_type.accrual_rate
            granted += leave_type.accrual_rate

    if expires_on is not None and expires_on <= as_of:
        lost = lapse()
        accrued -= lost
        expired += lost
        carried, expires_on = ZERO, None

    return AccrualOutcome(
        accrued=round_days(accrued),
        carried_over=round_days(carried),
        carry_over_expires_on=expires_on,
        granted=round_days(granted),
        forfeited=round_days(forfeited),
        expired=round_days(expired),
    )
