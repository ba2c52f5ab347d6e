"""
Leave Domain Models (``payroll_modules.leave.models``).

Responsibility
--------------
Frozen value objects for the leave ledger: leave type configuration,
per-employee balances, leave requests and the read-side overview shapes.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed by
``LeaveLedger`` and returned to callers; ORM counterparts live in
``orm.py``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* Day counts are ``Decimal`` -- NEVER ``float``.
* ``LeaveBalance.available`` is derived (``accrued - taken - pending``);
  it is never stored on its own.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_kernel.domain.values import ZERO
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.leave.models")


class AccrualMethod(str, Enum):
    """How a leave type earns days."""
    MONTHLY = "monthly"
    ANNUAL = "annual"
    NONE = "none"


class LeaveRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LeaveType:
    """Leave type configuration as supplied by the leave type catalog."""
    id: UUID
    code: str
    name: str
    accrual_method: AccrualMethod = AccrualMethod.NONE
    accrual_rate: Decimal = ZERO
    cycle_start_month: int = 1
    carry_over_limit: Decimal | None = None
    carry_over_expire_months: int | None = None
    allow_negative_balance: bool = False
    requires_attachment: bool = False
    is_paid: bool = True
    is_active: bool = True

    def __post_init__(self):
        if not 1 <= self.cycle_start_month <= 12:
            raise ValueError("cycle_start_month must be between 1 and 12")
        if self.accrual_rate < 0:
            raise ValueError("accrual_rate cannot be negative")
        if self.carry_over_limit is not None and self.carry_over_limit < 0:
            raise ValueError("carry_over_limit cannot be negative")


@dataclass(frozen=True)
class LeaveBalance:
    """
    Leave position of one employee for one leave type.

    ``pending`` holds days of submitted requests awaiting a decision; they
    already reduce ``available``.
    """
    id: UUID
    employee_id: UUID
    leave_type_id: UUID
    accrued: Decimal = ZERO
    taken: Decimal = ZERO
    pending: Decimal = ZERO
    carried_over: Decimal = ZERO
    carry_over_expires_on: date | None = None
    accrued_through: date | None = None
    is_locked: bool = False
    version: int = 1

    @property
    def available(self) -> Decimal:
        return self.accrued - self.taken - self.pending

    @property
    def is_negative(self) -> bool:
        return self.available < 0


@dataclass(frozen=True)
class LeaveRequest:
    id: UUID
    employee_id: UUID
    leave_type_id: UUID
    start_date: date
    end_date: date
    days: Decimal
    status: LeaveRequestStatus = LeaveRequestStatus.PENDING
    reason: str | None = None
    attachment_ref: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejected_by: UUID | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    cancelled_by: UUID | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None
    version: int = 1

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and self.end_date >= start


@dataclass(frozen=True)
class LeaveCalendarEvent:
    """Approved leave shown on a month calendar."""
    request_id: UUID
    employee_id: UUID
    leave_type_id: UUID
    leave_type_code: str
    start_date: date
    end_date: date
    days: Decimal


@dataclass(frozen=True)
class LeaveOverview:
    """Dashboard snapshot of leave activity as of a date."""
    as_of: date
    on_leave: tuple[LeaveRequest, ...] = field(default_factory=tuple)
    pending_approvals: tuple[LeaveRequest, ...] = field(default_factory=tuple)
    negative_balances: tuple[LeaveBalance, ...] = field(default_factory=tuple)
    upcoming: tuple[LeaveRequest, ...] = field(default_factory=tuple)

    @property
    def on_leave_count(self) -> int:
        return len({r.employee_id for r in self.on_leave})
