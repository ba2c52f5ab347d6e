"""
Leave ORM Persistence Models (``payroll_modules.leave.orm``).

Responsibility:
    SQLAlchemy ORM models persisting leave types, balances and requests.
    Each ORM class mirrors a DTO in ``payroll_modules.leave.models`` and
    provides ``to_dto()`` / ``from_dto()`` conversion.

Invariants enforced:
    - Day counts use Decimal (Numeric(38,9)) -- NEVER float.
    - One balance row per (employee_id, leave_type_id); that row is the
      serialization point for every mutation of the employee's position.
    - Balances and requests carry an optimistic ``version`` column.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, VersionedMixin
from payroll_kernel.domain.values import round_days

# ---------------------------------------------------------------------------
# LeaveTypeModel
# ---------------------------------------------------------------------------


class LeaveTypeModel(TrackedBase):
    """ORM model for ``LeaveType``."""

    __tablename__ = "leave_types"

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    accrual_method: Mapped[str] = mapped_column(String(50), nullable=False)
    accrual_rate: Mapped[Decimal] = mapped_column(nullable=False)
    cycle_start_month: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    carry_over_limit: Mapped[Decimal | None] = mapped_column(nullable=True)
    carry_over_expire_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    allow_negative_balance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requires_attachment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("code", name="uq_leave_type_code"),
    )

    def to_dto(self):
        from payroll_modules.leave.models import AccrualMethod, LeaveType
        return LeaveType(
            id=self.id,
            code=self.code,
            name=self.name,
            accrual_method=AccrualMethod(self.accrual_method),
            accrual_rate=round_days(self.accrual_rate),
            cycle_start_month=self.cycle_start_month,
            carry_over_limit=(
                round_days(self.carry_over_limit) if self.carry_over_limit is not None else None
            ),
            carry_over_expire_months=self.carry_over_expire_months,
            allow_negative_balance=self.allow_negative_balance,
            requires_attachment=self.requires_attachment,
            is_paid=self.is_paid,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "LeaveTypeModel":
        return cls(
            id=dto.id,
            code=dto.code,
            name=dto.name,
            accrual_method=dto.accrual_method.value,
            accrual_rate=dto.accrual_rate,
            cycle_start_month=dto.cycle_start_month,
            carry_over_limit=dto.carry_over_limit,
            carry_over_expire_months=dto.carry_over_expire_months,
            allow_negative_balance=dto.allow_negative_balance,
            requires_attachment=dto.requires_attachment,
            is_paid=dto.is_paid,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<LeaveTypeModel {self.code}: {self.accrual_method} {self.accrual_rate}>"


# ---------------------------------------------------------------------------
# LeaveBalanceModel
# ---------------------------------------------------------------------------


class LeaveBalanceModel(VersionedMixin, TrackedBase):
    """
    ORM model for ``LeaveBalance``.

    Guarantees:
        - ``available`` is not a column; it is derived in the DTO.
        - A locked balance (closed at termination) is never mutated again.
    """

    __tablename__ = "leave_balances"

    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    leave_type_id: Mapped[UUID] = mapped_column(ForeignKey("leave_types.id"), nullable=False)
    accrued: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    taken: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    pending: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    carried_over: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    carry_over_expires_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    accrued_through: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", name="uq_leave_balance_employee_type"),
        Index("idx_leave_balance_employee", "employee_id"),
    )

    def to_dto(self):
        from payroll_modules.leave.models import LeaveBalance
        return LeaveBalance(
            id=self.id,
            employee_id=self.employee_id,
            leave_type_id=self.leave_type_id,
            accrued=round_days(self.accrued),
            taken=round_days(self.taken),
            pending=round_days(self.pending),
            carried_over=round_days(self.carried_over),
            carry_over_expires_on=self.carry_over_expires_on,
            accrued_through=self.accrued_through,
            is_locked=self.is_locked,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "LeaveBalanceModel":
        return cls(
            id=dto.id,
            employee_id=dto.employee_id,
            leave_type_id=dto.leave_type_id,
            accrued=dto.accrued,
            taken=dto.taken,
            pending=dto.pending,
            carried_over=dto.carried_over,
            carry_over_expires_on=dto.carry_over_expires_on,
            accrued_through=dto.accrued_through,
            is_locked=dto.is_locked,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<LeaveBalanceModel {self.employee_id}/{self.leave_type_id}: "
            f"{self.accrued}-{self.taken}-{self.pending}>"
        )


# ---------------------------------------------------------------------------
# LeaveRequestModel
# ---------------------------------------------------------------------------


class LeaveRequestModel(VersionedMixin, TrackedBase):
    """ORM model for ``LeaveRequest``."""

    __tablename__ = "leave_requests"

    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    leave_type_id: Mapped[UUID] = mapped_column(ForeignKey("leave_types.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    days: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachment_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[UUID | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_leave_request_employee", "employee_id"),
        Index("idx_leave_request_status", "status"),
        Index("idx_leave_request_dates", "start_date", "end_date"),
    )

    def to_dto(self):
        from payroll_modules.leave.models import LeaveRequest, LeaveRequestStatus
        return LeaveRequest(
            id=self.id,
            employee_id=self.employee_id,
            leave_type_id=self.leave_type_id,
            start_date=self.start_date,
            end_date=self.end_date,
            days=round_days(self.days),
            status=LeaveRequestStatus(self.status),
            reason=self.reason,
            attachment_ref=self.attachment_ref,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            rejected_by=self.rejected_by,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            cancelled_by=self.cancelled_by,
            cancelled_at=self.cancelled_at,
            created_at=self.created_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "LeaveRequestModel":
        return cls(
            id=dto.id,
            employee_id=dto.employee_id,
            leave_type_id=dto.leave_type_id,
            start_date=dto.start_date,
            end_date=dto.end_date,
            days=dto.days,
            status=dto.status.value,
            reason=dto.reason,
            attachment_ref=dto.attachment_ref,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<LeaveRequestModel {self.id}: {self.start_date}..{self.end_date} ({self.status})>"
