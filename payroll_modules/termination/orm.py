"""
Termination ORM Persistence Model (``payroll_modules.termination.orm``).

Responsibility:
    SQLAlchemy ORM model persisting terminations and their saved settlement.

Invariants enforced:
    - The saved settlement is JSON with Decimal values as strings.
    - A ``completed`` termination is immutable (ORM immutability listener).
    - At most one termination per employee.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, VersionedMixin


class TerminationModel(VersionedMixin, TrackedBase):
    """ORM model for ``Termination``."""

    __tablename__ = "terminations"

    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    termination_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_working_day: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    notice_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    paid_in_lieu: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pay_components: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", name="uq_termination_employee"),
        Index("idx_termination_status", "status"),
    )

    def to_dto(self):
        from payroll_engines.settlement import TerminationPayComponents, TerminationReason
        from payroll_modules.termination.models import Termination, TerminationStatus
        return Termination(
            id=self.id,
            employee_id=self.employee_id,
            termination_date=self.termination_date,
            last_working_day=self.last_working_day,
            reason=TerminationReason(self.reason),
            status=TerminationStatus(self.status),
            notice_period_days=self.notice_period_days,
            paid_in_lieu=self.paid_in_lieu,
            pay_components=(
                TerminationPayComponents.from_dict(self.pay_components)
                if self.pay_components is not None
                else None
            ),
            created_at=self.created_at,
            finalized_at=self.finalized_at,
            finalized_by=self.finalized_by,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "TerminationModel":
        return cls(
            id=dto.id,
            employee_id=dto.employee_id,
            termination_date=dto.termination_date,
            last_working_day=dto.last_working_day,
            reason=dto.reason.value,
            status=dto.status.value,
            notice_period_days=dto.notice_period_days,
            paid_in_lieu=dto.paid_in_lieu,
            pay_components=dto.pay_components.to_dict() if dto.pay_components else None,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<TerminationModel {self.employee_id}: {self.status}>"
