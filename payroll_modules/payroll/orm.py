"""
Pay Run ORM Persistence Models (``payroll_modules.payroll.orm``).

Responsibility:
    SQLAlchemy ORM models persisting pay runs, their payslips and the
    per-employee errors raised during calculation.

Invariants enforced:
    - All monetary fields use Decimal (maps to Numeric(38,9)) -- NEVER float.
    - One payslip per (pay_run_id, employee_id).
    - Payslip lines and the inputs they were computed from are JSON with
      Decimal values as strings.
    - Statutory amounts (tax, UIF, SDL) are denormalized onto the payslip
      row so filings and YTD rollups aggregate in SQL.
    - Payslips and errors are owned by their run: deleting a run deletes
      them (ORM cascade, so immutability listeners still fire).

Audit relevance:
    A finalized run and its locked payslips are guarded by the ORM
    immutability listeners registered in ``payroll_kernel.db.immutability``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_kernel.db.base import TrackedBase, VersionedMixin
from payroll_kernel.domain.values import round_money
from payroll_modules._line_codec import (
    contribution_line_from_dict,
    deduction_line_from_dict,
    earning_line_from_dict,
)

# ---------------------------------------------------------------------------
# PayRunModel
# ---------------------------------------------------------------------------


class PayRunModel(VersionedMixin, TrackedBase):
    """
    ORM model for ``PayRun``.

    Guarantees:
        - ``status`` stores the ``PayRunStatus`` value string.
        - Totals equal the sums over the run's payslips after every
          calculation or payslip edit.
    """

    __tablename__ = "pay_runs"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    pay_frequency: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_net: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    employees_with_errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_by: Mapped[UUID | None] = mapped_column(nullable=True)

    payslips: Mapped[list["PayslipModel"]] = relationship(
        back_populates="pay_run",
        cascade="all, delete-orphan",
        order_by="PayslipModel.employee_number",
    )
    errors: Mapped[list["PayRunErrorModel"]] = relationship(
        back_populates="pay_run",
        cascade="all, delete-orphan",
        order_by="PayRunErrorModel.employee_number",
    )

    __table_args__ = (
        Index("idx_pay_run_status", "status"),
        Index("idx_pay_run_pay_date", "pay_date"),
    )

    def to_dto(self):
        from payroll_engines.statutory import PayFrequency
        from payroll_modules.payroll.models import PayRun, PayRunStatus
        return PayRun(
            id=self.id,
            name=self.name,
            period_start=self.period_start,
            period_end=self.period_end,
            pay_date=self.pay_date,
            pay_frequency=PayFrequency(self.pay_frequency),
            status=PayRunStatus(self.status),
            total_gross=round_money(self.total_gross),
            total_deductions=round_money(self.total_deductions),
            total_net=round_money(self.total_net),
            employee_count=self.employee_count,
            employees_with_errors=self.employees_with_errors,
            calculated_at=self.calculated_at,
            finalized_at=self.finalized_at,
            finalized_by=self.finalized_by,
            created_at=self.created_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PayRunModel":
        return cls(
            id=dto.id,
            name=dto.name,
            period_start=dto.period_start,
            period_end=dto.period_end,
            pay_date=dto.pay_date,
            pay_frequency=dto.pay_frequency.value,
            status=dto.status.value,
            total_gross=dto.total_gross,
            total_deductions=dto.total_deductions,
            total_net=dto.total_net,
            employee_count=dto.employee_count,
            employees_with_errors=dto.employees_with_errors,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<PayRunModel {self.name} ({self.status})>"


# ---------------------------------------------------------------------------
# PayslipModel
# ---------------------------------------------------------------------------


class PayslipModel(TrackedBase):
    """
    ORM model for ``EmployeePayslip``.

    ``inputs`` keeps the earning/deduction inputs the payslip was computed
    from, so an edit recomputes from the same basis.
    """

    __tablename__ = "payslips"

    pay_run_id: Mapped[UUID] = mapped_column(ForeignKey("pay_runs.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    earnings: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    deductions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    employer_contributions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    inputs: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    gross_pay: Mapped[Decimal] = mapped_column(nullable=False)
    taxable_gross: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    uif_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    employer_uif: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    sdl_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    ytd_gross: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    ytd_tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    ytd_net: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    pay_run: Mapped[PayRunModel] = relationship(back_populates="payslips")

    __table_args__ = (
        UniqueConstraint("pay_run_id", "employee_id", name="uq_payslip_run_employee"),
        Index("idx_payslip_employee_pay_date", "employee_id", "pay_date"),
    )

    def to_dto(self, errors=()):
        from payroll_modules.payroll.models import EmployeePayslip
        return EmployeePayslip(
            id=self.id,
            pay_run_id=self.pay_run_id,
            employee_id=self.employee_id,
            employee_number=self.employee_number,
            employee_name=self.employee_name,
            earnings=tuple(earning_line_from_dict(e) for e in self.earnings),
            deductions=tuple(deduction_line_from_dict(d) for d in self.deductions),
            employer_contributions=tuple(
                contribution_line_from_dict(c) for c in self.employer_contributions
            ),
            gross_pay=round_money(self.gross_pay),
            taxable_gross=round_money(self.taxable_gross),
            total_deductions=round_money(self.total_deductions),
            net_pay=round_money(self.net_pay),
            ytd_gross=round_money(self.ytd_gross),
            ytd_tax=round_money(self.ytd_tax),
            ytd_net=round_money(self.ytd_net),
            errors=tuple(errors),
            is_locked=self.is_locked,
        )

    def __repr__(self) -> str:
        return f"<PayslipModel {self.employee_number}: net {self.net_pay}>"


# ---------------------------------------------------------------------------
# PayRunErrorModel
# ---------------------------------------------------------------------------


class PayRunErrorModel(TrackedBase):
    """A per-employee error recorded by the latest calculation of a run."""

    __tablename__ = "pay_run_employee_errors"

    pay_run_id: Mapped[UUID] = mapped_column(ForeignKey("pay_runs.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    pay_run: Mapped[PayRunModel] = relationship(back_populates="errors")

    __table_args__ = (
        Index("idx_pay_run_error_run", "pay_run_id"),
    )

    def to_dto(self):
        from payroll_modules.payroll.models import PayRunIssue
        return PayRunIssue(code=self.code, message=self.message)

    def __repr__(self) -> str:
        return f"<PayRunErrorModel {self.employee_number}: {self.code}>"
