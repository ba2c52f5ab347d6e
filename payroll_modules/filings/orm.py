"""
Filing ORM Persistence Models (``payroll_modules.filings.orm``).

Responsibility:
    SQLAlchemy ORM models persisting monthly filings and bi-annual
    reconciliations.

Invariants enforced:
    - One monthly filing per (year, month); one reconciliation per
      (tax_year, type).  Regenerating a reconciliation replaces its lines.
    - Per-employee and per-period lines are JSON with Decimal values as
      strings.
    - Submitted/accepted rows are immutable apart from the outcome
      transition (ORM immutability listener).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Date, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, VersionedMixin
from payroll_kernel.domain.values import round_money


def _money(value: Any) -> Decimal:
    return round_money(Decimal(str(value)))


# ---------------------------------------------------------------------------
# MonthlyFilingModel
# ---------------------------------------------------------------------------


class MonthlyFilingModel(VersionedMixin, TrackedBase):
    """ORM model for ``MonthlyFiling``."""

    __tablename__ = "monthly_filings"

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_label: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    total_tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_uif: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_sdl: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pay_runs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    employee_lines: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    submission_date: Mapped[datetime | None] = mapped_column(nullable=True)
    submitted_by: Mapped[UUID | None] = mapped_column(nullable=True)
    outcome_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_monthly_filing_period"),
        Index("idx_monthly_filing_status", "status"),
    )

    def to_dto(self):
        from payroll_modules.filings.models import (
            FilingEmployeeLine,
            FilingPayRun,
            FilingStatus,
            MonthlyFiling,
        )
        pay_runs = tuple(
            FilingPayRun(
                pay_run_id=UUID(p["pay_run_id"]),
                name=p["name"],
                period_start=date.fromisoformat(p["period_start"]),
                period_end=date.fromisoformat(p["period_end"]),
                tax=_money(p["tax"]),
                uif=_money(p["uif"]),
                sdl=_money(p["sdl"]),
                employee_count=p["employee_count"],
            )
            for p in self.pay_runs
        )
        return MonthlyFiling(
            id=self.id,
            year=self.year,
            month=self.month,
            period_label=self.period_label,
            status=FilingStatus(self.status),
            total_tax=round_money(self.total_tax),
            total_uif=round_money(self.total_uif),
            total_sdl=round_money(self.total_sdl),
            employee_count=self.employee_count,
            pay_run_ids=tuple(p.pay_run_id for p in pay_runs),
            pay_runs=pay_runs,
            employee_lines=tuple(
                FilingEmployeeLine(
                    employee_id=UUID(line["employee_id"]),
                    employee_number=line["employee_number"],
                    employee_name=line["employee_name"],
                    tax=_money(line["tax"]),
                    uif=_money(line["uif"]),
                    sdl=_money(line["sdl"]),
                )
                for line in self.employee_lines
            ),
            due_date=self.due_date,
            submission_date=self.submission_date,
            submitted_by=self.submitted_by,
            outcome_at=self.outcome_at,
            rejection_reason=self.rejection_reason,
            created_at=self.created_at,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<MonthlyFilingModel {self.year}-{self.month:02d} ({self.status})>"


# ---------------------------------------------------------------------------
# ReconciliationModel
# ---------------------------------------------------------------------------


class ReconciliationModel(VersionedMixin, TrackedBase):
    """ORM model for ``BiAnnualReconciliation``."""

    __tablename__ = "bi_annual_reconciliations"

    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    payroll_total_tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    filing_total_tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    employee_lines: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    period_lines: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    generated_at: Mapped[datetime] = mapped_column(nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    submitted_by: Mapped[UUID | None] = mapped_column(nullable=True)
    outcome_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tax_year", "type", name="uq_reconciliation_year_type"),
    )

    def to_dto(self):
        from payroll_engines.reconciliation import ReconciliationType
        from payroll_modules.filings.models import (
            BiAnnualReconciliation,
            ReconciliationEmployeeLine,
            ReconciliationPeriodLine,
            ReconciliationStatus,
        )
        return BiAnnualReconciliation(
            id=self.id,
            tax_year=self.tax_year,
            type=ReconciliationType(self.type),
            status=ReconciliationStatus(self.status),
            payroll_total_tax=round_money(self.payroll_total_tax),
            filing_total_tax=round_money(self.filing_total_tax),
            employee_lines=tuple(
                ReconciliationEmployeeLine(
                    employee_id=UUID(line["employee_id"]),
                    payroll_tax=_money(line["payroll_tax"]),
                    filing_tax=_money(line["filing_tax"]),
                    variance=_money(line["variance"]),
                    employee_number=line.get("employee_number"),
                    employee_name=line.get("employee_name"),
                )
                for line in self.employee_lines
            ),
            period_lines=tuple(
                ReconciliationPeriodLine(
                    year=line["year"],
                    month=line["month"],
                    payroll_tax=_money(line["payroll_tax"]),
                    filing_tax=_money(line["filing_tax"]),
                )
                for line in self.period_lines
            ),
            generated_at=self.generated_at,
            submitted_at=self.submitted_at,
            submitted_by=self.submitted_by,
            outcome_at=self.outcome_at,
            rejection_reason=self.rejection_reason,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<ReconciliationModel {self.tax_year} {self.type} ({self.status})>"
