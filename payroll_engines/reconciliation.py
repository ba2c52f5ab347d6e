"""
payroll_engines.reconciliation -- Bi-annual filing reconciliation.

Responsibility:
    Compare the income tax actually withheld by finalized pay runs with
    the tax declared on the monthly filings for the same months, in
    aggregate, per month and per employee.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Read-only over its
    inputs; the reconciliation service loads pay runs and filings and
    persists the result.

Invariants enforced:
    - Only finalized pay runs and submitted/accepted filings contribute.
    - variance == payroll - filing, at every level.
    - has_mismatch is true exactly when an employee's variance is non-zero.
    - Output ordering is deterministic (periods chronological, employees
      by id).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.values import ZERO
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

COUNTED_PAY_RUN_STATUSES = frozenset({"finalized"})
COUNTED_FILING_STATUSES = frozenset({"submitted", "accepted"})


class ReconciliationType(str, Enum):
    INTERIM = "interim"
    FINAL = "final"

    @property
    def month_count(self) -> int:
        return 6 if self is ReconciliationType.INTERIM else 12


@dataclass(frozen=True)
class PayRunTaxRecord:
    pay_run_id: UUID
    status: str
    pay_date: date
    employee_tax: Mapping[UUID, Decimal] = field(default_factory=dict)

    @property
    def total_tax(self) -> Decimal:
        return sum(self.employee_tax.values(), ZERO)


@dataclass(frozen=True)
class FilingTaxRecord:
    filing_id: UUID
    status: str
    year: int
    month: int
    total_tax: Decimal
    employee_tax: Mapping[UUID, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class EmployeeVarianceLine:
    employee_id: UUID
    payroll_tax: Decimal
    filing_tax: Decimal
    variance: Decimal

    @property
    def has_mismatch(self) -> bool:
        return self.variance != 0


@dataclass(frozen=True)
class PeriodLine:
    year: int
    month: int
    payroll_tax: Decimal
    filing_tax: Decimal

    @property
    def variance(self) -> Decimal:
        return self.payroll_tax - self.filing_tax


@dataclass(frozen=True)
class ReconciliationResult:
    tax_year: int
    type: ReconciliationType
    covered_periods: tuple[tuple[int, int], ...]
    payroll_total_tax: Decimal
    filing_total_tax: Decimal
    employee_lines: tuple[EmployeeVarianceLine, ...]
    period_lines: tuple[PeriodLine, ...]
    pay_run_ids: tuple[UUID, ...]
    filing_ids: tuple[UUID, ...]

    @property
    def variance(self) -> Decimal:
        return self.payroll_total_tax - self.filing_total_tax

    @property
    def employee_count(self) -> int:
        return len(self.employee_lines)

    @property
    def mismatched_employees(self) -> tuple[EmployeeVarianceLine, ...]:
        return tuple(line for line in self.employee_lines if line.has_mismatch)


def tax_year_months(
    tax_year: int,
    reconciliation_type: ReconciliationType,
    start_month: int = 3,
) -> tuple[tuple[int, int], ...]:
    """(year, month) pairs covered by a reconciliation.

    A tax year is named by the calendar year in which it ends; with a March
    start, tax year 2026 runs March 2025 to February 2026.
    """
    year = tax_year - 1 if start_month > 1 else tax_year
    month = start_month
    periods: list[tuple[int, int]] = []
    for _ in range(reconciliation_type.month_count):
        periods.append((year, month))
        month += 1
        if month > 12:
            month = 1
            year += 1
    return tuple(periods)


class FilingReconciliationEngine:
    """Pure reconciliation of payroll tax against filed tax."""

    def __init__(self, tax_year_start_month: int = 3):
        self._start_month = tax_year_start_month

    @traced_engine("reconciliation", "1.0", fingerprint_fields=("tax_year", "reconciliation_type"))
    def reconcile(
        self,
        tax_year: int,
        reconciliation_type: ReconciliationType,
        pay_runs: Iterable[PayRunTaxRecord],
        monthly_filings: Iterable[FilingTaxRecord],
    ) -> ReconciliationResult:
        periods = tax_year_months(tax_year, reconciliation_type, self._start_month)
        covered = set(periods)

        runs = [
            r for r in pay_runs
            if r.status in COUNTED_PAY_RUN_STATUSES
            and (r.pay_date.year, r.pay_date.month) in covered
        ]
        filings = [
            f for f in monthly_filings
            if f.status in COUNTED_FILING_STATUSES and (f.year, f.month) in covered
        ]

        payroll_by_period: dict[tuple[int, int], Decimal] = {p: ZERO for p in periods}
        filing_by_period: dict[tuple[int, int], Decimal] = {p: ZERO for p in periods}
        payroll_by_employee: dict[UUID, Decimal] = {}
        filing_by_employee: dict[UUID, Decimal] = {}

        for run in runs:
            key = (run.pay_date.year, run.pay_date.month)
            payroll_by_period[key] += run.total_tax
            for employee_id, tax in run.employee_tax.items():
                payroll_by_employee[employee_id] = payroll_by_employee.get(employee_id, ZERO) + tax

        for filing in filings:
            filing_by_period[(filing.year, filing.month)] += filing.total_tax
            for employee_id, tax in filing.employee_tax.items():
                filing_by_employee[employee_id] = filing_by_employee.get(employee_id, ZERO) + tax

        employee_ids = sorted(set(payroll_by_employee) | set(filing_by_employee), key=str)
        employee_lines = tuple(
            EmployeeVarianceLine(
                employee_id=employee_id,
                payroll_tax=payroll_by_employee.get(employee_id, ZERO),
                filing_tax=filing_by_employee.get(employee_id, ZERO),
                variance=(
                    payroll_by_employee.get(employee_id, ZERO)
                    - filing_by_employee.get(employee_id, ZERO)
                ),
            )
            for employee_id in employee_ids
        )
        period_lines = tuple(
            PeriodLine(
                year=year,
                month=month,
                payroll_tax=payroll_by_period[(year, month)],
                filing_tax=filing_by_period[(year, month)],
            )
            for year, month in periods
        )

        result = ReconciliationResult(
            tax_year=tax_year,
            type=reconciliation_type,
            covered_periods=periods,
            payroll_total_tax=sum(payroll_by_period.values(), ZERO),
            filing_total_tax=sum(filing_by_period.values(), ZERO),
            employee_lines=employee_lines,
            period_lines=period_lines,
            pay_run_ids=tuple(r.pay_run_id for r in runs),
            filing_ids=tuple(f.filing_id for f in filings),
        )
        logger.info(
            "reconciliation_computed",
            extra={
                "tax_year": tax_year,
                "type": reconciliation_type.value,
                "payroll_total_tax": str(result.payroll_total_tax),
                "filing_total_tax": str(result.filing_total_tax),
                "variance": str(result.variance),
                "mismatched_employees": len(result.mismatched_employees),
            },
        )
        return result
