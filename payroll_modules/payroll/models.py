"""
Pay Run Domain Models (``payroll_modules.payroll.models``).

Responsibility
--------------
Frozen value objects for pay runs, employee payslips, per-employee errors
and the read-side list/summary shapes, plus the inputs callers use to add
ad-hoc lines at calculation time and to edit a payslip afterwards.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``; monetary fields are ``Decimal``.
* ``EmployeePayslip``: ``gross_pay = sum(earnings)``,
  ``total_deductions = sum(non-skipped deductions)``,
  ``net_pay = gross_pay - total_deductions >= 0``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_engines.compensation import (
    PAYE,
    SDL,
    UIF,
    UIF_EMPLOYER,
    ContributionLine,
    DeductionInput,
    DeductionLine,
    EarningInput,
    EarningLine,
)
from payroll_engines.statutory import PayFrequency
from payroll_kernel.domain.values import ZERO
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.models")


class PayRunStatus(str, Enum):
    DRAFT = "draft"
    CALCULATING = "calculating"
    READY = "ready"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class PayRunIssue:
    """A per-employee problem recorded during calculation."""
    code: str
    message: str


@dataclass(frozen=True)
class PayRun:
    id: UUID
    name: str
    period_start: date
    period_end: date
    pay_date: date
    pay_frequency: PayFrequency = PayFrequency.MONTHLY
    status: PayRunStatus = PayRunStatus.DRAFT
    total_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_net: Decimal = ZERO
    employee_count: int = 0
    employees_with_errors: int = 0
    calculated_at: datetime | None = None
    finalized_at: datetime | None = None
    finalized_by: UUID | None = None
    created_at: datetime | None = None
    version: int = 1

    @property
    def is_finalized(self) -> bool:
        return self.status is PayRunStatus.FINALIZED


@dataclass(frozen=True)
class EmployeePayslip:
    """One employee's payslip within a pay run."""
    id: UUID
    pay_run_id: UUID
    employee_id: UUID
    employee_number: str
    employee_name: str
    earnings: tuple[EarningLine, ...]
    deductions: tuple[DeductionLine, ...]
    employer_contributions: tuple[ContributionLine, ...] = field(default_factory=tuple)
    gross_pay: Decimal = ZERO
    taxable_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    net_pay: Decimal = ZERO
    ytd_gross: Decimal = ZERO
    ytd_tax: Decimal = ZERO
    ytd_net: Decimal = ZERO
    errors: tuple[PayRunIssue, ...] = field(default_factory=tuple)
    is_locked: bool = False

    def deduction_amount(self, code: str) -> Decimal:
        return sum(
            (d.amount for d in self.deductions if d.code == code and not d.is_skipped),
            ZERO,
        )

    def contribution_amount(self, code: str) -> Decimal:
        return sum((c.amount for c in self.employer_contributions if c.code == code), ZERO)

    @property
    def tax_amount(self) -> Decimal:
        return self.deduction_amount(PAYE)

    @property
    def uif_amount(self) -> Decimal:
        return self.deduction_amount(UIF)

    @property
    def employer_uif(self) -> Decimal:
        return self.contribution_amount(UIF_EMPLOYER)

    @property
    def sdl_amount(self) -> Decimal:
        return self.contribution_amount(SDL)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


@dataclass(frozen=True)
class PayRunEmployee:
    """List row for an in-scope employee of a pay run."""
    employee_id: UUID
    employee_number: str
    employee_name: str
    gross_pay: Decimal = ZERO
    total_deductions: Decimal = ZERO
    net_pay: Decimal = ZERO
    has_payslip: bool = False
    errors: tuple[PayRunIssue, ...] = field(default_factory=tuple)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


@dataclass(frozen=True)
class PayRunSummary:
    pay_run_id: UUID
    status: PayRunStatus
    employee_count: int
    employees_with_errors: int
    total_gross: Decimal
    total_tax: Decimal
    total_uif: Decimal
    total_sdl: Decimal
    total_other_deductions: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employer_uif: Decimal
    employer_sdl: Decimal

    @property
    def total_cost_to_company(self) -> Decimal:
        return self.total_gross + self.employer_uif + self.employer_sdl


@dataclass(frozen=True)
class EmployeeAdjustment:
    """Ad-hoc lines for one employee in one calculation.

    A line whose code matches a recurring line replaces it.
    """
    earnings: tuple[EarningInput, ...] = field(default_factory=tuple)
    deductions: tuple[DeductionInput, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class EarningEdit:
    """Change to one earning line of a calculated payslip.

    An unknown ``code`` adds a new line and then needs ``name``.
    """
    code: str
    amount: Decimal | None = None
    hours: Decimal | None = None
    name: str | None = None

    def __post_init__(self):
        if (self.amount is None) == (self.hours is None):
            raise ValueError(f"earning edit {self.code}: give exactly one of amount or hours")


@dataclass(frozen=True)
class DeductionEdit:
    """Change to one deduction line of a calculated payslip."""
    code: str
    amount: Decimal | None = None
    is_skipped: bool | None = None
    name: str | None = None

    def __post_init__(self):
        if self.amount is None and self.is_skipped is None:
            raise ValueError(f"deduction edit {self.code}: nothing to change")
