"""
Filing Domain Models (``payroll_modules.filings.models``).

Responsibility
--------------
Frozen value objects for the monthly employer tax filing (tax, UIF and SDL
declared per month), the bi-annual reconciliation of payroll tax against
those filings, and the read-side validation/overview shapes.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* Monthly filings move forward only; submitted and accepted filings are
  never edited.
* ``BiAnnualReconciliation.variance = payroll_total_tax - filing_total_tax``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_engines.reconciliation import ReconciliationType
from payroll_kernel.domain.values import ZERO
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.filings.models")


class FilingStatus(str, Enum):
    DRAFT = "draft"
    READY = "ready"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ReconciliationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class FilingOutcome(str, Enum):
    """Result reported back by the tax authority."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class FilingIssue:
    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class FilingEmployeeLine:
    employee_id: UUID
    employee_number: str
    employee_name: str
    tax: Decimal = ZERO
    uif: Decimal = ZERO
    sdl: Decimal = ZERO


@dataclass(frozen=True)
class FilingPayRun:
    """A finalized pay run's contribution to a monthly filing."""
    pay_run_id: UUID
    name: str
    period_start: date
    period_end: date
    tax: Decimal
    uif: Decimal
    sdl: Decimal
    employee_count: int


@dataclass(frozen=True)
class MonthlyFiling:
    id: UUID
    year: int
    month: int
    period_label: str
    status: FilingStatus = FilingStatus.DRAFT
    total_tax: Decimal = ZERO
    total_uif: Decimal = ZERO
    total_sdl: Decimal = ZERO
    employee_count: int = 0
    pay_run_ids: tuple[UUID, ...] = field(default_factory=tuple)
    pay_runs: tuple[FilingPayRun, ...] = field(default_factory=tuple)
    employee_lines: tuple[FilingEmployeeLine, ...] = field(default_factory=tuple)
    due_date: date | None = None
    submission_date: datetime | None = None
    submitted_by: UUID | None = None
    outcome_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    version: int = 1

    def __post_init__(self):
        if not (1 <= self.month <= 12):
            raise ValueError(f"month must be between 1 and 12, got {self.month}")

    @property
    def total_due(self) -> Decimal:
        return self.total_tax + self.total_uif + self.total_sdl

    @property
    def is_locked(self) -> bool:
        return self.status in (FilingStatus.SUBMITTED, FilingStatus.ACCEPTED)


@dataclass(frozen=True)
class FilingValidation:
    errors: tuple[FilingIssue, ...] = field(default_factory=tuple)
    warnings: tuple[FilingIssue, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class FilingSubmission:
    """Totals handed to the external filing submission service."""
    filing_id: UUID
    year: int
    month: int
    period_label: str
    total_tax: Decimal
    total_uif: Decimal
    total_sdl: Decimal
    employee_count: int
    submitted_at: datetime
    submitted_by: UUID

    @property
    def total_due(self) -> Decimal:
        return self.total_tax + self.total_uif + self.total_sdl


@dataclass(frozen=True)
class ReconciliationEmployeeLine:
    employee_id: UUID
    payroll_tax: Decimal
    filing_tax: Decimal
    variance: Decimal
    employee_number: str | None = None
    employee_name: str | None = None

    @property
    def has_mismatch(self) -> bool:
        return self.variance != 0


@dataclass(frozen=True)
class ReconciliationPeriodLine:
    year: int
    month: int
    payroll_tax: Decimal
    filing_tax: Decimal

    @property
    def variance(self) -> Decimal:
        return self.payroll_tax - self.filing_tax


@dataclass(frozen=True)
class BiAnnualReconciliation:
    id: UUID
    tax_year: int
    type: ReconciliationType
    status: ReconciliationStatus = ReconciliationStatus.DRAFT
    payroll_total_tax: Decimal = ZERO
    filing_total_tax: Decimal = ZERO
    employee_lines: tuple[ReconciliationEmployeeLine, ...] = field(default_factory=tuple)
    period_lines: tuple[ReconciliationPeriodLine, ...] = field(default_factory=tuple)
    generated_at: datetime | None = None
    submitted_at: datetime | None = None
    submitted_by: UUID | None = None
    outcome_at: datetime | None = None
    rejection_reason: str | None = None
    version: int = 1

    @property
    def variance(self) -> Decimal:
        return self.payroll_total_tax - self.filing_total_tax

    @property
    def employee_count(self) -> int:
        return len(self.employee_lines)

    @property
    def has_mismatches(self) -> bool:
        return any(line.has_mismatch for line in self.employee_lines)


class AlertSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class FilingAlert:
    severity: AlertSeverity
    title: str
    message: str
    filing_id: UUID | None = None
    due_date: date | None = None


@dataclass(frozen=True)
class FilingOverview:
    as_of: date
    current: MonthlyFiling | None
    latest_reconciliation: BiAnnualReconciliation | None
    alerts: tuple[FilingAlert, ...] = field(default_factory=tuple)
