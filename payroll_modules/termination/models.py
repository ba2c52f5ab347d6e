"""
Termination Domain Models (``payroll_modules.termination.models``).

Frozen value objects for employee terminations and the settlement preview.
The settlement figures themselves are ``TerminationPayComponents`` from
``payroll_engines.settlement``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from payroll_engines.settlement import TerminationPayComponents, TerminationReason
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.termination.models")


class TerminationStatus(str, Enum):
    DRAFT = "draft"
    PENDING_PAYROLL = "pending_payroll"
    COMPLETED = "completed"


@dataclass(frozen=True)
class TerminationIssue:
    code: str
    message: str


@dataclass(frozen=True)
class Termination:
    id: UUID
    employee_id: UUID
    termination_date: date
    last_working_day: date
    reason: TerminationReason
    status: TerminationStatus = TerminationStatus.DRAFT
    notice_period_days: int = 30
    paid_in_lieu: bool = False
    pay_components: TerminationPayComponents | None = None
    created_at: datetime | None = None
    finalized_at: datetime | None = None
    finalized_by: UUID | None = None
    version: int = 1

    def __post_init__(self):
        if self.last_working_day > self.termination_date:
            raise ValueError("last_working_day cannot be after termination_date")
        if self.notice_period_days < 0:
            raise ValueError("notice_period_days cannot be negative")

    @property
    def is_completed(self) -> bool:
        return self.status is TerminationStatus.COMPLETED


@dataclass(frozen=True)
class TerminationPreview:
    """Settlement figures with the checks a payroll officer reviews before finalizing."""
    termination_id: UUID
    employee_name: str
    employee_number: str
    termination_date: date
    reason: TerminationReason
    pay_components: TerminationPayComponents
    errors: tuple[TerminationIssue, ...] = field(default_factory=tuple)
    warnings: tuple[TerminationIssue, ...] = field(default_factory=tuple)

    @property
    def can_finalize(self) -> bool:
        return not self.errors
