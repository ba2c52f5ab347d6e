"""
Employee Domain Models (``payroll_modules.employees.models``).

Responsibility
--------------
Frozen value objects describing an employee as the payroll core sees it:
compensation profile, statutory flags, bank and tax details and the
recurring earning/deduction lines applied to every pay run.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  The employee
master itself is an external collaborator; these DTOs are what it hands
over.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``salary_amount`` is never negative.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_engines.compensation import (
    CompensationProfile,
    DeductionInput,
    EarningInput,
    SalaryType,
)
from payroll_engines.statutory import PayFrequency
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.employees.models")


class EmployeeStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class EmployeeIssue:
    """A data problem that blocks paying an employee."""
    code: str
    message: str


MISSING_TAX_NUMBER = "MISSING_TAX_NUMBER"
INCOMPLETE_BANK_DETAILS = "INCOMPLETE_BANK_DETAILS"


@dataclass(frozen=True)
class Employee:
    """An employee for payroll purposes."""
    id: UUID
    employee_number: str
    first_name: str
    last_name: str
    start_date: date
    salary_type: SalaryType
    salary_amount: Decimal
    pay_frequency: PayFrequency = PayFrequency.MONTHLY
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    working_days_per_week: int = 5
    working_hours_per_day: Decimal = Decimal("8")
    tax_number: str | None = None
    bank_name: str | None = None
    bank_account_number: str | None = None
    bank_branch_code: str | None = None
    uif_included: bool = True
    sdl_included: bool = True
    eti_eligible: bool = False
    termination_date: date | None = None
    recurring_earnings: tuple[EarningInput, ...] = field(default_factory=tuple)
    recurring_deductions: tuple[DeductionInput, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.salary_amount < 0:
            logger.warning(
                "employee_negative_salary",
                extra={
                    "employee_id": str(self.id),
                    "employee_number": self.employee_number,
                },
            )
            raise ValueError("salary_amount cannot be negative")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self) -> bool:
        return self.status is EmployeeStatus.ACTIVE

    def compensation_profile(self) -> CompensationProfile:
        return CompensationProfile(
            employee_id=self.id,
            salary_type=self.salary_type,
            salary_amount=self.salary_amount,
            pay_frequency=self.pay_frequency,
            working_hours_per_day=self.working_hours_per_day,
            uif_included=self.uif_included,
            sdl_included=self.sdl_included,
        )

    def validate_for_payroll(self) -> tuple[EmployeeIssue, ...]:
        """Data problems that must be fixed before this employee can be paid."""
        issues: list[EmployeeIssue] = []
        if not self.tax_number:
            issues.append(EmployeeIssue(MISSING_TAX_NUMBER, "Missing tax number"))
        if not (self.bank_name and self.bank_account_number and self.bank_branch_code):
            issues.append(EmployeeIssue(INCOMPLETE_BANK_DETAILS, "Bank details incomplete"))
        return tuple(issues)
