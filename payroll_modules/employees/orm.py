"""
Employee ORM Persistence Model (``payroll_modules.employees.orm``).

Responsibility:
    SQLAlchemy table backing the default employee master.  Recurring
    earning and deduction lines are stored as JSON lists on the row.

Invariants enforced:
    - ``employee_number`` is unique.
    - Enum fields stored as String(50) containing the enum .value string.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase
from payroll_modules._line_codec import (
    deduction_input_from_dict,
    deduction_input_to_dict,
    earning_input_from_dict,
    earning_input_to_dict,
)


class EmployeeModel(TrackedBase):
    """ORM model for ``Employee``."""

    __tablename__ = "payroll_employees"

    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    termination_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    pay_frequency: Mapped[str] = mapped_column(String(50), nullable=False)
    salary_type: Mapped[str] = mapped_column(String(50), nullable=False)
    salary_amount: Mapped[Decimal] = mapped_column(nullable=False)
    working_days_per_week: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    working_hours_per_day: Mapped[Decimal] = mapped_column(nullable=False)
    tax_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bank_branch_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    uif_included: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sdl_included: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    eti_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_earnings: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    recurring_deductions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("employee_number", name="uq_payroll_employee_number"),
        Index("idx_payroll_employee_status", "status"),
        Index("idx_payroll_employee_frequency", "pay_frequency"),
    )

    def to_dto(self):
        from payroll_engines.compensation import SalaryType
        from payroll_engines.statutory import PayFrequency
        from payroll_kernel.domain.values import round_days, round_money
        from payroll_modules.employees.models import Employee, EmployeeStatus

        return Employee(
            id=self.id,
            employee_number=self.employee_number,
            first_name=self.first_name,
            last_name=self.last_name,
            start_date=self.start_date,
            salary_type=SalaryType(self.salary_type),
            salary_amount=round_money(self.salary_amount),
            pay_frequency=PayFrequency(self.pay_frequency),
            status=EmployeeStatus(self.status),
            working_days_per_week=self.working_days_per_week,
            working_hours_per_day=round_days(self.working_hours_per_day),
            tax_number=self.tax_number,
            bank_name=self.bank_name,
            bank_account_number=self.bank_account_number,
            bank_branch_code=self.bank_branch_code,
            uif_included=self.uif_included,
            sdl_included=self.sdl_included,
            eti_eligible=self.eti_eligible,
            termination_date=self.termination_date,
            recurring_earnings=tuple(
                earning_input_from_dict(e) for e in self.recurring_earnings or ()
            ),
            recurring_deductions=tuple(
                deduction_input_from_dict(d) for d in self.recurring_deductions or ()
            ),
        )

    @classmethod
    def from_dto(cls, dto, created_by_id) -> "EmployeeModel":
        return cls(
            id=dto.id,
            employee_number=dto.employee_number,
            first_name=dto.first_name,
            last_name=dto.last_name,
            status=dto.status.value,
            start_date=dto.start_date,
            termination_date=dto.termination_date,
            pay_frequency=dto.pay_frequency.value,
            salary_type=dto.salary_type.value,
            salary_amount=dto.salary_amount,
            working_days_per_week=dto.working_days_per_week,
            working_hours_per_day=dto.working_hours_per_day,
            tax_number=dto.tax_number,
            bank_name=dto.bank_name,
            bank_account_number=dto.bank_account_number,
            bank_branch_code=dto.bank_branch_code,
            uif_included=dto.uif_included,
            sdl_included=dto.sdl_included,
            eti_eligible=dto.eti_eligible,
            recurring_earnings=[earning_input_to_dict(e) for e in dto.recurring_earnings],
            recurring_deductions=[deduction_input_to_dict(d) for d in dto.recurring_deductions],
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<EmployeeModel {self.employee_number}: {self.first_name} {self.last_name}>"
