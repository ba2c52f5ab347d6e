"""
Demo fixtures (``payroll_modules.seed``).

Loads the standard leave type catalog, three demo employees and their
opening leave balances.  Nothing here runs at import time; call
``load_demo_fixtures`` from ``scripts/seed_data.py`` or test setup.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from payroll_engines.compensation import DeductionInput, SalaryType
from payroll_engines.statutory import PayFrequency
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.logging_config import get_logger
from payroll_modules.employees.master import SqlEmployeeMaster
from payroll_modules.employees.models import Employee
from payroll_modules.leave.catalog import SqlLeaveTypeCatalog
from payroll_modules.leave.models import AccrualMethod, LeaveType
from payroll_modules.leave.service import LeaveLedger

logger = get_logger("modules.seed")


def standard_leave_types() -> tuple[LeaveType, ...]:
    return (
        LeaveType(
            id=uuid4(),
            code="ANNUAL",
            name="Annual Leave",
            accrual_method=AccrualMethod.MONTHLY,
            accrual_rate=Decimal("1.25"),
            cycle_start_month=1,
            carry_over_limit=Decimal("5"),
            carry_over_expire_months=6,
        ),
        LeaveType(
            id=uuid4(),
            code="SICK",
            name="Sick Leave",
            accrual_method=AccrualMethod.ANNUAL,
            accrual_rate=Decimal("30"),
            cycle_start_month=1,
            carry_over_limit=Decimal("0"),
        ),
        LeaveType(
            id=uuid4(),
            code="FAMILY",
            name="Family Responsibility Leave",
            accrual_method=AccrualMethod.ANNUAL,
            accrual_rate=Decimal("3"),
            cycle_start_month=1,
            carry_over_limit=Decimal("0"),
        ),
        LeaveType(
            id=uuid4(),
            code="STUDY",
            name="Study Leave",
            accrual_method=AccrualMethod.ANNUAL,
            accrual_rate=Decimal("5"),
            cycle_start_month=1,
            carry_over_limit=Decimal("0"),
            requires_attachment=True,
        ),
        LeaveType(
            id=uuid4(),
            code="UNPAID",
            name="Unpaid Leave",
            accrual_method=AccrualMethod.NONE,
            allow_negative_balance=True,
            is_paid=False,
        ),
    )


def demo_employees() -> tuple[Employee, ...]:
    return (
        Employee(
            id=uuid4(),
            employee_number="EMP001",
            first_name="Thandi",
            last_name="Nkosi",
            start_date=date(2021, 3, 1),
            salary_type=SalaryType.FIXED,
            salary_amount=Decimal("25000.00"),
            tax_number="0123456789",
            bank_name="First National Bank",
            bank_account_number="62000000001",
            bank_branch_code="250655",
        ),
        Employee(
            id=uuid4(),
            employee_number="EMP002",
            first_name="Johan",
            last_name="van Wyk",
            start_date=date(2019, 7, 15),
            salary_type=SalaryType.FIXED,
            salary_amount=Decimal("42000.00"),
            tax_number="0234567890",
            bank_name="Standard Bank",
            bank_account_number="01000000002",
            bank_branch_code="051001",
            recurring_deductions=(
                DeductionInput("MEDICAL", "Medical Aid", amount=Decimal("2450.00"), is_required=True),
                DeductionInput("PENSION", "Pension Fund", rate=Decimal("0.075")),
            ),
        ),
        Employee(
            id=uuid4(),
            employee_number="EMP003",
            first_name="Lerato",
            last_name="Mokoena",
            start_date=date(2024, 1, 8),
            salary_type=SalaryType.HOURLY,
            salary_amount=Decimal("95.00"),
            pay_frequency=PayFrequency.MONTHLY,
            tax_number="0345678901",
            bank_name="Capitec",
            bank_account_number="14000000003",
            bank_branch_code="470010",
        ),
    )


@dataclass(frozen=True)
class DemoFixtures:
    leave_types: tuple[LeaveType, ...]
    employees: tuple[Employee, ...]

    def leave_type(self, code: str) -> LeaveType:
        return next(t for t in self.leave_types if t.code == code)

    def employee(self, employee_number: str) -> Employee:
        return next(e for e in self.employees if e.employee_number == employee_number)


def load_demo_fixtures(
    session: Session,
    actor_id: UUID,
    clock: Clock | None = None,
) -> DemoFixtures:
    """Register the leave catalog and demo employees and open their balances."""
    clock = clock or SystemClock()
    catalog = SqlLeaveTypeCatalog(session)
    master = SqlEmployeeMaster(session)
    ledger = LeaveLedger(session, catalog=catalog, clock=clock)

    leave_types = tuple(catalog.register(t, actor_id) for t in standard_leave_types())
    employees = tuple(master.add(e, actor_id) for e in demo_employees())

    as_of = clock.today()
    opening = {"ANNUAL": Decimal("10"), "SICK": Decimal("30"), "FAMILY": Decimal("3")}
    for employee in employees:
        for leave_type in leave_types:
            ledger.open_balance(
                employee.id,
                leave_type.id,
                actor_id=actor_id,
                accrued=opening.get(leave_type.code, Decimal("0")),
                as_of=as_of,
            )

    logger.info(
        "demo_fixtures_loaded",
        extra={"leave_types": len(leave_types), "employees": len(employees)},
    )
    return DemoFixtures(leave_types=leave_types, employees=employees)
