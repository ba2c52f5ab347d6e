"""
Pytest fixtures for the payroll core test suite.

Provides:
- An in-memory SQLite database per test (tables and immutability
  listeners created through ``create_tables``)
- Deterministic clock, auditor and one fixture per service
- Factories for employees, leave types and opened leave balances

Environment Variables:
- DATABASE_URL: optional SQLAlchemy URL.  Defaults to in-memory SQLite,
  which is what the suite is written against.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from payroll_config.schema import StatutoryConfig
from payroll_engines.compensation import CompensationCalculator, SalaryType
from payroll_engines.settlement import SettlementCalculator
from payroll_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from payroll_kernel.domain.calendar import WeekendCalendar
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.employees.master import SqlEmployeeMaster
from payroll_modules.employees.models import Employee
from payroll_modules.filings.monthly import MonthlyFilingService
from payroll_modules.filings.reconciliation import ReconciliationService
from payroll_modules.leave.catalog import SqlLeaveTypeCatalog
from payroll_modules.leave.models import AccrualMethod, LeaveType
from payroll_modules.leave.service import LeaveLedger
from payroll_modules.payroll.service import PayRunOrchestrator
from payroll_modules.termination.service import TerminationService

DEFAULT_TEST_URL = "sqlite://"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, pay_runs):
            pay_runs.create(...)
            logs = captured_logs()
            assert any(r["message"] == "pay_run_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_URL)


@pytest.fixture(scope="function")
def engine():
    """Fresh database with every table and the immutability listeners."""
    db_engine = init_engine_from_url(get_database_url())
    drop_tables(db_engine)
    create_tables(db_engine)
    yield db_engine
    drop_tables(db_engine)
    reset_engine()


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    db_session = get_session()
    yield db_session
    db_session.rollback()
    db_session.close()


# =============================================================================
# Core collaborators
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Actor recorded on every write made by the test."""
    return uuid4()


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2026-01-01 12:00 UTC."""
    return DeterministicClock()


@pytest.fixture
def statutory_config() -> StatutoryConfig:
    return StatutoryConfig.with_defaults()


@pytest.fixture
def auditor_service(session: Session, deterministic_clock):
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def employee_master(session: Session) -> SqlEmployeeMaster:
    return SqlEmployeeMaster(session)


@pytest.fixture
def leave_catalog(session: Session) -> SqlLeaveTypeCatalog:
    return SqlLeaveTypeCatalog(session)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def leave_ledger(session, leave_catalog, deterministic_clock, auditor_service) -> LeaveLedger:
    return LeaveLedger(
        session,
        catalog=leave_catalog,
        calendar=WeekendCalendar(),
        clock=deterministic_clock,
        auditor=auditor_service,
    )


@pytest.fixture
def monthly_filings(session, employee_master, deterministic_clock, auditor_service):
    return MonthlyFilingService(
        session,
        employee_master=employee_master,
        clock=deterministic_clock,
        auditor=auditor_service,
    )


@pytest.fixture
def pay_runs(
    session,
    employee_master,
    statutory_config,
    deterministic_clock,
    auditor_service,
    monthly_filings,
) -> PayRunOrchestrator:
    """Orchestrator wired to the monthly filing service as its finalize sink."""
    return PayRunOrchestrator(
        session,
        employee_master=employee_master,
        calculator=CompensationCalculator(statutory_config),
        calendar=WeekendCalendar(),
        clock=deterministic_clock,
        auditor=auditor_service,
        finalized_sink=monthly_filings,
    )


@pytest.fixture
def terminations(
    session,
    employee_master,
    leave_ledger,
    statutory_config,
    deterministic_clock,
    auditor_service,
) -> TerminationService:
    return TerminationService(
        session,
        employee_master=employee_master,
        leave_ledger=leave_ledger,
        calculator=SettlementCalculator(statutory_config, WeekendCalendar()),
        clock=deterministic_clock,
        auditor=auditor_service,
    )


@pytest.fixture
def reconciliations(session, statutory_config, deterministic_clock, auditor_service):
    return ReconciliationService(
        session,
        config=statutory_config,
        clock=deterministic_clock,
        auditor=auditor_service,
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def create_employee(employee_master: SqlEmployeeMaster, test_actor_id: UUID):
    """Factory registering a payable employee; keyword arguments override defaults."""
    counter = {"n": 0}

    def _create(**overrides) -> Employee:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "id": uuid4(),
            "employee_number": f"E{n:03d}",
            "first_name": "Test",
            "last_name": f"Employee {n}",
            "start_date": date(2020, 1, 1),
            "salary_type": SalaryType.FIXED,
            "salary_amount": Decimal("20000.00"),
            "tax_number": f"90000000{n:02d}",
            "bank_name": "Test Bank",
            "bank_account_number": f"1000000{n:03d}",
            "bank_branch_code": "250655",
        }
        fields.update(overrides)
        return employee_master.add(Employee(**fields), test_actor_id)

    return _create


@pytest.fixture
def create_leave_type(leave_catalog: SqlLeaveTypeCatalog, test_actor_id: UUID):
    """Factory registering a leave type; keyword arguments override defaults."""

    def _create(code: str = "ANNUAL", **overrides) -> LeaveType:
        fields = {
            "id": uuid4(),
            "code": code,
            "name": f"{code.title()} Leave",
            "accrual_method": AccrualMethod.NONE,
        }
        fields.update(overrides)
        return leave_catalog.register(LeaveType(**fields), test_actor_id)

    return _create


@pytest.fixture
def annual_leave(create_leave_type) -> LeaveType:
    return create_leave_type(
        "ANNUAL",
        name="Annual Leave",
        accrual_method=AccrualMethod.MONTHLY,
        accrual_rate=Decimal("1.25"),
        carry_over_limit=Decimal("5"),
        carry_over_expire_months=6,
    )


@pytest.fixture
def open_balance(leave_ledger: LeaveLedger, test_actor_id: UUID, deterministic_clock):
    """Factory opening a balance with the given accrued/taken days."""

    def _open(employee_id, leave_type_id, accrued="0", taken="0", as_of=None):
        return leave_ledger.open_balance(
            employee_id,
            leave_type_id,
            actor_id=test_actor_id,
            accrued=Decimal(accrued),
            taken=Decimal(taken),
            as_of=as_of or deterministic_clock.today(),
        )

    return _open
