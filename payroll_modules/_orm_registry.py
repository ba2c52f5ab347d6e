"""
ORM model registry (``payroll_modules._orm_registry``).

Imports every module's ORM file so ``Base.metadata`` knows all tables
before ``create_all``, and declares which rows become read-only once their
status reaches a final value.
"""

from sqlalchemy.engine import Engine

from payroll_kernel.db.immutability import StatusLock
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.orm_registry")


def import_all_orm_models() -> None:
    """Import all ORM modules so their tables register on ``Base.metadata``."""
    import payroll_kernel.models.audit_event  # noqa: F401
    import payroll_modules.employees.orm  # noqa: F401
    import payroll_modules.filings.orm  # noqa: F401
    import payroll_modules.leave.orm  # noqa: F401
    import payroll_modules.payroll.orm  # noqa: F401
    import payroll_modules.termination.orm  # noqa: F401


def status_locks() -> tuple[StatusLock, ...]:
    from payroll_modules.filings.orm import MonthlyFilingModel, ReconciliationModel
    from payroll_modules.leave.orm import LeaveBalanceModel
    from payroll_modules.payroll.orm import PayRunModel, PayslipModel
    from payroll_modules.termination.orm import TerminationModel

    outcome_exits = frozenset({("submitted", "accepted"), ("submitted", "rejected")})
    return (
        StatusLock(PayRunModel, "PayRun", frozenset({"finalized"})),
        StatusLock(PayslipModel, "EmployeePayslip", frozenset({True}), status_attr="is_locked"),
        StatusLock(TerminationModel, "Termination", frozenset({"completed"})),
        StatusLock(
            MonthlyFilingModel,
            "MonthlyFiling",
            frozenset({"submitted", "accepted"}),
            permitted_exits=outcome_exits,
        ),
        StatusLock(
            ReconciliationModel,
            "BiAnnualReconciliation",
            frozenset({"submitted", "accepted"}),
            permitted_exits=outcome_exits,
        ),
        StatusLock(LeaveBalanceModel, "LeaveBalance", frozenset({True}), status_attr="is_locked"),
    )


def create_all_tables(engine: Engine | None = None) -> None:
    """Create every table (default engine unless given) and register immutability listeners."""
    from payroll_kernel.db.engine import create_tables

    create_tables(engine)
