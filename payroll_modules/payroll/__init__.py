"""Pay runs: lifecycle, payslip calculation and payslip edits."""

from payroll_modules.payroll.models import (
    DeductionEdit,
    EarningEdit,
    EmployeeAdjustment,
    EmployeePayslip,
    PayRun,
    PayRunEmployee,
    PayRunIssue,
    PayRunStatus,
    PayRunSummary,
)
from payroll_modules.payroll.service import FinalizedPayRunSink, PayRunOrchestrator

__all__ = [
    "DeductionEdit",
    "EarningEdit",
    "EmployeeAdjustment",
    "EmployeePayslip",
    "FinalizedPayRunSink",
    "PayRun",
    "PayRunEmployee",
    "PayRunIssue",
    "PayRunOrchestrator",
    "PayRunStatus",
    "PayRunSummary",
]
