"""Leave ledger: leave types, balances, requests and accrual."""

from payroll_modules.leave.catalog import LeaveTypeCatalog, SqlLeaveTypeCatalog
from payroll_modules.leave.models import (
    AccrualMethod,
    LeaveBalance,
    LeaveCalendarEvent,
    LeaveOverview,
    LeaveRequest,
    LeaveRequestStatus,
    LeaveType,
)
from payroll_modules.leave.service import LeaveLedger

__all__ = [
    "AccrualMethod",
    "LeaveBalance",
    "LeaveCalendarEvent",
    "LeaveLedger",
    "LeaveOverview",
    "LeaveRequest",
    "LeaveRequestStatus",
    "LeaveType",
    "LeaveTypeCatalog",
    "SqlLeaveTypeCatalog",
]
