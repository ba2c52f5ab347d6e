"""Employee master seam: employee DTOs, ORM table and the default master."""

from payroll_modules.employees.master import EmployeeMaster, SqlEmployeeMaster
from payroll_modules.employees.models import Employee, EmployeeIssue, EmployeeStatus

__all__ = [
    "Employee",
    "EmployeeIssue",
    "EmployeeMaster",
    "EmployeeStatus",
    "SqlEmployeeMaster",
]
