"""
Employee Master seam (``payroll_modules.employees.master``).

Responsibility
--------------
The payroll core never owns employee records.  It reads them through the
``EmployeeMaster`` protocol and writes back exactly one thing: the
terminated status once a termination is finalized.

``SqlEmployeeMaster`` is the default implementation over the
``payroll_employees`` table; deployments that keep employees elsewhere
supply their own object with the same three methods.

Failure modes
-------------
* ``get`` on an unknown id  -> ``EntityNotFoundError``.
* ``mark_terminated`` commits on its own; callers invoke it only after
  their own transaction has committed.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_engines.statutory import PayFrequency
from payroll_kernel.exceptions import EntityNotFoundError
from payroll_kernel.logging_config import get_logger
from payroll_modules.employees.models import Employee, EmployeeStatus
from payroll_modules.employees.orm import EmployeeModel

logger = get_logger("modules.employees.master")


@runtime_checkable
class EmployeeMaster(Protocol):
    """Read access to employees plus the termination write-back."""

    def get(self, employee_id: UUID) -> Employee:
        ...

    def list_in_scope(
        self,
        period_start: date,
        period_end: date,
        pay_frequency: PayFrequency,
    ) -> Sequence[Employee]:
        ...

    def mark_terminated(self, employee_id: UUID, termination_date: date) -> None:
        ...


class SqlEmployeeMaster:
    """``EmployeeMaster`` backed by ``EmployeeModel`` rows."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, employee: Employee, actor_id: UUID) -> Employee:
        """Register an employee (seeding and tests)."""
        try:
            self._session.add(EmployeeModel.from_dto(employee, created_by_id=actor_id))
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "employee_added",
            extra={"employee_id": str(employee.id), "employee_number": employee.employee_number},
        )
        return employee

    def get(self, employee_id: UUID) -> Employee:
        row = self._session.get(EmployeeModel, employee_id)
        if row is None:
            raise EntityNotFoundError("Employee", str(employee_id))
        return row.to_dto()

    def list_in_scope(
        self,
        period_start: date,
        period_end: date,
        pay_frequency: PayFrequency,
    ) -> Sequence[Employee]:
        """Active employees on ``pay_frequency`` who started by ``period_end``.

        Terminated employees are left out even when they leave mid-period;
        their final pay is the termination settlement.
        """
        rows = self._session.execute(
            select(EmployeeModel)
            .where(
                EmployeeModel.status == EmployeeStatus.ACTIVE.value,
                EmployeeModel.pay_frequency == pay_frequency.value,
                EmployeeModel.start_date <= period_end,
            )
            .order_by(EmployeeModel.employee_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def list_all(self) -> Sequence[Employee]:
        rows = self._session.execute(
            select(EmployeeModel).order_by(EmployeeModel.employee_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def mark_terminated(self, employee_id: UUID, termination_date: date) -> None:
        row = self._session.get(EmployeeModel, employee_id)
        if row is None:
            raise EntityNotFoundError("Employee", str(employee_id))
        try:
            row.status = EmployeeStatus.TERMINATED.value
            row.termination_date = termination_date
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "employee_marked_terminated",
            extra={
                "employee_id": str(employee_id),
                "termination_date": termination_date.isoformat(),
            },
        )
