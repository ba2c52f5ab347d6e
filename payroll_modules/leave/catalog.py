"""
Leave Type Catalog seam (``payroll_modules.leave.catalog``).

The ledger only reads leave type configuration.  ``SqlLeaveTypeCatalog``
serves it from the ``leave_types`` table; ``register`` exists for seeding.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.exceptions import EntityNotFoundError
from payroll_kernel.logging_config import get_logger
from payroll_modules.leave.models import LeaveType
from payroll_modules.leave.orm import LeaveTypeModel

logger = get_logger("modules.leave.catalog")


@runtime_checkable
class LeaveTypeCatalog(Protocol):
    def get(self, leave_type_id: UUID) -> LeaveType:
        ...

    def by_code(self, code: str) -> LeaveType:
        ...

    def list(self, active_only: bool = False) -> Sequence[LeaveType]:
        ...


class SqlLeaveTypeCatalog:
    """``LeaveTypeCatalog`` backed by ``LeaveTypeModel`` rows."""

    def __init__(self, session: Session):
        self._session = session

    def register(self, leave_type: LeaveType, actor_id: UUID) -> LeaveType:
        try:
            self._session.add(LeaveTypeModel.from_dto(leave_type, created_by_id=actor_id))
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "leave_type_registered",
            extra={"leave_type_id": str(leave_type.id), "code": leave_type.code},
        )
        return leave_type

    def get(self, leave_type_id: UUID) -> LeaveType:
        row = self._session.get(LeaveTypeModel, leave_type_id)
        if row is None:
            raise EntityNotFoundError("LeaveType", str(leave_type_id))
        return row.to_dto()

    def by_code(self, code: str) -> LeaveType:
        row = self._session.execute(
            select(LeaveTypeModel).where(LeaveTypeModel.code == code)
        ).scalar_one_or_none()
        if row is None:
            raise EntityNotFoundError("LeaveType", code)
        return row.to_dto()

    def list(self, active_only: bool = False) -> Sequence[LeaveType]:
        query = select(LeaveTypeModel).order_by(LeaveTypeModel.code)
        if active_only:
            query = query.where(LeaveTypeModel.is_active.is_(True))
        return [row.to_dto() for row in self._session.execute(query).scalars().all()]
