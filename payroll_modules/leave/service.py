"""
Leave Ledger Service (``payroll_modules.leave.service``).

Responsibility
--------------
Tracks per-employee, per-leave-type accrual, consumption and pending days
and enforces the balance invariant ``available = accrued - taken - pending``
across every mutation: request submission, approval, rejection,
cancellation, manual adjustment, periodic accrual and the closing of
balances when an employee is terminated.

Architecture position
---------------------
**Modules layer**.  ``LeaveLedger`` is the sole writer of leave balances and
leave requests.  It reads leave type configuration through the
``LeaveTypeCatalog`` seam and business days through the
``HolidayCalendar`` seam.  The termination service calls
``close_balances(commit=False)`` inside its own transaction; the
termination settlement reads the annual-leave ``available`` figure.

Invariants enforced
-------------------
* ``available`` is derived, never stored.
* Submitting reserves days in ``pending``; approving moves them to
  ``taken``; rejecting or cancelling returns them.
* ``available`` may go negative only when the leave type has
  ``allow_negative_balance``; otherwise submission is rejected.
* Every mutation goes through the single balance row for
  (employee, leave type), loaded ``FOR UPDATE`` and guarded by its
  optimistic ``version``.
* Locked balances (closed at termination) reject all mutation.

Failure modes
-------------
* ``ValidationError``            -- bad dates, zero business days, inactive
  leave type, missing attachment or rejection reason.
* ``InsufficientBalanceError``   -- request or adjustment would overdraw.
* ``InvalidStateError``          -- decision on a request that is not in a
  state allowing it; mutation of a locked balance.
* ``ConcurrentModificationError`` -- another writer committed first
  (retryable).
Every failure rolls back; no partial state is left behind.

Audit relevance
---------------
Submit, approve, reject, cancel, adjustment and closing each append one
hash-chained audit event in the same transaction as the change.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.calendar import (
    HolidayCalendar,
    WeekendCalendar,
    count_business_days,
    month_bounds,
)
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.values import ZERO, round_days, to_decimal
from payroll_kernel.domain.workflow import next_state
from payroll_kernel.exceptions import (
    EntityNotFoundError,
    InsufficientBalanceError,
    InvalidStateError,
    ValidationError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditAction
from payroll_kernel.services.auditor_service import AuditorService, AuditSink
from payroll_modules._service_helpers import load, load_for_update, unit_of_work
from payroll_modules.leave.accrual import roll_forward
from payroll_modules.leave.catalog import LeaveTypeCatalog, SqlLeaveTypeCatalog
from payroll_modules.leave.models import (
    LeaveBalance,
    LeaveCalendarEvent,
    LeaveOverview,
    LeaveRequest,
    LeaveRequestStatus,
)
from payroll_modules.leave.orm import LeaveBalanceModel, LeaveRequestModel
from payroll_modules.leave.workflows import LEAVE_REQUEST_WORKFLOW

logger = get_logger("modules.leave.service")

_BALANCE = "LeaveBalance"
_REQUEST = "LeaveRequest"


class LeaveLedger:
    """
    Leave balances and requests for all employees.

    Contract
    --------
    * Public mutators own the transaction: commit on success, roll back on
      any exception.  ``close_balances(commit=False)`` is the one exception
      and leaves the boundary to its caller.
    * Return values are frozen DTOs read back from the committed rows.
    """

    def __init__(
        self,
        session: Session,
        catalog: LeaveTypeCatalog | None = None,
        calendar: HolidayCalendar | None = None,
        clock: Clock | None = None,
        auditor: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._catalog = catalog or SqlLeaveTypeCatalog(session)
        self._calendar = calendar or WeekendCalendar()
        self._auditor = auditor or AuditorService(session, self._clock)

    # =========================================================================
    # Balances
    # =========================================================================

    def open_balance(
        self,
        employee_id: UUID,
        leave_type_id: UUID,
        *,
        actor_id: UUID,
        accrued: Decimal = ZERO,
        taken: Decimal = ZERO,
        as_of: date | None = None,
    ) -> LeaveBalance:
        """Create the balance row for (employee, leave type).

        ``as_of`` is the date accrual is considered complete through;
        defaults to today.
        """
        accrued = round_days(to_decimal(accrued, "accrued"))
        taken = round_days(to_decimal(taken, "taken"))
        if taken < 0:
            raise ValidationError("taken", "cannot be negative")
        self._catalog.get(leave_type_id)

        with unit_of_work(self._session, _BALANCE, employee_id):
            if self._find_balance(employee_id, leave_type_id) is not None:
                raise ValidationError(
                    "leave_type_id",
                    f"balance already open for employee {employee_id}",
                )
            row = LeaveBalanceModel.from_dto(
                LeaveBalance(
                    id=uuid4(),
                    employee_id=employee_id,
                    leave_type_id=leave_type_id,
                    accrued=accrued,
                    taken=taken,
                    accrued_through=as_of or self._clock.today(),
                ),
                created_by_id=actor_id,
            )
            self._session.add(row)
            self._session.flush()

        logger.info(
            "leave_balance_opened",
            extra={
                "employee_id": str(employee_id),
                "leave_type_id": str(leave_type_id),
                "accrued": str(accrued),
                "taken": str(taken),
            },
        )
        return row.to_dto()

    def get_balance(self, employee_id: UUID, leave_type_id: UUID) -> LeaveBalance:
        row = self._find_balance(employee_id, leave_type_id)
        if row is None:
            raise EntityNotFoundError(_BALANCE, f"{employee_id}/{leave_type_id}")
        return row.to_dto()

    def list_balances(
        self,
        employee_id: UUID | None = None,
        leave_type_id: UUID | None = None,
        negative_only: bool = False,
    ) -> list[LeaveBalance]:
        query = select(LeaveBalanceModel).execution_options(populate_existing=True)
        if employee_id is not None:
            query = query.where(LeaveBalanceModel.employee_id == employee_id)
        if leave_type_id is not None:
            query = query.where(LeaveBalanceModel.leave_type_id == leave_type_id)
        balances = [
            row.to_dto() for row in self._session.execute(query).scalars().all()
        ]
        if negative_only:
            balances = [b for b in balances if b.is_negative]
        return sorted(balances, key=lambda b: (str(b.employee_id), str(b.leave_type_id)))

    def adjust_balance(
        self,
        employee_id: UUID,
        leave_type_id: UUID,
        amount: Decimal,
        reason: str,
        actor_id: UUID,
    ) -> LeaveBalance:
        """Manual correction of ``accrued`` by ``amount`` (may be negative)."""
        amount = round_days(to_decimal(amount, "amount"))
        if amount == 0:
            raise ValidationError("amount", "adjustment cannot be zero")
        if not reason or not reason.strip():
            raise ValidationError("reason", "an adjustment reason is required")
        leave_type = self._catalog.get(leave_type_id)

        with unit_of_work(self._session, _BALANCE, employee_id):
            row = self._balance_for_update(employee_id, leave_type_id, "adjust")
            before = row.to_dto()
            new_available = before.available + amount
            if new_available < 0 and not leave_type.allow_negative_balance:
                raise InsufficientBalanceError(
                    str(employee_id), str(leave_type_id), before.available, -amount,
                )
            row.accrued = before.accrued + amount
            row.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_BALANCE,
                entity_id=row.id,
                action=AuditAction.LEAVE_BALANCE_ADJUSTED,
                actor_id=actor_id,
                payload={
                    "employee_id": employee_id,
                    "leave_type_id": leave_type_id,
                    "amount": amount,
                    "reason": reason,
                    "available_before": before.available,
                    "available_after": new_available,
                },
            )

        logger.info(
            "leave_balance_adjusted",
            extra={
                "employee_id": str(employee_id),
                "leave_type_id": str(leave_type_id),
                "amount": str(amount),
            },
        )
        return row.to_dto()

    def run_accrual(
        self,
        employee_id: UUID,
        leave_type_id: UUID,
        as_of: date,
        actor_id: UUID,
    ) -> LeaveBalance:
        """Roll the balance forward to ``as_of`` (accrual, carry-over, expiry)."""
        leave_type = self._catalog.get(leave_type_id)

        with unit_of_work(self._session, _BALANCE, employee_id):
            row = self._balance_for_update(employee_id, leave_type_id, "accrue")
            before = row.to_dto()
            if before.accrued_through is not None and as_of <= before.accrued_through:
                return before
            outcome = roll_forward(leave_type, before, as_of)
            row.accrued = outcome.accrued
            row.carried_over = outcome.carried_over
            row.carry_over_expires_on = outcome.carry_over_expires_on
            row.accrued_through = as_of
            row.updated_by_id = actor_id
            if outcome.changed:
                self._auditor.record(
                    entity_type=_BALANCE,
                    entity_id=row.id,
                    action=AuditAction.LEAVE_BALANCE_ADJUSTED,
                    actor_id=actor_id,
                    payload={
                        "employee_id": employee_id,
                        "leave_type_id": leave_type_id,
                        "as_of": as_of,
                        "granted": outcome.granted,
                        "forfeited": outcome.forfeited,
                        "expired": outcome.expired,
                    },
                )

        logger.info(
            "leave_accrual_applied",
            extra={
                "employee_id": str(employee_id),
                "leave_type_code": leave_type.code,
                "as_of": as_of.isoformat(),
                "granted": str(outcome.granted),
                "forfeited": str(outcome.forfeited),
                "expired": str(outcome.expired),
            },
        )
        return row.to_dto()

    def close_balances(
        self,
        employee_id: UUID,
        actor_id: UUID,
        *,
        commit: bool = True,
    ) -> tuple[LeaveBalance, ...]:
        """Cancel pending requests, then zero and lock every balance of the employee."""
        if not commit:
            return self._close_balances(employee_id, actor_id)
        with unit_of_work(self._session, _BALANCE, employee_id):
            closed = self._close_balances(employee_id, actor_id)
        return closed

    def _close_balances(self, employee_id: UUID, actor_id: UUID) -> tuple[LeaveBalance, ...]:
        now = self._clock.now()
        pending = self._session.execute(
            select(LeaveRequestModel)
            .where(
                LeaveRequestModel.employee_id == employee_id,
                LeaveRequestModel.status == LeaveRequestStatus.PENDING.value,
            )
            .with_for_update()
        ).scalars().all()
        for request in pending:
            request.status = LeaveRequestStatus.CANCELLED.value
            request.cancelled_by = actor_id
            request.cancelled_at = now
            request.updated_by_id = actor_id

        rows = self._session.execute(
            select(LeaveBalanceModel)
            .where(LeaveBalanceModel.employee_id == employee_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        for row in rows:
            if row.is_locked:
                continue
            before = row.to_dto()
            row.accrued = ZERO
            row.taken = ZERO
            row.pending = ZERO
            row.carried_over = ZERO
            row.carry_over_expires_on = None
            row.is_locked = True
            row.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_BALANCE,
                entity_id=row.id,
                action=AuditAction.LEAVE_BALANCES_CLOSED,
                actor_id=actor_id,
                payload={
                    "employee_id": employee_id,
                    "leave_type_id": row.leave_type_id,
                    "accrued": before.accrued,
                    "taken": before.taken,
                    "pending": before.pending,
                    "available": before.available,
                },
            )
        self._session.flush()

        logger.info(
            "leave_balances_closed",
            extra={
                "employee_id": str(employee_id),
                "balances": len(rows),
                "cancelled_requests": len(pending),
            },
        )
        return tuple(row.to_dto() for row in rows)

    # =========================================================================
    # Requests
    # =========================================================================

    def submit_request(
        self,
        employee_id: UUID,
        leave_type_id: UUID,
        start_date: date,
        end_date: date,
        reason: str | None,
        *,
        actor_id: UUID,
        attachment_ref: str | None = None,
    ) -> LeaveRequest:
        """
        Reserve business days against the employee's balance.

        Raises:
            ValidationError: bad range, zero business days, inactive type,
                missing attachment.
            InsufficientBalanceError: the reservation would overdraw a
                leave type that disallows negative balances.
        """
        if end_date < start_date:
            raise ValidationError("end_date", "end date precedes start date")
        leave_type = self._catalog.get(leave_type_id)
        if not leave_type.is_active:
            raise ValidationError("leave_type_id", f"leave type {leave_type.code} is inactive")
        if leave_type.requires_attachment and not attachment_ref:
            raise ValidationError(
                "attachment_ref", f"leave type {leave_type.code} requires an attachment",
            )
        days = Decimal(count_business_days(self._calendar, start_date, end_date))
        if days == 0:
            raise ValidationError("days", "the requested range contains no business days")

        logger.info(
            "leave_request_submit_started",
            extra={
                "employee_id": str(employee_id),
                "leave_type_code": leave_type.code,
                "days": str(days),
            },
        )

        with unit_of_work(self._session, _BALANCE, employee_id):
            balance_row = self._find_balance(employee_id, leave_type_id, for_update=True)
            if balance_row is None:
                balance_row = LeaveBalanceModel.from_dto(
                    LeaveBalance(
                        id=uuid4(),
                        employee_id=employee_id,
                        leave_type_id=leave_type_id,
                        accrued_through=self._clock.today(),
                    ),
                    created_by_id=actor_id,
                )
                self._session.add(balance_row)
                self._session.flush()
            self._ensure_unlocked(balance_row, "submit")
            balance = balance_row.to_dto()
            if balance.available - days < 0 and not leave_type.allow_negative_balance:
                logger.warning(
                    "leave_request_insufficient_balance",
                    extra={
                        "employee_id": str(employee_id),
                        "leave_type_code": leave_type.code,
                        "available": str(balance.available),
                        "requested": str(days),
                    },
                )
                raise InsufficientBalanceError(
                    str(employee_id), str(leave_type_id), balance.available, days,
                )
            balance_row.pending = balance.pending + days
            balance_row.updated_by_id = actor_id

            request = LeaveRequest(
                id=uuid4(),
                employee_id=employee_id,
                leave_type_id=leave_type_id,
                start_date=start_date,
                end_date=end_date,
                days=days,
                reason=reason,
                attachment_ref=attachment_ref,
            )
            row = LeaveRequestModel.from_dto(request, created_by_id=actor_id)
            self._session.add(row)
            self._session.flush()
            self._auditor.record(
                entity_type=_REQUEST,
                entity_id=row.id,
                action=AuditAction.LEAVE_REQUESTED,
                actor_id=actor_id,
                after_state=LeaveRequestStatus.PENDING,
                payload={
                    "employee_id": employee_id,
                    "leave_type_id": leave_type_id,
                    "start_date": start_date,
                    "end_date": end_date,
                    "days": days,
                },
            )

        logger.info(
            "leave_request_submitted",
            extra={"request_id": str(row.id), "employee_id": str(employee_id)},
        )
        return row.to_dto()

    def approve(self, request_id: UUID, approver_id: UUID) -> LeaveRequest:
        """Move the reserved days from ``pending`` to ``taken``."""
        with unit_of_work(self._session, _REQUEST, request_id):
            row = load_for_update(self._session, LeaveRequestModel, request_id, _REQUEST)
            transition = next_state(
                LEAVE_REQUEST_WORKFLOW, row.status, "approve",
                entity_type=_REQUEST, entity_id=request_id,
            )
            balance_row = self._balance_for_update(row.employee_id, row.leave_type_id, "approve")
            balance_row.pending = balance_row.pending - row.days
            balance_row.taken = balance_row.taken + row.days
            balance_row.updated_by_id = approver_id

            row.status = transition.to_state
            row.approved_by = approver_id
            row.approved_at = self._clock.now()
            row.updated_by_id = approver_id
            self._auditor.record(
                entity_type=_REQUEST,
                entity_id=row.id,
                action=AuditAction.LEAVE_APPROVED,
                actor_id=approver_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={"employee_id": row.employee_id, "days": row.days},
            )

        logger.info(
            "leave_request_approved",
            extra={"request_id": str(request_id), "approver_id": str(approver_id)},
        )
        return row.to_dto()

    def reject(self, request_id: UUID, approver_id: UUID, reason: str) -> LeaveRequest:
        """Return the reserved days to ``available``; a reason is required."""
        if not reason or not reason.strip():
            raise ValidationError("reason", "a rejection reason is required")

        with unit_of_work(self._session, _REQUEST, request_id):
            row = load_for_update(self._session, LeaveRequestModel, request_id, _REQUEST)
            transition = next_state(
                LEAVE_REQUEST_WORKFLOW, row.status, "reject",
                entity_type=_REQUEST, entity_id=request_id,
            )
            balance_row = self._balance_for_update(row.employee_id, row.leave_type_id, "reject")
            balance_row.pending = balance_row.pending - row.days
            balance_row.updated_by_id = approver_id

            row.status = transition.to_state
            row.rejected_by = approver_id
            row.rejected_at = self._clock.now()
            row.rejection_reason = reason
            row.updated_by_id = approver_id
            self._auditor.record(
                entity_type=_REQUEST,
                entity_id=row.id,
                action=AuditAction.LEAVE_REJECTED,
                actor_id=approver_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={"employee_id": row.employee_id, "days": row.days, "reason": reason},
            )

        logger.info(
            "leave_request_rejected",
            extra={"request_id": str(request_id), "approver_id": str(approver_id)},
        )
        return row.to_dto()

    def cancel(self, request_id: UUID, actor_id: UUID) -> LeaveRequest:
        """
        Withdraw a pending request, or an approved one whose leave has not
        started yet.  The days go back to ``available``.
        """
        with unit_of_work(self._session, _REQUEST, request_id):
            row = load_for_update(self._session, LeaveRequestModel, request_id, _REQUEST)
            transition = next_state(
                LEAVE_REQUEST_WORKFLOW, row.status, "cancel",
                entity_type=_REQUEST, entity_id=request_id,
            )
            if transition.guard is not None and not self._clock.today() < row.start_date:
                logger.warning(
                    "leave_request_cancel_guard_failed",
                    extra={"request_id": str(request_id), "guard": transition.guard.name},
                )
                raise InvalidStateError(_REQUEST, str(request_id), row.status, "cancel")

            balance_row = self._balance_for_update(row.employee_id, row.leave_type_id, "cancel")
            if transition.from_state == LeaveRequestStatus.PENDING.value:
                balance_row.pending = balance_row.pending - row.days
            else:
                balance_row.taken = balance_row.taken - row.days
            balance_row.updated_by_id = actor_id

            row.status = transition.to_state
            row.cancelled_by = actor_id
            row.cancelled_at = self._clock.now()
            row.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_REQUEST,
                entity_id=row.id,
                action=AuditAction.LEAVE_CANCELLED,
                actor_id=actor_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={"employee_id": row.employee_id, "days": row.days},
            )

        logger.info(
            "leave_request_cancelled",
            extra={"request_id": str(request_id), "actor_id": str(actor_id)},
        )
        return row.to_dto()

    def get_request(self, request_id: UUID) -> LeaveRequest:
        return load(self._session, LeaveRequestModel, request_id, _REQUEST).to_dto()

    def list_requests(
        self,
        status: LeaveRequestStatus | None = None,
        leave_type_id: UUID | None = None,
        employee_id: UUID | None = None,
    ) -> list[LeaveRequest]:
        query = (
            select(LeaveRequestModel)
            .order_by(LeaveRequestModel.start_date, LeaveRequestModel.employee_id)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            query = query.where(LeaveRequestModel.status == LeaveRequestStatus(status).value)
        if leave_type_id is not None:
            query = query.where(LeaveRequestModel.leave_type_id == leave_type_id)
        if employee_id is not None:
            query = query.where(LeaveRequestModel.employee_id == employee_id)
        return [row.to_dto() for row in self._session.execute(query).scalars().all()]

    # =========================================================================
    # Read models
    # =========================================================================

    def overview(self, as_of: date | None = None) -> LeaveOverview:
        """Who is on leave, what awaits approval, what is overdrawn, what is next."""
        as_of = as_of or self._clock.today()
        approved = self.list_requests(status=LeaveRequestStatus.APPROVED)
        return LeaveOverview(
            as_of=as_of,
            on_leave=tuple(r for r in approved if r.start_date <= as_of <= r.end_date),
            pending_approvals=tuple(self.list_requests(status=LeaveRequestStatus.PENDING)),
            negative_balances=tuple(self.list_balances(negative_only=True)),
            upcoming=tuple(r for r in approved if r.start_date > as_of),
        )

    def calendar_events(self, year: int, month: int) -> list[LeaveCalendarEvent]:
        """Approved leave starting in the given month."""
        first, last = month_bounds(year, month)
        codes = {t.id: t.code for t in self._catalog.list()}
        return [
            LeaveCalendarEvent(
                request_id=r.id,
                employee_id=r.employee_id,
                leave_type_id=r.leave_type_id,
                leave_type_code=codes.get(r.leave_type_id, ""),
                start_date=r.start_date,
                end_date=r.end_date,
                days=r.days,
            )
            for r in self.list_requests(status=LeaveRequestStatus.APPROVED)
            if first <= r.start_date <= last
        ]

    def annual_leave_available(self, employee_id: UUID, annual_leave_code: str) -> Decimal:
        """``available`` on the employee's annual-leave balance (zero if none)."""
        leave_type = self._catalog.by_code(annual_leave_code)
        row = self._find_balance(employee_id, leave_type.id)
        if row is None:
            return ZERO
        return row.to_dto().available

    # =========================================================================
    # Internals
    # =========================================================================

    def _find_balance(
        self,
        employee_id: UUID,
        leave_type_id: UUID,
        for_update: bool = False,
    ) -> LeaveBalanceModel | None:
        query = (
            select(LeaveBalanceModel)
            .where(
                LeaveBalanceModel.employee_id == employee_id,
                LeaveBalanceModel.leave_type_id == leave_type_id,
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        return self._session.execute(query).scalar_one_or_none()

    def _balance_for_update(
        self,
        employee_id: UUID,
        leave_type_id: UUID,
        action: str,
    ) -> LeaveBalanceModel:
        row = self._find_balance(employee_id, leave_type_id, for_update=True)
        if row is None:
            raise EntityNotFoundError(_BALANCE, f"{employee_id}/{leave_type_id}")
        self._ensure_unlocked(row, action)
        return row

    @staticmethod
    def _ensure_unlocked(row: LeaveBalanceModel, action: str) -> None:
        if row.is_locked:
            raise InvalidStateError(_BALANCE, str(row.id), "locked", action)

