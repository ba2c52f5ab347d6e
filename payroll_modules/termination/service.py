"""
Termination Service (``payroll_modules.termination.service``).

Responsibility
--------------
Runs an employee's exit: records the termination, computes and saves the
final settlement through ``SettlementCalculator`` and, on finalize, closes
the employee's leave balances and marks the employee terminated in the
Employee Master.

Architecture position
---------------------
**Modules layer**.  Reads the employee through ``EmployeeMaster`` and the
annual-leave position through ``LeaveLedger``; leave closing happens inside
the finalize transaction (``close_balances(commit=False)``).  The Employee
Master write-back runs after commit, outside any lock.

Invariants enforced
-------------------
* Forward-only: draft -> pending_payroll -> completed.
* A settlement with negative net pay is never saved or finalized.
* ``completed`` is terminal; the row is immutable afterwards.

Failure modes
-------------
* ``ValidationError``     -- last working day after termination date;
  employee not active or already terminated.
* ``InvalidStateError``   -- action not legal from the current status.
* ``NegativeNetPayError`` -- deductions exceed the settlement gross.

Audit relevance
---------------
Initiate, save and finalize each append one audit event.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_engines.settlement import (
    SettlementCalculator,
    SettlementOverrides,
    SettlementTerms,
    TerminationPayComponents,
    TerminationReason,
)
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.workflow import next_state
from payroll_kernel.exceptions import (
    ConcurrentModificationError,
    InvalidStateError,
    NegativeNetPayError,
    ValidationError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.audit_event import AuditAction
from payroll_kernel.services.auditor_service import AuditorService, AuditSink
from payroll_modules._service_helpers import load, load_for_update, unit_of_work
from payroll_modules.employees.master import EmployeeMaster, SqlEmployeeMaster
from payroll_modules.employees.models import Employee
from payroll_modules.leave.service import LeaveLedger
from payroll_modules.termination.models import (
    Termination,
    TerminationIssue,
    TerminationPreview,
    TerminationStatus,
)
from payroll_modules.termination.orm import TerminationModel
from payroll_modules.termination.workflows import TERMINATION_WORKFLOW

logger = get_logger("modules.termination.service")

_TERMINATION = "Termination"


class TerminationService:
    """
    Termination lifecycle and final settlement.

    Contract
    --------
    * Public mutators own their transaction.
    * ``compute_pay`` and ``preview`` never write.
    """

    def __init__(
        self,
        session: Session,
        employee_master: EmployeeMaster | None = None,
        leave_ledger: LeaveLedger | None = None,
        calculator: SettlementCalculator | None = None,
        clock: Clock | None = None,
        auditor: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._employees = employee_master or SqlEmployeeMaster(session)
        self._leave = leave_ledger or LeaveLedger(session, clock=self._clock, auditor=self._auditor)
        self._calculator = calculator or SettlementCalculator()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def initiate(
        self,
        employee_id: UUID,
        termination_date: date,
        last_working_day: date,
        reason: TerminationReason | str,
        paid_in_lieu: bool,
        actor_id: UUID,
        notice_period_days: int = 30,
    ) -> Termination:
        """Open a ``draft`` termination for an active employee."""
        if last_working_day > termination_date:
            raise ValidationError("last_working_day", "cannot be after the termination date")
        if notice_period_days < 0:
            raise ValidationError("notice_period_days", "cannot be negative")
        employee = self._employees.get(employee_id)
        if not employee.is_active:
            raise ValidationError("employee_id", f"employee is {employee.status.value}")
        existing = self._session.execute(
            select(TerminationModel.id).where(TerminationModel.employee_id == employee_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError("employee_id", "employee already has a termination")

        termination = Termination(
            id=uuid4(),
            employee_id=employee_id,
            termination_date=termination_date,
            last_working_day=last_working_day,
            reason=TerminationReason(reason),
            notice_period_days=notice_period_days,
            paid_in_lieu=paid_in_lieu,
        )
        with unit_of_work(self._session, _TERMINATION, termination.id):
            row = TerminationModel.from_dto(termination, created_by_id=actor_id)
            self._session.add(row)
            self._session.flush()
            self._auditor.record(
                entity_type=_TERMINATION,
                entity_id=row.id,
                action=AuditAction.TERMINATION_INITIATED,
                actor_id=actor_id,
                after_state=TerminationStatus.DRAFT,
                payload={
                    "employee_id": employee_id,
                    "termination_date": termination_date,
                    "last_working_day": last_working_day,
                    "reason": termination.reason,
                    "paid_in_lieu": paid_in_lieu,
                },
            )

        logger.info(
            "termination_initiated",
            extra={
                "termination_id": str(row.id),
                "employee_id": str(employee_id),
                "reason": termination.reason.value,
            },
        )
        return row.to_dto()

    def save_pay(
        self,
        termination_id: UUID,
        actor_id: UUID,
        overrides: SettlementOverrides | None = None,
    ) -> Termination:
        """Compute and persist the settlement; moves draft to pending_payroll.

        The settlement is computed from an unlocked read.  The locked write
        re-checks the row version, so a termination changed in between is
        reported instead of overwritten.

        Raises:
            NegativeNetPayError: Deductions exceed the settlement gross.
            ConcurrentModificationError: The termination changed while the
                settlement was being computed.
        """
        row = load(self._session, TerminationModel, termination_id, _TERMINATION)
        next_state(
            TERMINATION_WORKFLOW, row.status, "save_pay",
            entity_type=_TERMINATION, entity_id=termination_id,
        )
        seen_version = row.version
        components = self._compute(row, self._employees.get(row.employee_id), overrides)
        self._ensure_non_negative(row, components)

        with unit_of_work(self._session, _TERMINATION, termination_id):
            row = load_for_update(self._session, TerminationModel, termination_id, _TERMINATION)
            if row.version != seen_version:
                raise ConcurrentModificationError(_TERMINATION, str(termination_id))
            transition = next_state(
                TERMINATION_WORKFLOW, row.status, "save_pay",
                entity_type=_TERMINATION, entity_id=termination_id,
            )
            row.pay_components = components.to_dict()
            row.status = transition.to_state
            row.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_TERMINATION,
                entity_id=row.id,
                action=AuditAction.TERMINATION_PAY_SAVED,
                actor_id=actor_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={
                    "gross_pay": components.summary.gross_pay,
                    "total_deductions": components.summary.total_deductions,
                    "net_pay": components.summary.net_pay,
                    "leave_payout_days": components.earnings.leave_payout_days,
                },
            )

        logger.info(
            "termination_pay_saved",
            extra={
                "termination_id": str(termination_id),
                "net_pay": str(components.summary.net_pay),
            },
        )
        return row.to_dto()

    def finalize(self, termination_id: UUID, actor_id: UUID) -> Termination:
        """
        Complete the termination and close the employee's leave balances in
        one transaction, then mark the employee terminated.

        Irreversible.

        Raises:
            InvalidStateError: Termination is not ``pending_payroll``.
            NegativeNetPayError: Saved settlement has negative net pay.
        """
        with LogContext.bind(termination_id=str(termination_id), actor_id=str(actor_id)):
            with unit_of_work(self._session, _TERMINATION, termination_id):
                row = load_for_update(self._session, TerminationModel, termination_id, _TERMINATION)
                transition = next_state(
                    TERMINATION_WORKFLOW, row.status, "finalize",
                    entity_type=_TERMINATION, entity_id=termination_id,
                )
                components = TerminationPayComponents.from_dict(row.pay_components)
                self._ensure_non_negative(row, components)
                row.status = transition.to_state
                row.finalized_at = self._clock.now()
                row.finalized_by = actor_id
                row.updated_by_id = actor_id
                closed = self._leave.close_balances(row.employee_id, actor_id, commit=False)
                self._auditor.record(
                    entity_type=_TERMINATION,
                    entity_id=row.id,
                    action=AuditAction.TERMINATION_FINALIZED,
                    actor_id=actor_id,
                    before_state=transition.from_state,
                    after_state=transition.to_state,
                    payload={
                        "employee_id": row.employee_id,
                        "net_pay": components.summary.net_pay,
                        "leave_balances_closed": len(closed),
                    },
                )

            termination = row.to_dto()
            logger.info(
                "termination_finalized",
                extra={"employee_id": str(termination.employee_id)},
            )
            self._push_employee_status(termination)
        return termination

    def sync_employee_status(self, termination_id: UUID) -> Termination:
        """Re-send the terminated status of a completed termination to the Employee Master."""
        termination = self.get(termination_id)
        if not termination.is_completed:
            raise InvalidStateError(
                _TERMINATION, str(termination_id), termination.status.value, "sync_employee_status",
            )
        self._push_employee_status(termination)
        return termination

    # =========================================================================
    # Settlement
    # =========================================================================

    def compute_pay(
        self,
        termination_id: UUID,
        overrides: SettlementOverrides | None = None,
    ) -> TerminationPayComponents:
        """Settlement for the termination; the saved figures once completed."""
        row = load(self._session, TerminationModel, termination_id, _TERMINATION)
        if row.status == TerminationStatus.COMPLETED.value:
            return TerminationPayComponents.from_dict(row.pay_components)
        return self._compute(row, self._employees.get(row.employee_id), overrides)

    def preview(
        self,
        termination_id: UUID,
        overrides: SettlementOverrides | None = None,
    ) -> TerminationPreview:
        row = load(self._session, TerminationModel, termination_id, _TERMINATION)
        employee = self._employees.get(row.employee_id)
        if row.status == TerminationStatus.COMPLETED.value:
            components = TerminationPayComponents.from_dict(row.pay_components)
        else:
            components = self._compute(row, employee, overrides)

        errors: list[TerminationIssue] = []
        warnings = [TerminationIssue(i.code, i.message) for i in employee.validate_for_payroll()]
        if components.summary.net_pay < 0:
            errors.append(
                TerminationIssue(
                    NegativeNetPayError.code,
                    f"Deductions ({components.summary.total_deductions}) exceed "
                    f"gross pay ({components.summary.gross_pay})",
                )
            )
        for message in components.warnings:
            warnings.append(TerminationIssue("NEGATIVE_LEAVE_BALANCE", message))
        if components.earnings.leave_payout_days > 0:
            warnings.append(TerminationIssue("LEAVE_PAYOUT", "Leave balance will be paid out"))

        return TerminationPreview(
            termination_id=row.id,
            employee_name=employee.full_name,
            employee_number=employee.employee_number,
            termination_date=row.termination_date,
            reason=TerminationReason(row.reason),
            pay_components=components,
            errors=tuple(errors),
            warnings=tuple(warnings),
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, termination_id: UUID) -> Termination:
        return load(self._session, TerminationModel, termination_id, _TERMINATION).to_dto()

    def list(self, status: TerminationStatus | str | None = None) -> list[Termination]:
        query = (
            select(TerminationModel)
            .order_by(TerminationModel.termination_date.desc())
            .execution_options(populate_existing=True)
        )
        if status is not None:
            query = query.where(TerminationModel.status == TerminationStatus(status).value)
        return [row.to_dto() for row in self._session.execute(query).scalars().all()]

    # =========================================================================
    # Internals
    # =========================================================================

    def _compute(
        self,
        row: TerminationModel,
        employee: Employee,
        overrides: SettlementOverrides | None,
    ) -> TerminationPayComponents:
        terms = SettlementTerms(
            termination_date=row.termination_date,
            last_working_day=row.last_working_day,
            reason=TerminationReason(row.reason),
            employment_start_date=employee.start_date,
            notice_period_days=row.notice_period_days,
            paid_in_lieu=row.paid_in_lieu,
        )
        leave_available = self._leave.annual_leave_available(
            employee.id, self._calculator.config.annual_leave_code,
        )
        return self._calculator.compute_settlement(
            employee.compensation_profile(),
            terms,
            leave_available,
            other_deductions=employee.recurring_deductions,
            overrides=overrides,
        )

    @staticmethod
    def _ensure_non_negative(row: TerminationModel, components: TerminationPayComponents) -> None:
        summary = components.summary
        if summary.net_pay < 0:
            logger.warning(
                "termination_negative_net_pay",
                extra={
                    "termination_id": str(row.id),
                    "gross_pay": str(summary.gross_pay),
                    "total_deductions": str(summary.total_deductions),
                },
            )
            raise NegativeNetPayError(
                employee_id=str(row.employee_id),
                gross_pay=summary.gross_pay,
                total_deductions=summary.total_deductions,
            )

    def _push_employee_status(self, termination: Termination) -> None:
        try:
            self._employees.mark_terminated(termination.employee_id, termination.termination_date)
        except Exception:
            logger.error(
                "employee_status_sync_failed",
                extra={
                    "termination_id": str(termination.id),
                    "employee_id": str(termination.employee_id),
                },
                exc_info=True,
            )
            raise
