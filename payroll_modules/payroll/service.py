"""
Pay Run Orchestrator (``payroll_modules.payroll.service``).

Responsibility
--------------
Owns the pay run lifecycle: creation, calculation of every in-scope
employee's payslip through ``CompensationCalculator``, payslip edits,
finalization and deletion, plus the read models (employee list, payslip,
summary) and year-to-date rollups.

Architecture position
---------------------
**Modules layer**.  ``PayRunOrchestrator`` is the sole writer of pay runs
and payslips.  Employees come from the ``EmployeeMaster`` seam; each
successful finalize is pushed to the ``FinalizedPayRunSink`` (the monthly
filing aggregator) after commit.

Calculation runs in three phases so no lock is held while employees are
read and computed:

1. Move the run to ``calculating`` and commit.
2. Read in-scope employees and compute each payslip independently
   (thread pool when ``max_workers > 1``), honouring the cancellation
   token between employees.
3. Write payslips, errors and totals in one transaction, guarded by the
   run's optimistic version.

A cancelled or failed calculation returns the run to ``draft`` with no
payslips and zero totals.

Invariants enforced
-------------------
* Status changes only through ``PAY_RUN_WORKFLOW`` (``next_state``).
* A persisted payslip always has ``net_pay >= 0``; an employee whose
  deductions exceed gross gets an error row instead of a payslip.
* Run totals equal the sums over its payslips.
* ``finalize`` requires ``ready`` and zero employees with errors; a
  finalized run and its payslips never change again.
* Recalculating with unchanged inputs yields identical payslips and totals.

Failure modes
-------------
* ``ValidationError``             -- bad period on create; bad payslip edit.
* ``InvalidStateError``           -- action not legal from the run's status.
* ``HasEmployeeErrorsError``      -- finalize with per-employee errors.
* ``CannotDeleteFinalizedError``  -- delete of a finalized run.
* ``NegativeNetPayError``         -- payslip edit that would go negative;
  the stored payslip is unchanged.
* ``CalculationCancelledError``   -- cancellation token fired.
* ``ConcurrentModificationError`` -- lost an optimistic version race.

Audit relevance
---------------
Create, calculate, cancelled calculation, payslip edit, finalize and
delete each append one audit event in the same transaction.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payroll_engines.compensation import (
    BASIC,
    SDL,
    UIF_EMPLOYER,
    CompensationCalculator,
    DeductionInput,
    EarningInput,
    PayPeriod,
    PayslipComputation,
)
from payroll_engines.statutory import PayFrequency, tax_year_start
from payroll_kernel.domain.calendar import HolidayCalendar, WeekendCalendar, count_business_days
from payroll_kernel.domain.cancellation import CancellationToken
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.values import ZERO
from payroll_kernel.domain.workflow import next_state
from payroll_kernel.exceptions import (
    CalculationCancelledError,
    CannotDeleteFinalizedError,
    ConcurrentModificationError,
    EntityNotFoundError,
    HasEmployeeErrorsError,
    InvalidStateError,
    NegativeNetPayError,
    ValidationError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.audit_event import AuditAction
from payroll_kernel.services.auditor_service import AuditorService, AuditSink
from payroll_modules._line_codec import (
    contribution_line_to_dict,
    deduction_input_from_dict,
    deduction_input_to_dict,
    deduction_line_to_dict,
    earning_input_from_dict,
    earning_input_to_dict,
    earning_line_to_dict,
)
from payroll_modules._service_helpers import load, load_for_update, unit_of_work
from payroll_modules.employees.master import EmployeeMaster, SqlEmployeeMaster
from payroll_modules.employees.models import Employee
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
from payroll_modules.payroll.orm import PayRunErrorModel, PayRunModel, PayslipModel
from payroll_modules.payroll.workflows import PAY_RUN_WORKFLOW

logger = get_logger("modules.payroll.service")

_PAY_RUN = "PayRun"


@runtime_checkable
class FinalizedPayRunSink(Protocol):
    """Receives every pay run right after its finalize has committed."""

    def pay_run_finalized(self, pay_run: PayRun) -> None:
        ...


@dataclass(frozen=True)
class _EmployeeOutcome:
    employee: Employee
    computation: PayslipComputation | None
    issues: tuple[PayRunIssue, ...]
    earnings_input: tuple[EarningInput, ...]
    deductions_input: tuple[DeductionInput, ...]


@dataclass(frozen=True)
class _Ytd:
    gross: Decimal = ZERO
    tax: Decimal = ZERO
    net: Decimal = ZERO


def _merge_lines(base, overrides) -> tuple:
    merged = {line.code: line for line in base}
    for line in overrides:
        merged[line.code] = line
    return tuple(merged.values())


class PayRunOrchestrator:
    """
    Pay run state machine and payslip calculation.

    Contract
    --------
    * Every public mutator owns its transaction(s): commit on success,
      roll back on any exception.
    * Returned values are frozen DTOs.
    * The finalized-run sink is called after the finalize commit, outside
      any lock.
    """

    def __init__(
        self,
        session: Session,
        employee_master: EmployeeMaster | None = None,
        calculator: CompensationCalculator | None = None,
        calendar: HolidayCalendar | None = None,
        clock: Clock | None = None,
        auditor: AuditSink | None = None,
        finalized_sink: FinalizedPayRunSink | None = None,
        max_workers: int = 1,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._employees = employee_master or SqlEmployeeMaster(session)
        self._calculator = calculator or CompensationCalculator()
        self._calendar = calendar or WeekendCalendar()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._finalized_sink = finalized_sink
        self._max_workers = max_workers

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create(
        self,
        period_start: date,
        period_end: date,
        pay_date: date,
        pay_frequency: PayFrequency | str,
        actor_id: UUID,
        name: str | None = None,
    ) -> PayRun:
        """Open a ``draft`` pay run with zero totals."""
        if period_end < period_start:
            raise ValidationError("period_end", "period end precedes period start")
        if pay_date < period_start:
            raise ValidationError("pay_date", "pay date precedes period start")
        pay_run = PayRun(
            id=uuid4(),
            name=name or period_end.strftime("%B %Y"),
            period_start=period_start,
            period_end=period_end,
            pay_date=pay_date,
            pay_frequency=PayFrequency(pay_frequency),
        )

        with unit_of_work(self._session, _PAY_RUN, pay_run.id):
            row = PayRunModel.from_dto(pay_run, created_by_id=actor_id)
            self._session.add(row)
            self._session.flush()
            self._auditor.record(
                entity_type=_PAY_RUN,
                entity_id=row.id,
                action=AuditAction.PAY_RUN_CREATED,
                actor_id=actor_id,
                after_state=PayRunStatus.DRAFT,
                payload={
                    "name": pay_run.name,
                    "period_start": period_start,
                    "period_end": period_end,
                    "pay_date": pay_date,
                    "pay_frequency": pay_run.pay_frequency,
                },
            )

        logger.info(
            "pay_run_created",
            extra={"pay_run_id": str(row.id), "pay_run_name": pay_run.name},
        )
        return row.to_dto()

    def calculate(
        self,
        pay_run_id: UUID,
        actor_id: UUID,
        adjustments: Mapping[UUID, EmployeeAdjustment] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PayRun:
        """
        Compute every in-scope employee and move the run to ``ready``.

        Per-employee problems (missing data, negative net pay, bad lines)
        are recorded as employee errors and do not stop the run.

        Raises:
            InvalidStateError: Run is not ``draft`` or ``ready``.
            CalculationCancelledError: ``cancel_token`` fired; the run is
                back in ``draft``.
        """
        adjustments = adjustments or {}

        with unit_of_work(self._session, _PAY_RUN, pay_run_id):
            row = load_for_update(self._session, PayRunModel, pay_run_id, _PAY_RUN)
            transition = next_state(
                PAY_RUN_WORKFLOW, row.status, "calculate",
                entity_type=_PAY_RUN, entity_id=pay_run_id,
            )
            started_from = transition.from_state
            row.status = transition.to_state
            row.updated_by_id = actor_id
        seen_version = row.version
        period = self._period_for(row)

        with LogContext.bind(pay_run_id=str(pay_run_id), actor_id=str(actor_id)):
            logger.info(
                "pay_run_calculation_started",
                extra={"recalculation": started_from == PayRunStatus.READY.value},
            )
            try:
                employees = list(
                    self._employees.list_in_scope(period.start, period.end, period.frequency)
                )
                prior_ytd = self._prior_ytd(period.pay_date)
                outcomes = self._compute_all(pay_run_id, employees, period, adjustments, cancel_token)

                with unit_of_work(self._session, _PAY_RUN, pay_run_id):
                    row = load_for_update(self._session, PayRunModel, pay_run_id, _PAY_RUN)
                    if row.version != seen_version:
                        raise ConcurrentModificationError(_PAY_RUN, str(pay_run_id))
                    transition = next_state(
                        PAY_RUN_WORKFLOW, row.status, "complete_calculation",
                        entity_type=_PAY_RUN, entity_id=pay_run_id,
                    )
                    self._write_results(row, outcomes, prior_ytd, actor_id)
                    row.status = transition.to_state
                    row.calculated_at = self._clock.now()
                    row.updated_by_id = actor_id
                    self._auditor.record(
                        entity_type=_PAY_RUN,
                        entity_id=row.id,
                        action=AuditAction.PAY_RUN_CALCULATED,
                        actor_id=actor_id,
                        before_state=started_from,
                        after_state=transition.to_state,
                        payload=self._totals_payload(row),
                    )
            except CalculationCancelledError:
                self._abandon_calculation(pay_run_id, actor_id, "cancelled")
                raise
            except Exception:
                logger.error("pay_run_calculation_failed", exc_info=True)
                self._abandon_calculation(pay_run_id, actor_id, "failed")
                raise

            logger.info(
                "pay_run_calculated",
                extra={
                    "employee_count": row.employee_count,
                    "employees_with_errors": row.employees_with_errors,
                    "total_gross": str(row.total_gross),
                    "total_net": str(row.total_net),
                },
            )
        return row.to_dto()

    def finalize(self, pay_run_id: UUID, actor_id: UUID) -> PayRun:
        """
        Lock the run and its payslips, then notify the finalized-run sink.

        A sink failure is logged and does not undo the finalize; the
        returned run is finalized and ``sync_finalized`` re-sends it.

        Raises:
            InvalidStateError: Run is not ``ready``.
            HasEmployeeErrorsError: Run has employees with errors.
        """
        with unit_of_work(self._session, _PAY_RUN, pay_run_id):
            row = load_for_update(self._session, PayRunModel, pay_run_id, _PAY_RUN)
            transition = next_state(
                PAY_RUN_WORKFLOW, row.status, "finalize",
                entity_type=_PAY_RUN, entity_id=pay_run_id,
            )
            if row.employees_with_errors > 0:
                logger.warning(
                    "pay_run_finalize_blocked",
                    extra={
                        "pay_run_id": str(pay_run_id),
                        "employees_with_errors": row.employees_with_errors,
                    },
                )
                raise HasEmployeeErrorsError(str(pay_run_id), row.employees_with_errors)
            row.status = transition.to_state
            row.finalized_at = self._clock.now()
            row.finalized_by = actor_id
            row.updated_by_id = actor_id
            for payslip in row.payslips:
                payslip.is_locked = True
                payslip.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_PAY_RUN,
                entity_id=row.id,
                action=AuditAction.PAY_RUN_FINALIZED,
                actor_id=actor_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload=self._totals_payload(row),
            )

        pay_run = row.to_dto()
        logger.info(
            "pay_run_finalized",
            extra={"pay_run_id": str(pay_run_id), "total_net": str(pay_run.total_net)},
        )
        if self._finalized_sink is not None:
            try:
                self._finalized_sink.pay_run_finalized(pay_run)
            except Exception:
                # The run is finalized either way; sync_finalized re-sends it.
                logger.error(
                    "pay_run_finalized_sink_failed",
                    extra={"pay_run_id": str(pay_run_id)},
                    exc_info=True,
                )
        return pay_run

    def sync_finalized(self, pay_run_id: UUID) -> PayRun:
        """Re-send a finalized run to the finalized-run sink.

        Raises:
            InvalidStateError: Run is not ``finalized``.
        """
        pay_run = self.get(pay_run_id)
        if pay_run.status is not PayRunStatus.FINALIZED:
            raise InvalidStateError(_PAY_RUN, str(pay_run_id), pay_run.status.value, "sync_finalized")
        if self._finalized_sink is not None:
            self._finalized_sink.pay_run_finalized(pay_run)
            logger.info("pay_run_finalized_sink_synced", extra={"pay_run_id": str(pay_run_id)})
        return pay_run

    def delete(self, pay_run_id: UUID, actor_id: UUID) -> None:
        """Hard-delete a ``draft`` or ``ready`` run with its payslips.

        Raises:
            CannotDeleteFinalizedError: Run is finalized.
            InvalidStateError: Run is being calculated.
        """
        with unit_of_work(self._session, _PAY_RUN, pay_run_id):
            row = load_for_update(self._session, PayRunModel, pay_run_id, _PAY_RUN)
            if row.status == PayRunStatus.FINALIZED.value:
                logger.warning("pay_run_delete_blocked", extra={"pay_run_id": str(pay_run_id)})
                raise CannotDeleteFinalizedError(str(pay_run_id))
            transition = next_state(
                PAY_RUN_WORKFLOW, row.status, "delete",
                entity_type=_PAY_RUN, entity_id=pay_run_id,
            )
            self._auditor.record(
                entity_type=_PAY_RUN,
                entity_id=row.id,
                action=AuditAction.PAY_RUN_DELETED,
                actor_id=actor_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={"name": row.name, "pay_date": row.pay_date},
            )
            self._session.delete(row)

        logger.info("pay_run_deleted", extra={"pay_run_id": str(pay_run_id)})

    # =========================================================================
    # Payslip edits
    # =========================================================================

    def update_payslip(
        self,
        pay_run_id: UUID,
        employee_id: UUID,
        actor_id: UUID,
        *,
        earnings: Sequence[EarningEdit] = (),
        deductions: Sequence[DeductionEdit] = (),
    ) -> EmployeePayslip:
        """
        Edit earning amounts/hours and deduction amounts/skips on a ``ready``
        run, recompute the payslip and re-aggregate the run totals.

        Raises:
            InvalidStateError: Run is not ``ready``.
            ValidationError: Skipping a required line, unknown line without
                a name.
            NegativeNetPayError: The edit would make net pay negative.
        """
        if not earnings and not deductions:
            raise ValidationError("edits", "no payslip changes supplied")
        employee = self._employees.get(employee_id)

        with unit_of_work(self._session, _PAY_RUN, pay_run_id):
            row = load_for_update(self._session, PayRunModel, pay_run_id, _PAY_RUN)
            next_state(
                PAY_RUN_WORKFLOW, row.status, "edit_payslip",
                entity_type=_PAY_RUN, entity_id=pay_run_id,
            )
            payslip = self._payslip_row(row, employee_id)
            before = payslip.to_dto()
            earnings_input = _apply_earning_edits(
                [earning_input_from_dict(e) for e in payslip.inputs.get("earnings", [])],
                before,
                earnings,
            )
            deductions_input = _apply_deduction_edits(
                [deduction_input_from_dict(d) for d in payslip.inputs.get("deductions", [])],
                before,
                deductions,
            )
            computation = self._calculator.compute_payslip(
                employee.compensation_profile(),
                self._period_for(row),
                earnings_input,
                deductions_input,
            )
            prior = _Ytd(
                gross=payslip.ytd_gross - payslip.gross_pay,
                tax=payslip.ytd_tax - payslip.tax_amount,
                net=payslip.ytd_net - payslip.net_pay,
            )
            self._apply_computation(
                payslip, employee, computation, earnings_input, deductions_input, prior, row.pay_date,
            )
            payslip.updated_by_id = actor_id
            self._refresh_totals(row)
            row.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_PAY_RUN,
                entity_id=row.id,
                action=AuditAction.PAY_RUN_PAYSLIP_EDITED,
                actor_id=actor_id,
                before_state=row.status,
                after_state=row.status,
                payload={
                    "employee_id": employee_id,
                    "earning_codes": [e.code for e in earnings],
                    "deduction_codes": [d.code for d in deductions],
                    "net_pay_before": before.net_pay,
                    "net_pay_after": computation.net_pay,
                },
            )

        logger.info(
            "payslip_updated",
            extra={
                "pay_run_id": str(pay_run_id),
                "employee_id": str(employee_id),
                "net_pay": str(computation.net_pay),
            },
        )
        return payslip.to_dto(self._issues_for(row, employee_id))

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, pay_run_id: UUID) -> PayRun:
        return load(self._session, PayRunModel, pay_run_id, _PAY_RUN).to_dto()

    def list(self, status: PayRunStatus | str | None = None) -> list[PayRun]:
        query = (
            select(PayRunModel)
            .order_by(PayRunModel.pay_date.desc(), PayRunModel.name)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            query = query.where(PayRunModel.status == PayRunStatus(status).value)
        return [row.to_dto() for row in self._session.execute(query).scalars().all()]

    def list_employees(self, pay_run_id: UUID) -> list[PayRunEmployee]:
        """Every employee of the latest calculation, with or without a payslip."""
        row = load(self._session, PayRunModel, pay_run_id, _PAY_RUN)
        entries: dict[UUID, PayRunEmployee] = {}
        for payslip in (p.to_dto() for p in row.payslips):
            entries[payslip.employee_id] = PayRunEmployee(
                employee_id=payslip.employee_id,
                employee_number=payslip.employee_number,
                employee_name=payslip.employee_name,
                gross_pay=payslip.gross_pay,
                total_deductions=payslip.total_deductions,
                net_pay=payslip.net_pay,
                has_payslip=True,
                errors=self._issues_for(row, payslip.employee_id),
            )
        for error in row.errors:
            if error.employee_id not in entries:
                entries[error.employee_id] = PayRunEmployee(
                    employee_id=error.employee_id,
                    employee_number=error.employee_number,
                    employee_name=error.employee_name,
                    errors=self._issues_for(row, error.employee_id),
                )
        return sorted(entries.values(), key=lambda e: e.employee_number)

    def get_payslip(self, pay_run_id: UUID, employee_id: UUID) -> EmployeePayslip:
        row = load(self._session, PayRunModel, pay_run_id, _PAY_RUN)
        return self._payslip_row(row, employee_id).to_dto(self._issues_for(row, employee_id))

    def list_payslips(self, pay_run_id: UUID) -> list[EmployeePayslip]:
        row = load(self._session, PayRunModel, pay_run_id, _PAY_RUN)
        return [p.to_dto(self._issues_for(row, p.employee_id)) for p in row.payslips]

    def summary(self, pay_run_id: UUID) -> PayRunSummary:
        row = load(self._session, PayRunModel, pay_run_id, _PAY_RUN)
        payslips = [p.to_dto() for p in row.payslips]
        total_tax = sum((p.tax_amount for p in payslips), ZERO)
        total_uif = sum((p.uif_amount for p in payslips), ZERO)
        total_sdl = sum((p.sdl_amount for p in payslips), ZERO)
        total_deductions = sum((p.total_deductions for p in payslips), ZERO)
        return PayRunSummary(
            pay_run_id=row.id,
            status=PayRunStatus(row.status),
            employee_count=row.employee_count,
            employees_with_errors=row.employees_with_errors,
            total_gross=sum((p.gross_pay for p in payslips), ZERO),
            total_tax=total_tax,
            total_uif=total_uif,
            total_sdl=total_sdl,
            total_other_deductions=total_deductions - total_tax - total_uif,
            total_deductions=total_deductions,
            total_net=sum((p.net_pay for p in payslips), ZERO),
            employer_uif=sum((p.employer_uif for p in payslips), ZERO),
            employer_sdl=total_sdl,
        )

    # =========================================================================
    # Calculation internals
    # =========================================================================

    def _period_for(self, row: PayRunModel) -> PayPeriod:
        return PayPeriod(
            start=row.period_start,
            end=row.period_end,
            pay_date=row.pay_date,
            frequency=PayFrequency(row.pay_frequency),
            working_days=Decimal(
                count_business_days(self._calendar, row.period_start, row.period_end)
            ),
        )

    def _compute_all(
        self,
        pay_run_id: UUID,
        employees: list[Employee],
        period: PayPeriod,
        adjustments: Mapping[UUID, EmployeeAdjustment],
        cancel_token: CancellationToken | None,
    ) -> list[_EmployeeOutcome]:
        total = len(employees)

        def check_cancelled(processed: int) -> None:
            if cancel_token is not None and cancel_token.is_cancelled:
                logger.warning(
                    "pay_run_calculation_cancelled",
                    extra={"processed": processed, "total": total},
                )
                raise CalculationCancelledError(str(pay_run_id), processed, total)

        if self._max_workers <= 1 or total <= 1:
            outcomes: list[_EmployeeOutcome] = []
            for employee in employees:
                check_cancelled(len(outcomes))
                outcomes.append(
                    self._compute_employee(employee, period, adjustments.get(employee.id))
                )
            check_cancelled(len(outcomes))
            return outcomes

        results: dict[UUID, _EmployeeOutcome] = {}
        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="pay-run",
        ) as pool:
            futures = {
                pool.submit(
                    self._compute_employee, employee, period, adjustments.get(employee.id),
                ): employee
                for employee in employees
            }
            try:
                for future in as_completed(futures):
                    check_cancelled(len(results))
                    results[futures[future].id] = future.result()
                check_cancelled(len(results))
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        return [results[employee.id] for employee in employees]

    def _compute_employee(
        self,
        employee: Employee,
        period: PayPeriod,
        adjustment: EmployeeAdjustment | None,
    ) -> _EmployeeOutcome:
        earnings = _merge_lines(
            employee.recurring_earnings, adjustment.earnings if adjustment else (),
        )
        deductions = _merge_lines(
            employee.recurring_deductions, adjustment.deductions if adjustment else (),
        )
        issues = [PayRunIssue(i.code, i.message) for i in employee.validate_for_payroll()]
        computation: PayslipComputation | None = None
        try:
            computation = self._calculator.compute_payslip(
                employee.compensation_profile(), period, earnings, deductions,
            )
        except (NegativeNetPayError, ValidationError) as exc:
            issues.append(PayRunIssue(exc.code, str(exc)))

        if issues:
            logger.warning(
                "pay_run_employee_errors",
                extra={
                    "employee_id": str(employee.id),
                    "codes": [i.code for i in issues],
                    "has_payslip": computation is not None,
                },
            )
        return _EmployeeOutcome(
            employee=employee,
            computation=computation,
            issues=tuple(issues),
            earnings_input=earnings,
            deductions_input=deductions,
        )

    def _prior_ytd(self, pay_date: date) -> dict[UUID, _Ytd]:
        """Finalized totals per employee earlier in the same tax year."""
        start = tax_year_start(pay_date, self._calculator.config.tax_year_start_month)
        rows = self._session.execute(
            select(
                PayslipModel.employee_id,
                func.sum(PayslipModel.gross_pay),
                func.sum(PayslipModel.tax_amount),
                func.sum(PayslipModel.net_pay),
            )
            .join(PayRunModel, PayslipModel.pay_run_id == PayRunModel.id)
            .where(
                PayRunModel.status == PayRunStatus.FINALIZED.value,
                PayslipModel.pay_date >= start,
                PayslipModel.pay_date < pay_date,
            )
            .group_by(PayslipModel.employee_id)
        ).all()
        return {
            employee_id: _Ytd(
                gross=Decimal(str(gross or 0)),
                tax=Decimal(str(tax or 0)),
                net=Decimal(str(net or 0)),
            )
            for employee_id, gross, tax, net in rows
        }

    def _write_results(
        self,
        row: PayRunModel,
        outcomes: list[_EmployeeOutcome],
        prior_ytd: dict[UUID, _Ytd],
        actor_id: UUID,
    ) -> None:
        existing = {p.employee_id: p for p in row.payslips}
        row.errors.clear()
        kept: set[UUID] = set()
        for outcome in outcomes:
            employee = outcome.employee
            for issue in outcome.issues:
                row.errors.append(
                    PayRunErrorModel(
                        employee_id=employee.id,
                        employee_number=employee.employee_number,
                        employee_name=employee.full_name,
                        code=issue.code,
                        message=issue.message,
                        created_by_id=actor_id,
                    )
                )
            if outcome.computation is None:
                continue
            kept.add(employee.id)
            payslip = existing.get(employee.id)
            if payslip is None:
                payslip = PayslipModel(employee_id=employee.id, created_by_id=actor_id)
                row.payslips.append(payslip)
            else:
                payslip.updated_by_id = actor_id
            self._apply_computation(
                payslip,
                employee,
                outcome.computation,
                outcome.earnings_input,
                outcome.deductions_input,
                prior_ytd.get(employee.id, _Ytd()),
                row.pay_date,
            )
        for payslip in list(row.payslips):
            if payslip.employee_id not in kept:
                row.payslips.remove(payslip)
        row.employee_count = len(outcomes)
        self._refresh_totals(row)

    @staticmethod
    def _apply_computation(
        payslip: PayslipModel,
        employee: Employee,
        computation: PayslipComputation,
        earnings_input: Sequence[EarningInput],
        deductions_input: Sequence[DeductionInput],
        prior: _Ytd,
        pay_date: date,
    ) -> None:
        payslip.employee_number = employee.employee_number
        payslip.employee_name = employee.full_name
        payslip.pay_date = pay_date
        payslip.earnings = [earning_line_to_dict(e) for e in computation.earnings]
        payslip.deductions = [deduction_line_to_dict(d) for d in computation.deductions]
        payslip.employer_contributions = [
            contribution_line_to_dict(c) for c in computation.employer_contributions
        ]
        payslip.inputs = {
            "earnings": [earning_input_to_dict(e) for e in earnings_input],
            "deductions": [deduction_input_to_dict(d) for d in deductions_input],
        }
        payslip.gross_pay = computation.gross_pay
        payslip.taxable_gross = computation.taxable_gross
        payslip.total_deductions = computation.total_deductions
        payslip.net_pay = computation.net_pay
        payslip.tax_amount = computation.tax_amount
        payslip.uif_amount = computation.uif_amount
        payslip.employer_uif = computation.contribution_amount(UIF_EMPLOYER)
        payslip.sdl_amount = computation.contribution_amount(SDL)
        payslip.ytd_gross = prior.gross + computation.gross_pay
        payslip.ytd_tax = prior.tax + computation.tax_amount
        payslip.ytd_net = prior.net + computation.net_pay

    @staticmethod
    def _refresh_totals(row: PayRunModel) -> None:
        row.total_gross = sum((Decimal(str(p.gross_pay)) for p in row.payslips), ZERO)
        row.total_deductions = sum((Decimal(str(p.total_deductions)) for p in row.payslips), ZERO)
        row.total_net = sum((Decimal(str(p.net_pay)) for p in row.payslips), ZERO)
        row.employees_with_errors = len({e.employee_id for e in row.errors})

    def _abandon_calculation(self, pay_run_id: UUID, actor_id: UUID, reason: str) -> None:
        """Return a ``calculating`` run to ``draft`` with nothing computed."""
        try:
            with unit_of_work(self._session, _PAY_RUN, pay_run_id):
                row = load_for_update(self._session, PayRunModel, pay_run_id, _PAY_RUN)
                transition = next_state(
                    PAY_RUN_WORKFLOW, row.status, "cancel_calculation",
                    entity_type=_PAY_RUN, entity_id=pay_run_id,
                )
                row.payslips.clear()
                row.errors.clear()
                row.total_gross = ZERO
                row.total_deductions = ZERO
                row.total_net = ZERO
                row.employee_count = 0
                row.employees_with_errors = 0
                row.calculated_at = None
                row.status = transition.to_state
                row.updated_by_id = actor_id
                self._auditor.record(
                    entity_type=_PAY_RUN,
                    entity_id=row.id,
                    action=AuditAction.PAY_RUN_CALCULATION_CANCELLED,
                    actor_id=actor_id,
                    before_state=transition.from_state,
                    after_state=transition.to_state,
                    payload={"reason": reason},
                )
        except InvalidStateError:
            logger.error(
                "pay_run_rollback_skipped",
                extra={"pay_run_id": str(pay_run_id), "reason": reason},
                exc_info=True,
            )
            return
        logger.info(
            "pay_run_returned_to_draft",
            extra={"pay_run_id": str(pay_run_id), "reason": reason},
        )

    @staticmethod
    def _payslip_row(row: PayRunModel, employee_id: UUID) -> PayslipModel:
        for payslip in row.payslips:
            if payslip.employee_id == employee_id:
                return payslip
        raise EntityNotFoundError("EmployeePayslip", f"{row.id}/{employee_id}")

    @staticmethod
    def _issues_for(row: PayRunModel, employee_id: UUID) -> tuple[PayRunIssue, ...]:
        return tuple(e.to_dto() for e in row.errors if e.employee_id == employee_id)

    @staticmethod
    def _totals_payload(row: PayRunModel) -> dict:
        return {
            "total_gross": row.total_gross,
            "total_deductions": row.total_deductions,
            "total_net": row.total_net,
            "employee_count": row.employee_count,
            "employees_with_errors": row.employees_with_errors,
        }


def _apply_earning_edits(
    inputs: list[EarningInput],
    current: EmployeePayslip,
    edits: Sequence[EarningEdit],
) -> tuple[EarningInput, ...]:
    by_code = {item.code: item for item in inputs}
    lines = {line.code: line for line in current.earnings}
    for edit in edits:
        existing = by_code.get(edit.code)
        line = lines.get(edit.code)
        if existing is None and line is None and edit.name is None:
            raise ValidationError(
                f"earnings.{edit.code}", "unknown earning line; a name is required to add it",
            )
        source = existing or line
        name = edit.name or source.name
        taxable = source.taxable if source is not None else True
        if edit.amount is not None:
            by_code[edit.code] = EarningInput(edit.code, name, amount=edit.amount, taxable=taxable)
        else:
            rate = source.rate if source is not None else None
            by_code[edit.code] = EarningInput(
                edit.code, name, hours=edit.hours, rate=rate, taxable=taxable,
            )
    return tuple(sorted(by_code.values(), key=lambda item: item.code != BASIC))


def _apply_deduction_edits(
    inputs: list[DeductionInput],
    current: EmployeePayslip,
    edits: Sequence[DeductionEdit],
) -> tuple[DeductionInput, ...]:
    by_code = {item.code: item for item in inputs}
    lines = {line.code: line for line in current.deductions}
    for edit in edits:
        existing = by_code.get(edit.code)
        line = lines.get(edit.code)
        if existing is None and line is None and edit.name is None:
            raise ValidationError(
                f"deductions.{edit.code}", "unknown deduction line; a name is required to add it",
            )
        is_required = (existing or line).is_required if (existing or line) else False
        if edit.is_skipped and is_required:
            raise ValidationError(f"deductions.{edit.code}", "required deductions cannot be skipped")
        name = edit.name or (existing or line).name
        amount, rate = edit.amount, None
        if amount is None and existing is not None:
            amount, rate = existing.amount, existing.rate
        if amount is None and rate is None and line is not None and not line.is_statutory:
            amount = line.amount
        is_skipped = edit.is_skipped
        if is_skipped is None:
            is_skipped = existing.is_skipped if existing is not None else False
        by_code[edit.code] = DeductionInput(
            edit.code,
            name,
            amount=amount,
            rate=rate,
            is_required=is_required,
            is_skipped=is_skipped,
        )
    return tuple(by_code.values())
