"""
Monthly Filing Service (``payroll_modules.filings.monthly``).

Responsibility
--------------
Builds the monthly employer tax filing from finalized pay runs paid in
the month (income tax withheld, employee plus employer UIF, SDL), checks
it, moves it through ready/submitted and records the tax authority's
outcome.

Architecture position
---------------------
**Modules layer**.  Registered with ``PayRunOrchestrator`` as the
``FinalizedPayRunSink`` so a draft filing refreshes whenever a pay run in
its month is finalized.  ``submit`` returns the ``FilingSubmission`` the
caller forwards to the external filing submission service.

Invariants enforced
-------------------
* Only finalized pay runs contribute.
* Status only moves forward (``MONTHLY_FILING_WORKFLOW``); submitted and
  accepted filings are immutable.
* ``total_tax``, ``total_uif`` and ``total_sdl`` equal the sums of the
  per-employee lines.

Failure modes
-------------
* ``ValidationError``   -- marking ready a filing with validation errors;
  month out of range.
* ``InvalidStateError`` -- refresh or transition not legal from the
  current status.

Audit relevance
---------------
Prepare, ready, submit and outcome each append one audit event.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.calendar import add_months, month_bounds
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.values import ZERO
from payroll_kernel.domain.workflow import next_state
from payroll_kernel.exceptions import EntityNotFoundError, ValidationError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditAction
from payroll_kernel.services.auditor_service import AuditorService, AuditSink
from payroll_modules._service_helpers import load, load_for_update, unit_of_work
from payroll_modules.employees.master import EmployeeMaster, SqlEmployeeMaster
from payroll_modules.employees.models import MISSING_TAX_NUMBER
from payroll_modules.filings.models import (
    AlertSeverity,
    FilingAlert,
    FilingIssue,
    FilingOutcome,
    FilingOverview,
    FilingStatus,
    FilingSubmission,
    FilingValidation,
    MonthlyFiling,
    ReconciliationStatus,
)
from payroll_modules.filings.orm import MonthlyFilingModel, ReconciliationModel
from payroll_modules.filings.workflows import MONTHLY_FILING_WORKFLOW
from payroll_modules.payroll.models import PayRun, PayRunStatus
from payroll_modules.payroll.orm import PayRunModel

logger = get_logger("modules.filings.monthly")

_FILING = "MonthlyFiling"

FILING_DUE_DAY = 7
DUE_SOON_DAYS = 7

NO_FINALIZED_PAYROLL = "NO_FINALIZED_PAYROLL"
PAYROLL_NOT_FINALIZED = "PAYROLL_NOT_FINALIZED"
FILING_OUT_OF_DATE = "FILING_OUT_OF_DATE"


def filing_due_date(year: int, month: int) -> date:
    """Filings are due on the 7th of the following month."""
    return add_months(date(year, month, 1), 1).replace(day=FILING_DUE_DAY)


@dataclass
class _EmployeeTotals:
    employee_number: str
    employee_name: str
    tax: Decimal = ZERO
    uif: Decimal = ZERO
    sdl: Decimal = ZERO


@dataclass(frozen=True)
class _Aggregate:
    pay_runs: list[dict[str, Any]]
    employee_lines: list[dict[str, Any]]
    total_tax: Decimal
    total_uif: Decimal
    total_sdl: Decimal

    @property
    def employee_count(self) -> int:
        return len(self.employee_lines)


class MonthlyFilingService:
    """Monthly employer tax filing lifecycle."""

    def __init__(
        self,
        session: Session,
        employee_master: EmployeeMaster | None = None,
        clock: Clock | None = None,
        auditor: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._employees = employee_master or SqlEmployeeMaster(session)
        self._auditor = auditor or AuditorService(session, self._clock)

    # =========================================================================
    # Preparation
    # =========================================================================

    def prepare(self, year: int, month: int, actor_id: UUID) -> MonthlyFiling:
        """Create or refresh the draft filing for a month from its finalized pay runs.

        Raises:
            InvalidStateError: The month's filing is no longer a draft.
        """
        if not (1 <= month <= 12):
            raise ValidationError("month", f"must be between 1 and 12, got {month}")
        aggregate = self._aggregate(year, month)

        with unit_of_work(self._session, _FILING, f"{year}-{month:02d}"):
            row = self._session.execute(
                select(MonthlyFilingModel)
                .where(MonthlyFilingModel.year == year, MonthlyFilingModel.month == month)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if row is None:
                row = MonthlyFilingModel(
                    id=uuid4(),
                    year=year,
                    month=month,
                    period_label=date(year, month, 1).strftime("%B %Y"),
                    status=FilingStatus.DRAFT.value,
                    due_date=filing_due_date(year, month),
                    created_by_id=actor_id,
                )
                self._session.add(row)
            else:
                next_state(
                    MONTHLY_FILING_WORKFLOW, row.status, "refresh",
                    entity_type=_FILING, entity_id=row.id,
                )
                row.updated_by_id = actor_id
            self._apply_aggregate(row, aggregate)
            self._session.flush()
            self._auditor.record(
                entity_type=_FILING,
                entity_id=row.id,
                action=AuditAction.FILING_PREPARED,
                actor_id=actor_id,
                after_state=row.status,
                payload={
                    "year": year,
                    "month": month,
                    "total_tax": aggregate.total_tax,
                    "total_uif": aggregate.total_uif,
                    "total_sdl": aggregate.total_sdl,
                    "pay_run_ids": [p["pay_run_id"] for p in aggregate.pay_runs],
                },
            )

        logger.info(
            "monthly_filing_prepared",
            extra={
                "filing_id": str(row.id),
                "period": row.period_label,
                "pay_runs": len(aggregate.pay_runs),
                "total_tax": str(aggregate.total_tax),
            },
        )
        return row.to_dto()

    def pay_run_finalized(self, pay_run: PayRun) -> None:
        """Refresh the pay run's month; a filing past draft is left alone."""
        year, month = pay_run.pay_date.year, pay_run.pay_date.month
        existing = self._find(year, month)
        if existing is not None and existing.status != FilingStatus.DRAFT.value:
            logger.warning(
                "monthly_filing_refresh_skipped",
                extra={
                    "filing_id": str(existing.id),
                    "status": existing.status,
                    "pay_run_id": str(pay_run.id),
                },
            )
            return
        self.prepare(year, month, actor_id=pay_run.finalized_by)

    # =========================================================================
    # Validation and lifecycle
    # =========================================================================

    def validate(self, filing_id: UUID) -> FilingValidation:
        row = load(self._session, MonthlyFilingModel, filing_id, _FILING)
        filing = row.to_dto()
        errors: list[FilingIssue] = []
        warnings: list[FilingIssue] = []

        if not filing.pay_runs:
            errors.append(
                FilingIssue(NO_FINALIZED_PAYROLL, f"No finalized payroll paid in {filing.period_label}")
            )
        first, last = month_bounds(filing.year, filing.month)
        open_runs = self._session.execute(
            select(PayRunModel.name)
            .where(
                PayRunModel.pay_date >= first,
                PayRunModel.pay_date <= last,
                PayRunModel.status != PayRunStatus.FINALIZED.value,
            )
            .order_by(PayRunModel.name)
        ).scalars().all()
        for name in open_runs:
            errors.append(FilingIssue(PAYROLL_NOT_FINALIZED, f"Pay run {name} is not finalized"))

        for line in filing.employee_lines:
            try:
                employee = self._employees.get(line.employee_id)
            except EntityNotFoundError:
                warnings.append(
                    FilingIssue("EMPLOYEE_NOT_FOUND", f"Employee {line.employee_number} not found")
                )
                continue
            if not employee.tax_number:
                warnings.append(
                    FilingIssue(
                        MISSING_TAX_NUMBER,
                        f"Employee {line.employee_number} has no tax number",
                        field="tax_number",
                    )
                )

        if filing.status is FilingStatus.DRAFT:
            current = self._aggregate(filing.year, filing.month)
            if (
                current.total_tax != filing.total_tax
                or current.total_uif != filing.total_uif
                or current.total_sdl != filing.total_sdl
            ):
                warnings.append(
                    FilingIssue(FILING_OUT_OF_DATE, "Finalized payroll changed since the filing was prepared")
                )

        logger.info(
            "monthly_filing_validated",
            extra={"filing_id": str(filing_id), "errors": len(errors), "warnings": len(warnings)},
        )
        return FilingValidation(errors=tuple(errors), warnings=tuple(warnings))

    def mark_ready(self, filing_id: UUID, actor_id: UUID) -> MonthlyFiling:
        """Refresh the totals one last time and lock them in as ``ready``.

        Raises:
            ValidationError: The filing has validation errors.
        """
        validation = self.validate(filing_id)
        if not validation.is_valid:
            first = validation.errors[0]
            raise ValidationError("filing", first.message)

        with unit_of_work(self._session, _FILING, filing_id):
            row = load_for_update(self._session, MonthlyFilingModel, filing_id, _FILING)
            transition = next_state(
                MONTHLY_FILING_WORKFLOW, row.status, "mark_ready",
                entity_type=_FILING, entity_id=filing_id,
            )
            self._apply_aggregate(row, self._aggregate(row.year, row.month))
            row.status = transition.to_state
            row.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_FILING,
                entity_id=row.id,
                action=AuditAction.FILING_READY,
                actor_id=actor_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={"warnings": [w.code for w in validation.warnings]},
            )

        logger.info("monthly_filing_ready", extra={"filing_id": str(filing_id)})
        return row.to_dto()

    def submit(self, filing_id: UUID, actor_id: UUID) -> FilingSubmission:
        """Stamp the submission and return the totals for the submission service."""
        with unit_of_work(self._session, _FILING, filing_id):
            row = load_for_update(self._session, MonthlyFilingModel, filing_id, _FILING)
            transition = next_state(
                MONTHLY_FILING_WORKFLOW, row.status, "submit",
                entity_type=_FILING, entity_id=filing_id,
            )
            now = self._clock.now()
            row.status = transition.to_state
            row.submission_date = now
            row.submitted_by = actor_id
            row.updated_by_id = actor_id
            filing = row.to_dto()
            self._auditor.record(
                entity_type=_FILING,
                entity_id=row.id,
                action=AuditAction.FILING_SUBMITTED,
                actor_id=actor_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={
                    "total_tax": filing.total_tax,
                    "total_uif": filing.total_uif,
                    "total_sdl": filing.total_sdl,
                },
            )

        logger.info(
            "monthly_filing_submitted",
            extra={"filing_id": str(filing_id), "total_due": str(filing.total_due)},
        )
        return FilingSubmission(
            filing_id=filing.id,
            year=filing.year,
            month=filing.month,
            period_label=filing.period_label,
            total_tax=filing.total_tax,
            total_uif=filing.total_uif,
            total_sdl=filing.total_sdl,
            employee_count=filing.employee_count,
            submitted_at=now,
            submitted_by=actor_id,
        )

    def record_outcome(
        self,
        filing_id: UUID,
        outcome: FilingOutcome | str,
        actor_id: UUID,
        reason: str | None = None,
    ) -> MonthlyFiling:
        outcome = FilingOutcome(outcome)
        action = "accept" if outcome is FilingOutcome.ACCEPTED else "reject"
        with unit_of_work(self._session, _FILING, filing_id):
            row = load_for_update(self._session, MonthlyFilingModel, filing_id, _FILING)
            transition = next_state(
                MONTHLY_FILING_WORKFLOW, row.status, action,
                entity_type=_FILING, entity_id=filing_id,
            )
            row.status = transition.to_state
            row.outcome_at = self._clock.now()
            if outcome is FilingOutcome.REJECTED:
                row.rejection_reason = reason
            row.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_FILING,
                entity_id=row.id,
                action=(
                    AuditAction.FILING_ACCEPTED
                    if outcome is FilingOutcome.ACCEPTED
                    else AuditAction.FILING_REJECTED
                ),
                actor_id=actor_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={"reason": reason},
            )

        logger.info(
            "monthly_filing_outcome_recorded",
            extra={"filing_id": str(filing_id), "outcome": outcome.value},
        )
        return row.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, filing_id: UUID) -> MonthlyFiling:
        return load(self._session, MonthlyFilingModel, filing_id, _FILING).to_dto()

    def get_for_period(self, year: int, month: int) -> MonthlyFiling | None:
        row = self._find(year, month)
        return row.to_dto() if row is not None else None

    def list(
        self,
        year: int | None = None,
        status: FilingStatus | str | None = None,
    ) -> list[MonthlyFiling]:
        query = (
            select(MonthlyFilingModel)
            .order_by(MonthlyFilingModel.year.desc(), MonthlyFilingModel.month.desc())
            .execution_options(populate_existing=True)
        )
        if year is not None:
            query = query.where(MonthlyFilingModel.year == year)
        if status is not None:
            query = query.where(MonthlyFilingModel.status == FilingStatus(status).value)
        return [row.to_dto() for row in self._session.execute(query).scalars().all()]

    def overview(self, as_of: date | None = None) -> FilingOverview:
        """Latest filing, latest reconciliation and the alerts needing attention."""
        as_of = as_of or self._clock.today()
        filings = [
            f for f in self.list()
            if (f.year, f.month) <= (as_of.year, as_of.month)
        ]
        reconciliation_row = self._session.execute(
            select(ReconciliationModel)
            .order_by(ReconciliationModel.generated_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        reconciliation = reconciliation_row.to_dto() if reconciliation_row is not None else None

        alerts: list[FilingAlert] = []
        for filing in filings:
            if filing.status in (FilingStatus.DRAFT, FilingStatus.READY) and filing.due_date:
                if filing.due_date < as_of:
                    alerts.append(
                        FilingAlert(
                            AlertSeverity.ERROR,
                            "Filing overdue",
                            f"{filing.period_label} was due on {filing.due_date.isoformat()}",
                            filing_id=filing.id,
                            due_date=filing.due_date,
                        )
                    )
                elif filing.due_date <= as_of + timedelta(days=DUE_SOON_DAYS):
                    alerts.append(
                        FilingAlert(
                            AlertSeverity.WARNING,
                            "Filing due soon",
                            f"{filing.period_label} is due on {filing.due_date.isoformat()}",
                            filing_id=filing.id,
                            due_date=filing.due_date,
                        )
                    )
            elif filing.status is FilingStatus.REJECTED:
                alerts.append(
                    FilingAlert(
                        AlertSeverity.ERROR,
                        "Filing rejected",
                        f"{filing.period_label}: {filing.rejection_reason or 'no reason given'}",
                        filing_id=filing.id,
                    )
                )
        if (
            reconciliation is not None
            and reconciliation.status is ReconciliationStatus.DRAFT
            and reconciliation.has_mismatches
        ):
            alerts.append(
                FilingAlert(
                    AlertSeverity.WARNING,
                    "Reconciliation variance",
                    f"Tax year {reconciliation.tax_year} {reconciliation.type.value} reconciliation "
                    f"has a variance of {reconciliation.variance}",
                )
            )

        return FilingOverview(
            as_of=as_of,
            current=filings[0] if filings else None,
            latest_reconciliation=reconciliation,
            alerts=tuple(alerts),
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _find(self, year: int, month: int) -> MonthlyFilingModel | None:
        return self._session.execute(
            select(MonthlyFilingModel)
            .where(MonthlyFilingModel.year == year, MonthlyFilingModel.month == month)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _aggregate(self, year: int, month: int) -> _Aggregate:
        first, last = month_bounds(year, month)
        runs = self._session.execute(
            select(PayRunModel)
            .where(
                PayRunModel.status == PayRunStatus.FINALIZED.value,
                PayRunModel.pay_date >= first,
                PayRunModel.pay_date <= last,
            )
            .order_by(PayRunModel.pay_date, PayRunModel.name)
            .execution_options(populate_existing=True)
        ).scalars().all()

        pay_runs: list[dict[str, Any]] = []
        by_employee: dict[UUID, _EmployeeTotals] = {}
        for run in runs:
            run_tax = run_uif = run_sdl = ZERO
            for payslip in (p.to_dto() for p in run.payslips):
                uif = payslip.uif_amount + payslip.employer_uif
                totals = by_employee.setdefault(
                    payslip.employee_id,
                    _EmployeeTotals(payslip.employee_number, payslip.employee_name),
                )
                totals.tax += payslip.tax_amount
                totals.uif += uif
                totals.sdl += payslip.sdl_amount
                run_tax += payslip.tax_amount
                run_uif += uif
                run_sdl += payslip.sdl_amount
            pay_runs.append(
                {
                    "pay_run_id": str(run.id),
                    "name": run.name,
                    "period_start": run.period_start.isoformat(),
                    "period_end": run.period_end.isoformat(),
                    "tax": str(run_tax),
                    "uif": str(run_uif),
                    "sdl": str(run_sdl),
                    "employee_count": len(run.payslips),
                }
            )

        ordered = sorted(by_employee.items(), key=lambda item: item[1].employee_number)
        return _Aggregate(
            pay_runs=pay_runs,
            employee_lines=[
                {
                    "employee_id": str(employee_id),
                    "employee_number": t.employee_number,
                    "employee_name": t.employee_name,
                    "tax": str(t.tax),
                    "uif": str(t.uif),
                    "sdl": str(t.sdl),
                }
                for employee_id, t in ordered
            ],
            total_tax=sum((t.tax for t in by_employee.values()), ZERO),
            total_uif=sum((t.uif for t in by_employee.values()), ZERO),
            total_sdl=sum((t.sdl for t in by_employee.values()), ZERO),
        )

    @staticmethod
    def _apply_aggregate(row: MonthlyFilingModel, aggregate: _Aggregate) -> None:
        row.pay_runs = aggregate.pay_runs
        row.employee_lines = aggregate.employee_lines
        row.total_tax = aggregate.total_tax
        row.total_uif = aggregate.total_uif
        row.total_sdl = aggregate.total_sdl
        row.employee_count = aggregate.employee_count
