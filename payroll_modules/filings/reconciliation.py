"""
Reconciliation Service (``payroll_modules.filings.reconciliation``).

Responsibility
--------------
Loads finalized pay runs and submitted monthly filings for a tax year
half (interim) or the whole year (final), runs
``FilingReconciliationEngine`` over them and persists the result as a
``BiAnnualReconciliation``.

Invariants enforced
-------------------
* One reconciliation per (tax_year, type).  Generating again replaces the
  draft's figures wholesale; figures are never merged.
* A submitted reconciliation is never regenerated.

Failure modes
-------------
* ``InvalidStateError`` -- regenerate or transition not legal from the
  current status.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_config.schema import StatutoryConfig
from payroll_engines.reconciliation import (
    COUNTED_FILING_STATUSES,
    FilingReconciliationEngine,
    FilingTaxRecord,
    PayRunTaxRecord,
    ReconciliationResult,
    ReconciliationType,
    tax_year_months,
)
from payroll_kernel.domain.calendar import month_bounds
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.workflow import next_state
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditAction
from payroll_kernel.services.auditor_service import AuditorService, AuditSink
from payroll_modules._service_helpers import load, load_for_update, unit_of_work
from payroll_modules.filings.models import (
    BiAnnualReconciliation,
    FilingOutcome,
    ReconciliationStatus,
)
from payroll_modules.filings.orm import MonthlyFilingModel, ReconciliationModel
from payroll_modules.filings.workflows import RECONCILIATION_WORKFLOW
from payroll_modules.payroll.models import PayRunStatus
from payroll_modules.payroll.orm import PayRunModel

logger = get_logger("modules.filings.reconciliation")

_RECONCILIATION = "BiAnnualReconciliation"


class ReconciliationService:
    """Generates and files bi-annual reconciliations."""

    def __init__(
        self,
        session: Session,
        config: StatutoryConfig | None = None,
        clock: Clock | None = None,
        auditor: AuditSink | None = None,
    ):
        self._session = session
        self._config = config or StatutoryConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._engine = FilingReconciliationEngine(self._config.tax_year_start_month)

    def generate(
        self,
        tax_year: int,
        reconciliation_type: ReconciliationType | str,
        actor_id: UUID,
    ) -> BiAnnualReconciliation:
        """Reconcile and persist, superseding a draft for the same (tax_year, type).

        Raises:
            InvalidStateError: That reconciliation was already submitted.
        """
        reconciliation_type = ReconciliationType(reconciliation_type)
        periods = tax_year_months(
            tax_year, reconciliation_type, self._config.tax_year_start_month,
        )
        start, _ = month_bounds(*periods[0])
        _, end = month_bounds(*periods[-1])

        pay_runs, names = self._pay_run_records(start, end)
        filings = self._filing_records(periods)
        result = self._engine.reconcile(tax_year, reconciliation_type, pay_runs, filings)

        with unit_of_work(self._session, _RECONCILIATION, f"{tax_year}/{reconciliation_type.value}"):
            row = self._session.execute(
                select(ReconciliationModel)
                .where(
                    ReconciliationModel.tax_year == tax_year,
                    ReconciliationModel.type == reconciliation_type.value,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            superseded = row is not None
            if row is None:
                row = ReconciliationModel(
                    id=uuid4(),
                    tax_year=tax_year,
                    type=reconciliation_type.value,
                    status=ReconciliationStatus.DRAFT.value,
                    created_by_id=actor_id,
                )
                self._session.add(row)
            else:
                next_state(
                    RECONCILIATION_WORKFLOW, row.status, "regenerate",
                    entity_type=_RECONCILIATION, entity_id=row.id,
                )
                row.updated_by_id = actor_id
            self._apply_result(row, result, names)
            self._session.flush()
            self._auditor.record(
                entity_type=_RECONCILIATION,
                entity_id=row.id,
                action=AuditAction.RECONCILIATION_GENERATED,
                actor_id=actor_id,
                after_state=row.status,
                payload={
                    "tax_year": tax_year,
                    "type": reconciliation_type,
                    "superseded": superseded,
                    "payroll_total_tax": result.payroll_total_tax,
                    "filing_total_tax": result.filing_total_tax,
                    "pay_run_ids": list(result.pay_run_ids),
                    "filing_ids": list(result.filing_ids),
                },
            )

        logger.info(
            "reconciliation_generated",
            extra={
                "reconciliation_id": str(row.id),
                "tax_year": tax_year,
                "type": reconciliation_type.value,
                "variance": str(result.variance),
                "superseded": superseded,
            },
        )
        return row.to_dto()

    def submit(self, reconciliation_id: UUID, actor_id: UUID) -> BiAnnualReconciliation:
        with unit_of_work(self._session, _RECONCILIATION, reconciliation_id):
            row = load_for_update(self._session, ReconciliationModel, reconciliation_id, _RECONCILIATION)
            transition = next_state(
                RECONCILIATION_WORKFLOW, row.status, "submit",
                entity_type=_RECONCILIATION, entity_id=reconciliation_id,
            )
            row.status = transition.to_state
            row.submitted_at = self._clock.now()
            row.submitted_by = actor_id
            row.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_RECONCILIATION,
                entity_id=row.id,
                action=AuditAction.RECONCILIATION_SUBMITTED,
                actor_id=actor_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={"variance": row.payroll_total_tax - row.filing_total_tax},
            )

        logger.info("reconciliation_submitted", extra={"reconciliation_id": str(reconciliation_id)})
        return row.to_dto()

    def record_outcome(
        self,
        reconciliation_id: UUID,
        outcome: FilingOutcome | str,
        actor_id: UUID,
        reason: str | None = None,
    ) -> BiAnnualReconciliation:
        outcome = FilingOutcome(outcome)
        accepted = outcome is FilingOutcome.ACCEPTED
        with unit_of_work(self._session, _RECONCILIATION, reconciliation_id):
            row = load_for_update(self._session, ReconciliationModel, reconciliation_id, _RECONCILIATION)
            transition = next_state(
                RECONCILIATION_WORKFLOW, row.status, "accept" if accepted else "reject",
                entity_type=_RECONCILIATION, entity_id=reconciliation_id,
            )
            row.status = transition.to_state
            row.outcome_at = self._clock.now()
            if not accepted:
                row.rejection_reason = reason
            row.updated_by_id = actor_id
            self._auditor.record(
                entity_type=_RECONCILIATION,
                entity_id=row.id,
                action=(
                    AuditAction.RECONCILIATION_ACCEPTED if accepted
                    else AuditAction.RECONCILIATION_REJECTED
                ),
                actor_id=actor_id,
                before_state=transition.from_state,
                after_state=transition.to_state,
                payload={"reason": reason},
            )

        logger.info(
            "reconciliation_outcome_recorded",
            extra={"reconciliation_id": str(reconciliation_id), "outcome": outcome.value},
        )
        return row.to_dto()

    def get(self, reconciliation_id: UUID) -> BiAnnualReconciliation:
        return load(self._session, ReconciliationModel, reconciliation_id, _RECONCILIATION).to_dto()

    def list(self, tax_year: int | None = None) -> list[BiAnnualReconciliation]:
        query = (
            select(ReconciliationModel)
            .order_by(ReconciliationModel.tax_year.desc(), ReconciliationModel.type)
            .execution_options(populate_existing=True)
        )
        if tax_year is not None:
            query = query.where(ReconciliationModel.tax_year == tax_year)
        return [row.to_dto() for row in self._session.execute(query).scalars().all()]

    # -------------------------------------------------------------------------

    def _pay_run_records(
        self,
        start: date,
        end: date,
    ) -> tuple[list[PayRunTaxRecord], dict[UUID, tuple[str, str]]]:
        runs = self._session.execute(
            select(PayRunModel)
            .where(
                PayRunModel.status == PayRunStatus.FINALIZED.value,
                PayRunModel.pay_date >= start,
                PayRunModel.pay_date <= end,
            )
            .order_by(PayRunModel.pay_date)
            .execution_options(populate_existing=True)
        ).scalars().all()
        records: list[PayRunTaxRecord] = []
        names: dict[UUID, tuple[str, str]] = {}
        for run in runs:
            payslips = [p.to_dto() for p in run.payslips]
            for payslip in payslips:
                names[payslip.employee_id] = (payslip.employee_number, payslip.employee_name)
            records.append(
                PayRunTaxRecord(
                    pay_run_id=run.id,
                    status=run.status,
                    pay_date=run.pay_date,
                    employee_tax={p.employee_id: p.tax_amount for p in payslips},
                )
            )
        return records, names

    def _filing_records(self, periods: tuple[tuple[int, int], ...]) -> list[FilingTaxRecord]:
        covered = set(periods)
        years = {year for year, _ in periods}
        rows = self._session.execute(
            select(MonthlyFilingModel)
            .where(
                MonthlyFilingModel.year.in_(sorted(years)),
                MonthlyFilingModel.status.in_(sorted(COUNTED_FILING_STATUSES)),
            )
            .execution_options(populate_existing=True)
        ).scalars().all()
        records: list[FilingTaxRecord] = []
        for row in rows:
            if (row.year, row.month) not in covered:
                continue
            filing = row.to_dto()
            records.append(
                FilingTaxRecord(
                    filing_id=filing.id,
                    status=filing.status.value,
                    year=filing.year,
                    month=filing.month,
                    total_tax=filing.total_tax,
                    employee_tax={line.employee_id: line.tax for line in filing.employee_lines},
                )
            )
        return records

    def _apply_result(
        self,
        row: ReconciliationModel,
        result: ReconciliationResult,
        names: dict[UUID, tuple[str, str]],
    ) -> None:
        row.payroll_total_tax = result.payroll_total_tax
        row.filing_total_tax = result.filing_total_tax
        row.generated_at = self._clock.now()
        row.employee_lines = [
            {
                "employee_id": str(line.employee_id),
                "employee_number": names.get(line.employee_id, (None, None))[0],
                "employee_name": names.get(line.employee_id, (None, None))[1],
                "payroll_tax": str(line.payroll_tax),
                "filing_tax": str(line.filing_tax),
                "variance": str(line.variance),
            }
            for line in result.employee_lines
        ]
        row.period_lines = [
            {
                "year": line.year,
                "month": line.month,
                "payroll_tax": str(line.payroll_tax),
                "filing_tax": str(line.filing_tax),
            }
            for line in result.period_lines
        ]
