"""
Tests for the monthly filing service.

Covers:
- Preparation from finalized pay runs, including the finalize sink
- Validation errors and warnings
- draft -> ready -> submitted -> accepted/rejected
- Overview alerts for overdue, due-soon and rejected filings
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_engines.compensation import CompensationCalculator, DeductionInput
from payroll_kernel.domain.calendar import WeekendCalendar
from payroll_kernel.exceptions import InvalidStateError, ValidationError
from payroll_modules.filings.models import AlertSeverity, FilingOutcome, FilingStatus
from payroll_modules.filings.monthly import (
    FILING_OUT_OF_DATE,
    NO_FINALIZED_PAYROLL,
    PAYROLL_NOT_FINALIZED,
    filing_due_date,
)
from payroll_modules.payroll.service import PayRunOrchestrator

MARCH = (date(2026, 3, 1), date(2026, 3, 31), date(2026, 3, 25))


@pytest.fixture
def employee(create_employee):
    """20000 gross, PAYE fixed at 5000, no UIF."""
    return create_employee(
        uif_included=False,
        recurring_deductions=(DeductionInput("PAYE", "PAYE", amount=Decimal("5000")),),
    )


@pytest.fixture
def finalized_march(pay_runs, employee, test_actor_id):
    run = pay_runs.create(*MARCH, "monthly", test_actor_id)
    pay_runs.calculate(run.id, test_actor_id)
    return pay_runs.finalize(run.id, test_actor_id)


@pytest.fixture
def march_filing(monthly_filings, finalized_march):
    return monthly_filings.get_for_period(2026, 3)


class TestDueDate:

    def test_due_on_seventh_of_next_month(self):
        assert filing_due_date(2026, 3) == date(2026, 4, 7)

    def test_december_rolls_into_next_year(self):
        assert filing_due_date(2025, 12) == date(2026, 1, 7)


class TestPrepare:

    def test_sink_prepares_draft(self, march_filing, finalized_march):
        assert march_filing.status is FilingStatus.DRAFT
        assert march_filing.period_label == "March 2026"
        assert march_filing.due_date == date(2026, 4, 7)
        assert march_filing.total_tax == Decimal("5000.00")
        assert march_filing.total_sdl == Decimal("200.00")
        assert march_filing.employee_count == 1
        assert march_filing.pay_run_ids == (finalized_march.id,)

    def test_prepare_refreshes_same_draft(self, monthly_filings, march_filing, test_actor_id):
        refreshed = monthly_filings.prepare(2026, 3, test_actor_id)

        assert refreshed.id == march_filing.id
        assert len(monthly_filings.list(year=2026)) == 1

    def test_empty_month_prepares_zero_filing(self, monthly_filings, test_actor_id):
        filing = monthly_filings.prepare(2026, 5, test_actor_id)

        assert filing.total_due == Decimal("0")
        assert filing.pay_run_ids == ()

    def test_invalid_month_rejected(self, monthly_filings, test_actor_id):
        with pytest.raises(ValidationError):
            monthly_filings.prepare(2026, 13, test_actor_id)

    def test_refresh_after_ready_rejected(self, monthly_filings, march_filing, test_actor_id):
        monthly_filings.mark_ready(march_filing.id, test_actor_id)

        with pytest.raises(InvalidStateError):
            monthly_filings.prepare(2026, 3, test_actor_id)

    def test_sink_skips_filing_past_draft(
        self, pay_runs, monthly_filings, march_filing, test_actor_id, captured_logs,
    ):
        monthly_filings.mark_ready(march_filing.id, test_actor_id)
        late = pay_runs.create(date(2026, 3, 1), date(2026, 3, 31), date(2026, 3, 27), "monthly", test_actor_id)
        pay_runs.calculate(late.id, test_actor_id)

        pay_runs.finalize(late.id, test_actor_id)

        filing = monthly_filings.get(march_filing.id)
        assert filing.status is FilingStatus.READY
        assert filing.total_tax == Decimal("5000.00")
        assert any(r["message"] == "monthly_filing_refresh_skipped" for r in captured_logs())


class TestValidate:

    def test_clean_filing_is_valid(self, monthly_filings, march_filing):
        validation = monthly_filings.validate(march_filing.id)

        assert validation.is_valid
        assert validation.warnings == ()

    def test_no_finalized_payroll(self, monthly_filings, test_actor_id):
        filing = monthly_filings.prepare(2026, 5, test_actor_id)

        validation = monthly_filings.validate(filing.id)

        assert [e.code for e in validation.errors] == [NO_FINALIZED_PAYROLL]

    def test_open_pay_run_in_month(self, pay_runs, monthly_filings, march_filing, test_actor_id):
        pay_runs.create(
            date(2026, 3, 1), date(2026, 3, 31), date(2026, 3, 27), "monthly", test_actor_id,
            name="March bonus",
        )

        validation = monthly_filings.validate(march_filing.id)

        assert [e.code for e in validation.errors] == [PAYROLL_NOT_FINALIZED]
        assert "March bonus" in validation.errors[0].message
        with pytest.raises(ValidationError):
            monthly_filings.mark_ready(march_filing.id, test_actor_id)

    def test_out_of_date_draft_warns(
        self, session, employee_master, statutory_config, deterministic_clock,
        auditor_service, monthly_filings, employee, test_actor_id,
    ):
        filing = monthly_filings.prepare(2026, 3, test_actor_id)
        unsinked = PayRunOrchestrator(
            session,
            employee_master=employee_master,
            calculator=CompensationCalculator(statutory_config),
            calendar=WeekendCalendar(),
            clock=deterministic_clock,
            auditor=auditor_service,
        )
        run = unsinked.create(*MARCH, "monthly", test_actor_id)
        unsinked.calculate(run.id, test_actor_id)
        unsinked.finalize(run.id, test_actor_id)

        validation = monthly_filings.validate(filing.id)

        assert FILING_OUT_OF_DATE in [w.code for w in validation.warnings]


class TestLifecycle:

    def test_submit_returns_totals(self, monthly_filings, march_filing, test_actor_id):
        monthly_filings.mark_ready(march_filing.id, test_actor_id)

        submission = monthly_filings.submit(march_filing.id, test_actor_id)

        assert submission.filing_id == march_filing.id
        assert submission.total_due == Decimal("5200.00")
        assert submission.employee_count == 1
        assert submission.submitted_by == test_actor_id
        filing = monthly_filings.get(march_filing.id)
        assert filing.status is FilingStatus.SUBMITTED
        assert filing.is_locked

    def test_submit_requires_ready(self, monthly_filings, march_filing, test_actor_id):
        with pytest.raises(InvalidStateError):
            monthly_filings.submit(march_filing.id, test_actor_id)

    def test_accepted(self, monthly_filings, march_filing, test_actor_id):
        monthly_filings.mark_ready(march_filing.id, test_actor_id)
        monthly_filings.submit(march_filing.id, test_actor_id)

        filing = monthly_filings.record_outcome(march_filing.id, FilingOutcome.ACCEPTED, test_actor_id)

        assert filing.status is FilingStatus.ACCEPTED
        assert filing.rejection_reason is None

    def test_rejected_keeps_reason(self, monthly_filings, march_filing, test_actor_id):
        monthly_filings.mark_ready(march_filing.id, test_actor_id)
        monthly_filings.submit(march_filing.id, test_actor_id)

        filing = monthly_filings.record_outcome(
            march_filing.id, "rejected", test_actor_id, reason="Totals mismatch",
        )

        assert filing.status is FilingStatus.REJECTED
        assert filing.rejection_reason == "Totals mismatch"

    def test_outcome_requires_submission(self, monthly_filings, march_filing, test_actor_id):
        with pytest.raises(InvalidStateError):
            monthly_filings.record_outcome(march_filing.id, "accepted", test_actor_id)

    def test_lifecycle_audited(self, monthly_filings, march_filing, auditor_service, test_actor_id):
        monthly_filings.mark_ready(march_filing.id, test_actor_id)
        monthly_filings.submit(march_filing.id, test_actor_id)
        monthly_filings.record_outcome(march_filing.id, "accepted", test_actor_id)

        trace = auditor_service.get_trace("MonthlyFiling", march_filing.id)
        assert trace.actions == (
            "filing_prepared", "filing_ready", "filing_submitted", "filing_accepted",
        )


class TestOverview:

    def test_overdue_is_error(self, monthly_filings, march_filing):
        overview = monthly_filings.overview(as_of=date(2026, 4, 10))

        assert overview.current.id == march_filing.id
        assert [(a.severity, a.title) for a in overview.alerts] == [
            (AlertSeverity.ERROR, "Filing overdue"),
        ]

    def test_due_soon_is_warning(self, monthly_filings, march_filing):
        overview = monthly_filings.overview(as_of=date(2026, 4, 2))

        assert [(a.severity, a.due_date) for a in overview.alerts] == [
            (AlertSeverity.WARNING, date(2026, 4, 7)),
        ]

    def test_not_yet_due_has_no_alert(self, monthly_filings, march_filing):
        assert monthly_filings.overview(as_of=date(2026, 3, 28)).alerts == ()

    def test_rejected_filing_alerts(self, monthly_filings, march_filing, test_actor_id):
        monthly_filings.mark_ready(march_filing.id, test_actor_id)
        monthly_filings.submit(march_filing.id, test_actor_id)
        monthly_filings.record_outcome(march_filing.id, "rejected", test_actor_id, reason="Bad totals")

        overview = monthly_filings.overview(as_of=date(2026, 4, 10))

        assert len(overview.alerts) == 1
        assert overview.alerts[0].title == "Filing rejected"
        assert "Bad totals" in overview.alerts[0].message

    def test_future_months_excluded(self, monthly_filings, march_filing):
        overview = monthly_filings.overview(as_of=date(2026, 2, 15))

        assert overview.current is None
        assert overview.alerts == ()
