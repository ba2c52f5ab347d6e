"""
Tests for the pay run orchestrator.

Covers:
- create -> calculate -> finalize, with per-employee errors blocking finalize
- Recalculation replaces payslips rather than duplicating them
- Cancellation returns the run to draft with nothing computed
- Delete rules
- Payslip edits and their rollback on negative net pay
- Year-to-date figures from earlier finalized runs
- The finalized-run sink preparing the month's filing, and re-sending after a sink failure
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_engines.compensation import CompensationCalculator, DeductionInput
from payroll_engines.statutory import PayFrequency
from payroll_kernel.domain.calendar import WeekendCalendar
from payroll_kernel.domain.cancellation import CancellationToken
from payroll_kernel.exceptions import (
    CalculationCancelledError,
    CannotDeleteFinalizedError,
    EntityNotFoundError,
    HasEmployeeErrorsError,
    InvalidStateError,
    NegativeNetPayError,
    ValidationError,
)
from payroll_modules.employees.models import MISSING_TAX_NUMBER
from payroll_modules.filings.models import FilingStatus
from payroll_modules.payroll.models import (
    DeductionEdit,
    EarningEdit,
    EmployeeAdjustment,
    PayRunStatus,
)
from payroll_modules.payroll.service import PayRunOrchestrator

MARCH = (date(2026, 3, 1), date(2026, 3, 31), date(2026, 3, 25))
APRIL = (date(2026, 4, 1), date(2026, 4, 30), date(2026, 4, 25))


@pytest.fixture
def march_run(pay_runs, test_actor_id):
    return pay_runs.create(*MARCH, "monthly", test_actor_id)


@pytest.fixture
def flat_paye_employee(create_employee):
    """20000 gross, PAYE fixed at 5000, no UIF: nets 15000."""
    return create_employee(
        uif_included=False,
        recurring_deductions=(DeductionInput("PAYE", "PAYE", amount=Decimal("5000")),),
    )


@pytest.fixture
def overdrawn_employee(create_employee):
    return create_employee(
        recurring_deductions=(DeductionInput("LOAN", "Staff loan", amount=Decimal("30000")),),
    )


class TestCreate:

    def test_draft_with_zero_totals(self, march_run):
        assert march_run.status is PayRunStatus.DRAFT
        assert march_run.name == "March 2026"
        assert march_run.total_net == Decimal("0")

    def test_period_end_before_start_rejected(self, pay_runs, test_actor_id):
        with pytest.raises(ValidationError):
            pay_runs.create(date(2026, 3, 31), date(2026, 3, 1), date(2026, 3, 25), "monthly", test_actor_id)

    def test_creation_logged(self, pay_runs, test_actor_id, captured_logs):
        pay_runs.create(*MARCH, "monthly", test_actor_id)

        assert any(r["message"] == "pay_run_created" for r in captured_logs())


class TestCalculateAndFinalize:

    def test_net_pay_after_fixed_paye(self, pay_runs, march_run, flat_paye_employee, test_actor_id):
        run = pay_runs.calculate(march_run.id, test_actor_id)

        payslip = pay_runs.get_payslip(run.id, flat_paye_employee.id)
        assert run.status is PayRunStatus.READY
        assert payslip.gross_pay == Decimal("20000.00")
        assert payslip.tax_amount == Decimal("5000.00")
        assert payslip.uif_amount == Decimal("0")
        assert payslip.sdl_amount == Decimal("200.00")
        assert payslip.net_pay == Decimal("15000.00")
        assert run.total_net == Decimal("15000.00")

    def test_employee_error_blocks_finalize(
        self, pay_runs, march_run, flat_paye_employee, overdrawn_employee, test_actor_id,
    ):
        run = pay_runs.calculate(march_run.id, test_actor_id)

        assert run.employee_count == 2
        assert run.employees_with_errors == 1
        with pytest.raises(HasEmployeeErrorsError) as exc_info:
            pay_runs.finalize(run.id, test_actor_id)
        assert exc_info.value.employees_with_errors == 1
        assert pay_runs.get(run.id).status is PayRunStatus.READY

    def test_errored_employee_listed_without_payslip(
        self, pay_runs, march_run, flat_paye_employee, overdrawn_employee, test_actor_id,
    ):
        pay_runs.calculate(march_run.id, test_actor_id)

        entries = {e.employee_id: e for e in pay_runs.list_employees(march_run.id)}
        assert entries[flat_paye_employee.id].has_payslip
        assert not entries[overdrawn_employee.id].has_payslip
        assert entries[overdrawn_employee.id].errors[0].code == "NEGATIVE_NET_PAY"
        assert len(pay_runs.list_payslips(march_run.id)) == 1

    def test_missing_tax_number_is_an_error_with_payslip(
        self, pay_runs, march_run, create_employee, test_actor_id,
    ):
        employee = create_employee(tax_number=None)

        run = pay_runs.calculate(march_run.id, test_actor_id)

        payslip = pay_runs.get_payslip(run.id, employee.id)
        assert [e.code for e in payslip.errors] == [MISSING_TAX_NUMBER]
        assert run.employees_with_errors == 1

    def test_finalize_locks_payslips(self, pay_runs, march_run, flat_paye_employee, test_actor_id):
        pay_runs.calculate(march_run.id, test_actor_id)

        run = pay_runs.finalize(march_run.id, test_actor_id)

        assert run.is_finalized
        assert run.finalized_by == test_actor_id
        assert all(p.is_locked for p in pay_runs.list_payslips(run.id))

    def test_finalize_from_draft_rejected(self, pay_runs, march_run, test_actor_id):
        with pytest.raises(InvalidStateError):
            pay_runs.finalize(march_run.id, test_actor_id)

    def test_finalized_run_cannot_be_recalculated(
        self, pay_runs, march_run, flat_paye_employee, test_actor_id,
    ):
        pay_runs.calculate(march_run.id, test_actor_id)
        pay_runs.finalize(march_run.id, test_actor_id)

        with pytest.raises(InvalidStateError):
            pay_runs.calculate(march_run.id, test_actor_id)

    def test_recalculation_replaces_payslips(
        self, pay_runs, march_run, flat_paye_employee, create_employee, test_actor_id,
    ):
        create_employee()
        first = pay_runs.calculate(march_run.id, test_actor_id)

        second = pay_runs.calculate(first.id, test_actor_id)

        assert len(pay_runs.list_payslips(second.id)) == 2
        assert second.total_gross == first.total_gross
        assert second.total_net == first.total_net

    def test_adjustment_applies_to_one_calculation(
        self, pay_runs, march_run, flat_paye_employee, test_actor_id,
    ):
        adjustment = EmployeeAdjustment(
            deductions=(DeductionInput("LOAN", "Staff loan", amount=Decimal("1000")),),
        )

        run = pay_runs.calculate(
            march_run.id, test_actor_id, adjustments={flat_paye_employee.id: adjustment},
        )

        assert run.total_net == Decimal("14000.00")
        assert pay_runs.calculate(run.id, test_actor_id).total_net == Decimal("15000.00")

    def test_summary_totals(self, pay_runs, march_run, create_employee, test_actor_id):
        create_employee()
        pay_runs.calculate(march_run.id, test_actor_id)

        summary = pay_runs.summary(march_run.id)

        assert summary.total_gross == Decimal("20000.00")
        assert summary.total_tax == Decimal("5000.00")
        assert summary.total_uif == Decimal("177.12")
        assert summary.employer_uif == Decimal("177.12")
        assert summary.total_cost_to_company == Decimal("20377.12")

    def test_only_matching_frequency_in_scope(self, pay_runs, march_run, create_employee, test_actor_id):
        create_employee()
        create_employee(pay_frequency=PayFrequency.WEEKLY, salary_amount=Decimal("5000"))

        run = pay_runs.calculate(march_run.id, test_actor_id)

        assert run.employee_count == 1

    def test_mid_period_leaver_out_of_scope(
        self, pay_runs, march_run, create_employee, employee_master, test_actor_id,
    ):
        stayer = create_employee()
        leaver = create_employee()
        employee_master.mark_terminated(leaver.id, date(2026, 3, 13))

        pay_runs.calculate(march_run.id, test_actor_id)

        assert [e.employee_id for e in pay_runs.list_employees(march_run.id)] == [stayer.id]
        assert pay_runs.get(march_run.id).employee_count == 1


class TestCancellation:

    def test_cancelled_calculation_returns_to_draft(
        self, pay_runs, march_run, flat_paye_employee, test_actor_id,
    ):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(CalculationCancelledError):
            pay_runs.calculate(march_run.id, test_actor_id, cancel_token=token)

        run = pay_runs.get(march_run.id)
        assert run.status is PayRunStatus.DRAFT
        assert run.employee_count == 0
        assert pay_runs.list_payslips(run.id) == []

    def test_cancellation_audited(
        self, pay_runs, march_run, flat_paye_employee, auditor_service, test_actor_id,
    ):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(CalculationCancelledError):
            pay_runs.calculate(march_run.id, test_actor_id, cancel_token=token)

        trace = auditor_service.get_trace("PayRun", march_run.id)
        assert trace.last_action == "pay_run_calculation_cancelled"


class TestDelete:

    def test_delete_draft(self, pay_runs, march_run, test_actor_id):
        pay_runs.delete(march_run.id, test_actor_id)

        with pytest.raises(EntityNotFoundError):
            pay_runs.get(march_run.id)

    def test_delete_ready(self, pay_runs, march_run, flat_paye_employee, test_actor_id):
        pay_runs.calculate(march_run.id, test_actor_id)

        pay_runs.delete(march_run.id, test_actor_id)

        assert pay_runs.list() == []

    def test_finalized_cannot_be_deleted(self, pay_runs, march_run, flat_paye_employee, test_actor_id):
        pay_runs.calculate(march_run.id, test_actor_id)
        pay_runs.finalize(march_run.id, test_actor_id)

        with pytest.raises(CannotDeleteFinalizedError):
            pay_runs.delete(march_run.id, test_actor_id)
        assert pay_runs.get(march_run.id).is_finalized


class TestPayslipEdits:

    def test_add_earning_reaggregates_run(
        self, pay_runs, march_run, flat_paye_employee, test_actor_id,
    ):
        pay_runs.calculate(march_run.id, test_actor_id)

        payslip = pay_runs.update_payslip(
            march_run.id, flat_paye_employee.id, test_actor_id,
            earnings=[EarningEdit("BONUS", amount=Decimal("1000"), name="Bonus")],
        )

        assert payslip.gross_pay == Decimal("21000.00")
        assert payslip.net_pay == Decimal("16000.00")
        assert pay_runs.get(march_run.id).total_net == Decimal("16000.00")

    def test_negative_edit_rolled_back(self, pay_runs, march_run, flat_paye_employee, test_actor_id):
        pay_runs.calculate(march_run.id, test_actor_id)

        with pytest.raises(NegativeNetPayError):
            pay_runs.update_payslip(
                march_run.id, flat_paye_employee.id, test_actor_id,
                deductions=[DeductionEdit("LOAN", amount=Decimal("50000"), name="Staff loan")],
            )

        assert pay_runs.get_payslip(march_run.id, flat_paye_employee.id).net_pay == Decimal("15000.00")
        assert pay_runs.get(march_run.id).total_net == Decimal("15000.00")

    def test_skip_statutory_rejected(self, pay_runs, march_run, create_employee, test_actor_id):
        employee = create_employee()
        pay_runs.calculate(march_run.id, test_actor_id)

        with pytest.raises(ValidationError):
            pay_runs.update_payslip(
                march_run.id, employee.id, test_actor_id,
                deductions=[DeductionEdit("UIF", is_skipped=True)],
            )

    def test_unknown_line_needs_name(self, pay_runs, march_run, flat_paye_employee, test_actor_id):
        pay_runs.calculate(march_run.id, test_actor_id)

        with pytest.raises(ValidationError):
            pay_runs.update_payslip(
                march_run.id, flat_paye_employee.id, test_actor_id,
                earnings=[EarningEdit("BONUS", amount=Decimal("1000"))],
            )

    def test_edit_after_finalize_rejected(self, pay_runs, march_run, flat_paye_employee, test_actor_id):
        pay_runs.calculate(march_run.id, test_actor_id)
        pay_runs.finalize(march_run.id, test_actor_id)

        with pytest.raises(InvalidStateError):
            pay_runs.update_payslip(
                march_run.id, flat_paye_employee.id, test_actor_id,
                earnings=[EarningEdit("BONUS", amount=Decimal("1"), name="Bonus")],
            )


class TestYearToDate:

    def test_ytd_includes_earlier_finalized_runs(
        self, pay_runs, march_run, flat_paye_employee, test_actor_id,
    ):
        pay_runs.calculate(march_run.id, test_actor_id)
        pay_runs.finalize(march_run.id, test_actor_id)
        april = pay_runs.create(*APRIL, "monthly", test_actor_id)

        pay_runs.calculate(april.id, test_actor_id)

        payslip = pay_runs.get_payslip(april.id, flat_paye_employee.id)
        assert payslip.ytd_gross == Decimal("40000.00")
        assert payslip.ytd_tax == Decimal("10000.00")
        assert payslip.ytd_net == Decimal("30000.00")

    def test_previous_tax_year_excluded(self, pay_runs, flat_paye_employee, test_actor_id):
        february = pay_runs.create(date(2026, 2, 1), date(2026, 2, 28), date(2026, 2, 25), "monthly", test_actor_id)
        pay_runs.calculate(february.id, test_actor_id)
        pay_runs.finalize(february.id, test_actor_id)
        march = pay_runs.create(*MARCH, "monthly", test_actor_id)

        pay_runs.calculate(march.id, test_actor_id)

        assert pay_runs.get_payslip(march.id, flat_paye_employee.id).ytd_gross == Decimal("20000.00")


class TestFinalizedSink:

    def test_finalize_prepares_monthly_filing(
        self, pay_runs, march_run, flat_paye_employee, monthly_filings, test_actor_id,
    ):
        pay_runs.calculate(march_run.id, test_actor_id)
        pay_runs.finalize(march_run.id, test_actor_id)

        filing = monthly_filings.get_for_period(2026, 3)
        assert filing is not None
        assert filing.status is FilingStatus.DRAFT
        assert filing.total_tax == Decimal("5000.00")
        assert filing.total_sdl == Decimal("200.00")
        assert filing.pay_run_ids == (march_run.id,)

    def test_sink_failure_leaves_run_finalized(
        self, pay_runs, march_run, flat_paye_employee, monthly_filings, test_actor_id,
        monkeypatch, captured_logs,
    ):
        def unavailable(pay_run):
            raise ConnectionError("filing store unavailable")

        pay_runs.calculate(march_run.id, test_actor_id)
        monkeypatch.setattr(monthly_filings, "pay_run_finalized", unavailable)

        finalized = pay_runs.finalize(march_run.id, test_actor_id)

        assert finalized.status is PayRunStatus.FINALIZED
        assert pay_runs.get(march_run.id).status is PayRunStatus.FINALIZED
        assert monthly_filings.get_for_period(2026, 3) is None
        failure = next(r for r in captured_logs() if r["message"] == "pay_run_finalized_sink_failed")
        assert failure["exc_type"] == "ConnectionError"

    def test_sync_finalized_resends_to_sink(
        self, pay_runs, march_run, flat_paye_employee, monthly_filings, test_actor_id, monkeypatch,
    ):
        pay_runs.calculate(march_run.id, test_actor_id)
        with monkeypatch.context() as patched:
            patched.setattr(monthly_filings, "pay_run_finalized", lambda pay_run: 1 / 0)
            pay_runs.finalize(march_run.id, test_actor_id)

        pay_runs.sync_finalized(march_run.id)

        filing = monthly_filings.get_for_period(2026, 3)
        assert filing.pay_run_ids == (march_run.id,)
        assert filing.total_tax == Decimal("5000.00")

    def test_sync_requires_finalized_run(self, pay_runs, march_run):
        with pytest.raises(InvalidStateError):
            pay_runs.sync_finalized(march_run.id)


class TestThreadedCalculation:

    def test_worker_pool_matches_sequential(
        self, session, pay_runs, employee_master, statutory_config, deterministic_clock,
        auditor_service, create_employee, test_actor_id,
    ):
        for salary in ("18000", "20000", "25000", "31000"):
            create_employee(salary_amount=Decimal(salary))
        pooled = PayRunOrchestrator(
            session,
            employee_master=employee_master,
            calculator=CompensationCalculator(statutory_config),
            calendar=WeekendCalendar(),
            clock=deterministic_clock,
            auditor=auditor_service,
            max_workers=4,
        )
        sequential_run = pay_runs.create(*MARCH, "monthly", test_actor_id)
        pooled_run = pooled.create(*MARCH, "monthly", test_actor_id)

        sequential = pay_runs.calculate(sequential_run.id, test_actor_id)
        threaded = pooled.calculate(pooled_run.id, test_actor_id)

        assert threaded.employee_count == 4
        assert threaded.total_gross == sequential.total_gross == Decimal("94000.00")
        assert threaded.total_net == sequential.total_net
        assert [p.employee_number for p in pooled.list_payslips(pooled_run.id)] == [
            "E001", "E002", "E003", "E004",
        ]
