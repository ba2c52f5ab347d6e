"""
Tests for the termination settlement calculator.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_config.schema import StatutoryConfig
from payroll_engines.compensation import (
    CompensationProfile,
    DeductionInput,
    PAYE,
    SalaryType,
    UIF,
)
from payroll_engines.settlement import (
    SettlementCalculator,
    SettlementOverrides,
    SettlementTerms,
    TerminationPayComponents,
    TerminationReason,
    completed_years,
)
from payroll_kernel.domain.calendar import FixedHolidayCalendar, WeekendCalendar
from payroll_kernel.exceptions import ValidationError


@pytest.fixture
def calculator():
    return SettlementCalculator(StatutoryConfig.with_defaults(), WeekendCalendar())


@pytest.fixture
def profile():
    return CompensationProfile(
        employee_id=uuid4(),
        salary_type=SalaryType.FIXED,
        salary_amount=Decimal("20000.00"),
    )


def _terms(**overrides):
    fields = {
        "termination_date": date(2026, 3, 13),
        "last_working_day": date(2026, 3, 13),
        "reason": TerminationReason.RESIGNATION,
        "employment_start_date": date(2020, 1, 1),
    }
    fields.update(overrides)
    return SettlementTerms(**fields)


class TestCompose:

    def test_leave_payout_added_to_gross(self, calculator, profile):
        components = calculator.compose(
            profile,
            settlement_date=date(2026, 3, 31),
            final_salary=Decimal("20000"),
            notice_pay=Decimal("0"),
            severance_pay=Decimal("0"),
            pro_rata_earnings=Decimal("0"),
            leave_payout_days=Decimal("10"),
            daily_rate=Decimal("920"),
        )

        assert components.earnings.leave_payout_amount == Decimal("9200.00")
        assert components.summary.gross_pay == Decimal("29200.00")
        assert components.summary.primary_tax == Decimal("7300.00")
        assert components.summary.unemployment_contribution == Decimal("177.12")
        assert components.summary.net_pay == Decimal("21722.88")

    def test_net_may_be_negative(self, calculator, profile):
        components = calculator.compose(
            profile,
            settlement_date=date(2026, 3, 31),
            final_salary=Decimal("100"),
            notice_pay=Decimal("0"),
            severance_pay=Decimal("0"),
            pro_rata_earnings=Decimal("0"),
            leave_payout_days=Decimal("0"),
            daily_rate=Decimal("920"),
            other_deductions=[DeductionInput("LOAN", "Staff loan", amount=Decimal("5000"))],
        )

        assert components.summary.net_pay < 0

    def test_skip_code_applied_to_other_deduction(self, calculator, profile):
        components = calculator.compose(
            profile,
            settlement_date=date(2026, 3, 31),
            final_salary=Decimal("1000"),
            notice_pay=Decimal("0"),
            severance_pay=Decimal("0"),
            pro_rata_earnings=Decimal("0"),
            leave_payout_days=Decimal("0"),
            daily_rate=Decimal("920"),
            other_deductions=[DeductionInput("LOAN", "Staff loan", amount=Decimal("500"))],
            skip_codes={"LOAN"},
        )

        loan = next(d for d in components.deductions if d.code == "LOAN")
        assert loan.skip
        assert components.summary.total_deductions == Decimal("260.00")

    @pytest.mark.parametrize("code", [PAYE, UIF])
    def test_statutory_skip_rejected(self, calculator, profile, code):
        with pytest.raises(ValidationError):
            calculator.compose(
                profile,
                settlement_date=date(2026, 3, 31),
                final_salary=Decimal("1000"),
                notice_pay=Decimal("0"),
                severance_pay=Decimal("0"),
                pro_rata_earnings=Decimal("0"),
                leave_payout_days=Decimal("0"),
                daily_rate=Decimal("920"),
                skip_codes={code},
            )

    def test_negative_figure_rejected(self, calculator, profile):
        with pytest.raises(ValidationError) as exc_info:
            calculator.compose(
                profile,
                settlement_date=date(2026, 3, 31),
                final_salary=Decimal("1000"),
                notice_pay=Decimal("-1"),
                severance_pay=Decimal("0"),
                pro_rata_earnings=Decimal("0"),
                leave_payout_days=Decimal("0"),
                daily_rate=Decimal("920"),
            )

        assert exc_info.value.field == "notice_pay"


class TestComponents:

    def test_daily_rate_fixed(self, calculator, profile):
        assert calculator.daily_rate(profile) == Decimal("20000.00") / Decimal("21.67")

    def test_daily_rate_hourly(self, calculator):
        hourly = CompensationProfile(
            employee_id=uuid4(), salary_type=SalaryType.HOURLY, salary_amount=Decimal("100"),
        )

        assert calculator.daily_rate(hourly) == Decimal("800")

    def test_final_salary_pro_rata_by_business_days(self, calculator, profile):
        # Mar 2026 has 22 business days; 2..13 March is 10
        assert calculator.final_salary(profile, _terms()) == Decimal("9090.91")

    def test_final_salary_skips_holidays(self, profile):
        calculator = SettlementCalculator(
            StatutoryConfig.with_defaults(), FixedHolidayCalendar([date(2026, 3, 20)]),
        )

        # 10 of 21 business days
        assert calculator.final_salary(profile, _terms()) == Decimal("9523.81")

    def test_notice_pay_only_in_lieu(self, calculator, profile):
        terms = _terms(termination_date=date(2026, 4, 12))

        assert calculator.notice_pay(profile, terms) == Decimal("0")
        assert calculator.notice_pay(profile, _terms(
            termination_date=date(2026, 4, 12), paid_in_lieu=True,
        )) == Decimal("19726.03")

    def test_notice_pay_capped_at_notice_period(self, calculator, profile):
        terms = _terms(termination_date=date(2026, 4, 12), paid_in_lieu=True, notice_period_days=7)

        # 20000 * 12 / 365 * 7
        assert calculator.notice_pay(profile, terms) == Decimal("4602.74")

    def test_severance_only_for_retrenchment(self, calculator, profile):
        assert calculator.severance_pay(profile, _terms()) == Decimal("0")
        retrenched = _terms(reason=TerminationReason.RETRENCHMENT, termination_date=date(2026, 4, 12))

        # weekly 20000 * 12 / 52, six completed years
        assert calculator.severance_pay(profile, retrenched) == Decimal("27692.31")

    def test_completed_years(self):
        assert completed_years(date(2020, 6, 15), date(2026, 6, 14)) == 5
        assert completed_years(date(2020, 6, 15), date(2026, 6, 15)) == 6
        assert completed_years(date(2026, 1, 1), date(2025, 1, 1)) == 0


class TestComputeSettlement:

    def test_full_settlement(self, calculator, profile):
        components = calculator.compute_settlement(profile, _terms(), Decimal("10"))

        assert components.earnings.final_salary == Decimal("9090.91")
        assert components.earnings.leave_payout_days == Decimal("10.0000")
        assert components.earnings.leave_payout_amount == Decimal("9229.35")
        assert components.warnings == ()

    def test_negative_leave_pays_nothing_and_warns(self, calculator, profile):
        components = calculator.compute_settlement(profile, _terms(), Decimal("-2"))

        assert components.earnings.leave_payout_amount == Decimal("0.00")
        assert len(components.warnings) == 1
        assert "negative" in components.warnings[0]

    def test_overrides_replace_computed_figures(self, calculator, profile):
        components = calculator.compute_settlement(
            profile, _terms(), Decimal("10"),
            overrides=SettlementOverrides(final_salary=Decimal("5000"), leave_payout_days=Decimal("0")),
        )

        assert components.summary.gross_pay == Decimal("5000.00")

    def test_last_working_day_after_termination_rejected(self, calculator, profile):
        with pytest.raises(ValidationError):
            calculator.compute_settlement(
                profile, _terms(last_working_day=date(2026, 3, 20)), Decimal("0"),
            )

    def test_components_survive_serialization(self, calculator, profile):
        components = calculator.compute_settlement(profile, _terms(), Decimal("-1"))

        assert TerminationPayComponents.from_dict(components.to_dict()) == components
