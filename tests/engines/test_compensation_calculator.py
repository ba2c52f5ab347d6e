"""
Tests for the gross-to-net payslip calculator.

Covers:
- Fixed and hourly base salary lines
- Overtime at the configured multiplier
- Statutory deductions, overrides and skip rules
- Employer contributions
- Negative net pay enforcement
- Property: gross - deductions == net for any valid input
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_config.schema import StatutoryConfig
from payroll_engines.compensation import (
    BASIC,
    OVERTIME,
    PAYE,
    SDL,
    UIF,
    UIF_EMPLOYER,
    CompensationCalculator,
    CompensationProfile,
    DeductionInput,
    EarningInput,
    PayPeriod,
    SalaryType,
)
from payroll_engines.statutory import PayFrequency
from payroll_kernel.exceptions import NegativeNetPayError, ValidationError

MARCH = PayPeriod(
    start=date(2026, 3, 1),
    end=date(2026, 3, 31),
    pay_date=date(2026, 3, 25),
    working_days=Decimal("22"),
)


@pytest.fixture
def calculator():
    return CompensationCalculator(StatutoryConfig.with_defaults())


def _fixed(amount="20000.00", **overrides):
    fields = {
        "employee_id": uuid4(),
        "salary_type": SalaryType.FIXED,
        "salary_amount": Decimal(amount),
    }
    fields.update(overrides)
    return CompensationProfile(**fields)


class TestBaseSalary:

    def test_fixed_salary_payslip(self, calculator):
        payslip = calculator.compute_payslip(_fixed(), MARCH)

        assert [e.code for e in payslip.earnings] == [BASIC]
        assert payslip.gross_pay == Decimal("20000.00")
        assert payslip.tax_amount == Decimal("5000.00")
        assert payslip.uif_amount == Decimal("177.12")
        assert payslip.total_deductions == Decimal("5177.12")
        assert payslip.net_pay == Decimal("14822.88")

    def test_hourly_base_uses_working_days(self, calculator):
        profile = _fixed("100.00", salary_type=SalaryType.HOURLY)

        payslip = calculator.compute_payslip(profile, MARCH)

        basic = payslip.earnings[0]
        assert basic.hours == Decimal("176")
        assert basic.amount == Decimal("17600.00")

    def test_hourly_without_working_days_rejected(self, calculator):
        profile = _fixed("100.00", salary_type=SalaryType.HOURLY)
        period = PayPeriod(start=date(2026, 3, 1), end=date(2026, 3, 31), pay_date=date(2026, 3, 25))

        with pytest.raises(ValidationError) as exc_info:
            calculator.compute_payslip(profile, period)

        assert exc_info.value.field == "period.working_days"

    def test_base_line_always_required(self, calculator):
        payslip = calculator.compute_payslip(_fixed(), MARCH)

        assert payslip.earnings[0].is_required

    def test_supplied_basic_replaces_computed(self, calculator):
        payslip = calculator.compute_payslip(
            _fixed(), MARCH, [EarningInput(BASIC, "Basic Salary", amount=Decimal("15000"))],
        )

        assert payslip.gross_pay == Decimal("15000.00")
        assert len(payslip.earnings) == 1


class TestEarnings:

    def test_overtime_at_multiplier(self, calculator):
        # 20000 / 160 = 125 per hour; * 1.5 = 187.5
        payslip = calculator.compute_payslip(
            _fixed(), MARCH, [EarningInput(OVERTIME, "Overtime", hours=Decimal("10"))],
        )

        overtime = payslip.earnings[1]
        assert overtime.rate == Decimal("187.5")
        assert overtime.amount == Decimal("1875.00")
        assert payslip.gross_pay == Decimal("21875.00")

    def test_rate_factors_not_rounded_before_the_line(self, calculator):
        # 10001 / 160 * 1.5 = 93.759375 per hour; 37 hours = 3469.096875
        payslip = calculator.compute_payslip(
            _fixed("10001.00"), MARCH, [EarningInput(OVERTIME, "Overtime", hours=Decimal("37"))],
        )

        overtime = payslip.earnings[1]
        assert overtime.rate == Decimal("93.759375")
        assert overtime.amount == Decimal("3469.10")
        assert payslip.gross_pay == Decimal("13470.10")

    def test_explicit_rate_wins(self, calculator):
        payslip = calculator.compute_payslip(
            _fixed(), MARCH,
            [EarningInput("STANDBY", "Standby", hours=Decimal("4"), rate=Decimal("50"))],
        )

        assert payslip.earnings[1].amount == Decimal("200.00")

    def test_non_taxable_earning_excluded_from_tax(self, calculator):
        payslip = calculator.compute_payslip(
            _fixed(), MARCH,
            [EarningInput("TRAVEL", "Travel", amount=Decimal("1000"), taxable=False)],
        )

        assert payslip.gross_pay == Decimal("21000.00")
        assert payslip.taxable_gross == Decimal("20000.00")
        assert payslip.tax_amount == Decimal("5000.00")

    def test_earning_needs_amount_or_hours(self, calculator):
        with pytest.raises(ValidationError):
            calculator.compute_payslip(_fixed(), MARCH, [EarningInput("BONUS", "Bonus")])

    def test_duplicate_codes_rejected(self, calculator):
        bonus = EarningInput("BONUS", "Bonus", amount=Decimal("10"))

        with pytest.raises(ValidationError, match="duplicate"):
            calculator.compute_payslip(_fixed(), MARCH, [bonus, bonus])


class TestDeductions:

    def test_paye_override(self, calculator):
        payslip = calculator.compute_payslip(
            _fixed(uif_included=False), MARCH, deductions_input=[
                DeductionInput(PAYE, "PAYE", amount=Decimal("5000")),
            ],
        )

        assert payslip.net_pay == Decimal("15000.00")
        assert [d.code for d in payslip.deductions] == [PAYE]

    def test_statutory_deduction_cannot_be_skipped(self, calculator):
        with pytest.raises(ValidationError, match="statutory"):
            calculator.compute_payslip(
                _fixed(), MARCH, deductions_input=[DeductionInput(UIF, "UIF", is_skipped=True)],
            )

    def test_required_deduction_cannot_be_skipped(self, calculator):
        with pytest.raises(ValidationError, match="required"):
            calculator.compute_payslip(
                _fixed(), MARCH, deductions_input=[
                    DeductionInput("PENSION", "Pension", rate=Decimal("0.05"), is_required=True, is_skipped=True),
                ],
            )

    def test_skipped_deduction_listed_but_not_totalled(self, calculator):
        payslip = calculator.compute_payslip(
            _fixed(uif_included=False), MARCH, deductions_input=[
                DeductionInput("LOAN", "Staff loan", amount=Decimal("500"), is_skipped=True),
            ],
        )

        assert payslip.deductions[-1].is_skipped
        assert payslip.total_deductions == Decimal("5000.00")

    def test_rate_deduction_on_gross(self, calculator):
        payslip = calculator.compute_payslip(
            _fixed(uif_included=False), MARCH, deductions_input=[
                DeductionInput("PENSION", "Pension", rate=Decimal("0.075")),
            ],
        )

        assert payslip.deduction_amount("PENSION") == Decimal("1500.00")
        assert payslip.other_deductions == Decimal("1500.00")


class TestEmployerContributions:

    def test_uif_matched_and_sdl(self, calculator):
        payslip = calculator.compute_payslip(_fixed(), MARCH)

        assert payslip.contribution_amount(UIF_EMPLOYER) == Decimal("177.12")
        assert payslip.contribution_amount(SDL) == Decimal("200.00")

    def test_no_contributions_when_excluded(self, calculator):
        payslip = calculator.compute_payslip(_fixed(uif_included=False, sdl_included=False), MARCH)

        assert payslip.employer_contributions == ()


class TestNegativeNetPay:

    def test_raises_when_deductions_exceed_gross(self, calculator):
        with pytest.raises(NegativeNetPayError) as exc_info:
            calculator.compute_payslip(
                _fixed("1000.00"), MARCH, deductions_input=[
                    DeductionInput("LOAN", "Staff loan", amount=Decimal("2000")),
                ],
            )

        assert exc_info.value.gross_pay == Decimal("1000.00")

    def test_unchecked_preview_returns_negative(self, calculator):
        payslip = calculator.compute_payslip(
            _fixed("1000.00"), MARCH,
            deductions_input=[DeductionInput("LOAN", "Staff loan", amount=Decimal("2000"))],
            enforce_non_negative=False,
        )

        assert payslip.net_pay < 0

    def test_trace_logged(self, calculator, captured_logs):
        calculator.compute_payslip(_fixed(), MARCH)

        traces = [r for r in captured_logs() if r["message"] == "PAYROLL_ENGINE_TRACE"]
        assert traces and traces[0]["engine_name"] == "compensation"


money = st.decimals(min_value=Decimal("0"), max_value=Decimal("200000"), places=2)


class TestPayslipIdentities:

    @settings(max_examples=60, deadline=None)
    @given(salary=money, bonus=money, loan=money, rate=st.decimals(min_value=0, max_value=Decimal("0.2"), places=3))
    def test_net_is_gross_minus_deductions(self, salary, bonus, loan, rate):
        calculator = CompensationCalculator(StatutoryConfig.with_defaults())
        payslip = calculator.compute_payslip(
            _fixed(str(salary), pay_frequency=PayFrequency.FORTNIGHTLY),
            MARCH,
            [EarningInput("BONUS", "Bonus", amount=bonus)],
            [
                DeductionInput("LOAN", "Staff loan", amount=loan),
                DeductionInput("PENSION", "Pension", rate=rate),
            ],
            enforce_non_negative=False,
        )

        assert payslip.gross_pay == sum(e.amount for e in payslip.earnings)
        assert payslip.net_pay == payslip.gross_pay - payslip.total_deductions
        assert payslip.uif_amount <= Decimal("177.12")
