"""
payroll_engines.settlement -- Termination settlement calculation.

Responsibility:
    Compute the final payout for a leaving employee: final-month salary,
    notice pay in lieu, severance, pro-rata earnings and the payout of
    unused annual leave, then the statutory and recurring deductions on
    that payout (delegated to ``CompensationCalculator``).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The holiday calendar is a
    pure query object passed in at construction.

Invariants enforced:
    - leave_payout_amount == round(leave_payout_days * daily_rate), with
      daily_rate = monthly salary / average monthly working days.
    - notice_pay is zero unless notice is paid in lieu.
    - severance_pay is zero unless the reason is retrenchment.
    - A negative annual-leave balance pays out zero days (and is reported
      as a warning); it is never deducted here.
    - Income tax and UIF lines cannot be skipped.

Failure modes:
    - ValidationError: last working day after termination date, or a skip
      on a statutory deduction.

Usage:
    calculator = SettlementCalculator(config, WeekendCalendar())
    components = calculator.compute_settlement(profile, terms, Decimal("10"))
    components.summary.net_pay
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_config.schema import StatutoryConfig
from payroll_engines.compensation import (
    PAYE,
    UIF,
    CompensationCalculator,
    CompensationProfile,
    DeductionInput,
    EarningInput,
    PayPeriod,
    SalaryType,
)
from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.calendar import (
    HolidayCalendar,
    WeekendCalendar,
    count_business_days,
    month_bounds,
)
from payroll_kernel.domain.values import ZERO, round_days, round_money
from payroll_kernel.exceptions import ValidationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.settlement")

FINAL_SALARY = "FINAL_SALARY"
NOTICE_PAY = "NOTICE_PAY"
SEVERANCE_PAY = "SEVERANCE_PAY"
PRO_RATA = "PRO_RATA"
LEAVE_PAYOUT = "LEAVE_PAYOUT"


class TerminationReason(str, Enum):
    RESIGNATION = "resignation"
    DISMISSAL = "dismissal"
    RETRENCHMENT = "retrenchment"
    CONTRACT_END = "contract_end"
    RETIREMENT = "retirement"
    DEATH = "death"


@dataclass(frozen=True)
class SettlementTerms:
    termination_date: date
    last_working_day: date
    reason: TerminationReason
    employment_start_date: date
    notice_period_days: int = 30
    paid_in_lieu: bool = False


@dataclass(frozen=True)
class SettlementOverrides:
    """Payroll officer adjustments applied on top of the computed figures."""
    final_salary: Decimal | None = None
    notice_pay: Decimal | None = None
    severance_pay: Decimal | None = None
    pro_rata_earnings: Decimal | None = None
    leave_payout_days: Decimal | None = None
    skip_codes: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class SettlementEarnings:
    final_salary: Decimal
    notice_pay: Decimal
    severance_pay: Decimal
    pro_rata_earnings: Decimal
    leave_payout_days: Decimal
    leave_payout_amount: Decimal

    @property
    def gross(self) -> Decimal:
        return (
            self.final_salary
            + self.notice_pay
            + self.severance_pay
            + self.pro_rata_earnings
            + self.leave_payout_amount
        )


@dataclass(frozen=True)
class SettlementDeduction:
    code: str
    name: str
    amount: Decimal
    skip: bool = False
    is_required: bool = False


@dataclass(frozen=True)
class SettlementSummary:
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    primary_tax: Decimal
    unemployment_contribution: Decimal


@dataclass(frozen=True)
class TerminationPayComponents:
    earnings: SettlementEarnings
    deductions: tuple[SettlementDeduction, ...]
    summary: SettlementSummary
    daily_rate: Decimal
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        e = self.earnings
        s = self.summary
        return {
            "earnings": {
                "final_salary": str(e.final_salary),
                "notice_pay": str(e.notice_pay),
                "severance_pay": str(e.severance_pay),
                "pro_rata_earnings": str(e.pro_rata_earnings),
                "leave_payout_days": str(e.leave_payout_days),
                "leave_payout_amount": str(e.leave_payout_amount),
            },
            "deductions": [
                {
                    "code": d.code,
                    "name": d.name,
                    "amount": str(d.amount),
                    "skip": d.skip,
                    "is_required": d.is_required,
                }
                for d in self.deductions
            ],
            "summary": {
                "gross_pay": str(s.gross_pay),
                "total_deductions": str(s.total_deductions),
                "net_pay": str(s.net_pay),
                "primary_tax": str(s.primary_tax),
                "unemployment_contribution": str(s.unemployment_contribution),
            },
            "daily_rate": str(self.daily_rate),
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TerminationPayComponents:
        e = data["earnings"]
        s = data["summary"]
        return cls(
            earnings=SettlementEarnings(
                final_salary=Decimal(e["final_salary"]),
                notice_pay=Decimal(e["notice_pay"]),
                severance_pay=Decimal(e["severance_pay"]),
                pro_rata_earnings=Decimal(e["pro_rata_earnings"]),
                leave_payout_days=Decimal(e["leave_payout_days"]),
                leave_payout_amount=Decimal(e["leave_payout_amount"]),
            ),
            deductions=tuple(
                SettlementDeduction(
                    code=d["code"],
                    name=d["name"],
                    amount=Decimal(d["amount"]),
                    skip=d["skip"],
                    is_required=d["is_required"],
                )
                for d in data["deductions"]
            ),
            summary=SettlementSummary(
                gross_pay=Decimal(s["gross_pay"]),
                total_deductions=Decimal(s["total_deductions"]),
                net_pay=Decimal(s["net_pay"]),
                primary_tax=Decimal(s["primary_tax"]),
                unemployment_contribution=Decimal(s["unemployment_contribution"]),
            ),
            daily_rate=Decimal(data["daily_rate"]),
            warnings=tuple(data.get("warnings", ())),
        )


def completed_years(start: date, end: date) -> int:
    """Whole years of service from ``start`` up to ``end``."""
    if end < start:
        return 0
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


class SettlementCalculator:
    """
    Pure termination settlement calculator.

    Contract:
        No side effects, no clock access.  ``compose`` is the figure-level
        entry point; ``compute_settlement`` derives the figures from the
        employee profile and termination terms first.
    """

    def __init__(
        self,
        config: StatutoryConfig | None = None,
        calendar: HolidayCalendar | None = None,
    ):
        self._config = config or StatutoryConfig.with_defaults()
        self._calendar = calendar or WeekendCalendar()
        self._compensation = CompensationCalculator(self._config)

    @property
    def config(self) -> StatutoryConfig:
        return self._config

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    def daily_rate(self, profile: CompensationProfile) -> Decimal:
        """Salary for one working day (unrounded)."""
        if profile.salary_type is SalaryType.HOURLY:
            return profile.salary_amount * profile.working_hours_per_day
        return profile.monthly_salary / self._config.average_monthly_working_days

    def monthly_equivalent(self, profile: CompensationProfile) -> Decimal:
        if profile.salary_type is SalaryType.HOURLY:
            return self.daily_rate(profile) * self._config.average_monthly_working_days
        return profile.monthly_salary

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def final_salary(self, profile: CompensationProfile, terms: SettlementTerms) -> Decimal:
        """Salary for the business days worked in the final month."""
        first, last = month_bounds(terms.last_working_day.year, terms.last_working_day.month)
        start = max(first, terms.employment_start_date)
        worked = count_business_days(self._calendar, start, terms.last_working_day)
        if profile.salary_type is SalaryType.HOURLY:
            return round_money(self.daily_rate(profile) * worked)
        total = count_business_days(self._calendar, first, last)
        if total == 0:
            return ZERO
        return round_money(profile.monthly_salary * worked / total)

    def notice_pay(self, profile: CompensationProfile, terms: SettlementTerms) -> Decimal:
        """Calendar-day salary for the unworked part of the notice period."""
        if not terms.paid_in_lieu:
            return ZERO
        unworked = min(
            terms.notice_period_days,
            max(0, (terms.termination_date - terms.last_working_day).days),
        )
        per_calendar_day = self.monthly_equivalent(profile) * 12 / 365
        return round_money(per_calendar_day * unworked)

    def severance_pay(self, profile: CompensationProfile, terms: SettlementTerms) -> Decimal:
        if terms.reason is not TerminationReason.RETRENCHMENT:
            return ZERO
        years = completed_years(terms.employment_start_date, terms.termination_date)
        weekly = self.monthly_equivalent(profile) * 12 / 52
        return round_money(weekly * self._config.severance_weeks_per_year * years)

    @traced_engine("settlement", "1.0", fingerprint_fields=("profile", "terms", "annual_leave_available"))
    def compute_settlement(
        self,
        profile: CompensationProfile,
        terms: SettlementTerms,
        annual_leave_available: Decimal,
        other_deductions: Sequence[DeductionInput] = (),
        overrides: SettlementOverrides | None = None,
    ) -> TerminationPayComponents:
        """
        Derive every settlement figure and compose the payout.

        Raises:
            ValidationError: If last_working_day is after termination_date.
        """
        if terms.last_working_day > terms.termination_date:
            raise ValidationError(
                "last_working_day", "cannot be after the termination date"
            )
        overrides = overrides or SettlementOverrides()
        warnings: list[str] = []

        leave_days = annual_leave_available
        if leave_days < 0:
            warnings.append(
                f"Annual leave balance is negative ({annual_leave_available} days); "
                "no leave is paid out"
            )
            leave_days = ZERO

        def pick(override: Decimal | None, computed: Decimal) -> Decimal:
            return computed if override is None else override

        return self.compose(
            profile,
            settlement_date=terms.termination_date,
            final_salary=pick(overrides.final_salary, self.final_salary(profile, terms)),
            notice_pay=pick(overrides.notice_pay, self.notice_pay(profile, terms)),
            severance_pay=pick(overrides.severance_pay, self.severance_pay(profile, terms)),
            pro_rata_earnings=pick(overrides.pro_rata_earnings, ZERO),
            leave_payout_days=pick(overrides.leave_payout_days, leave_days),
            daily_rate=self.daily_rate(profile),
            other_deductions=other_deductions,
            skip_codes=overrides.skip_codes,
            warnings=warnings,
        )

    def compose(
        self,
        profile: CompensationProfile,
        *,
        settlement_date: date,
        final_salary: Decimal,
        notice_pay: Decimal,
        severance_pay: Decimal,
        pro_rata_earnings: Decimal,
        leave_payout_days: Decimal,
        daily_rate: Decimal,
        other_deductions: Sequence[DeductionInput] = (),
        skip_codes: Iterable[str] = (),
        warnings: Iterable[str] = (),
    ) -> TerminationPayComponents:
        """
        Build the payout from explicit figures.

        Net pay may come out negative here; finalizing a termination is what
        requires net >= 0.

        Raises:
            ValidationError: On negative figures or a skip of PAYE/UIF.
        """
        figures = {
            "final_salary": final_salary,
            "notice_pay": notice_pay,
            "severance_pay": severance_pay,
            "pro_rata_earnings": pro_rata_earnings,
            "leave_payout_days": leave_payout_days,
        }
        for name, value in figures.items():
            if value < 0:
                raise ValidationError(name, "cannot be negative")

        skips = frozenset(skip_codes)
        for code in (PAYE, UIF):
            if code in skips:
                raise ValidationError(f"deductions.{code}", "statutory deductions cannot be skipped")

        earnings = SettlementEarnings(
            final_salary=round_money(final_salary),
            notice_pay=round_money(notice_pay),
            severance_pay=round_money(severance_pay),
            pro_rata_earnings=round_money(pro_rata_earnings),
            leave_payout_days=round_days(leave_payout_days),
            leave_payout_amount=round_money(leave_payout_days * daily_rate),
        )

        earning_inputs = (
            EarningInput(FINAL_SALARY, "Final Salary", amount=earnings.final_salary),
            EarningInput(NOTICE_PAY, "Notice Pay", amount=earnings.notice_pay),
            EarningInput(SEVERANCE_PAY, "Severance Pay", amount=earnings.severance_pay),
            EarningInput(PRO_RATA, "Pro-rata Earnings", amount=earnings.pro_rata_earnings),
            EarningInput(LEAVE_PAYOUT, "Leave Payout", amount=earnings.leave_payout_amount),
        )
        deduction_inputs = tuple(
            replace(d, is_skipped=d.is_skipped or d.code in skips) for d in other_deductions
        )

        computation = self._compensation.compute_payslip(
            profile,
            PayPeriod(
                start=settlement_date.replace(day=1),
                end=settlement_date,
                pay_date=settlement_date,
            ),
            earning_inputs,
            deduction_inputs,
            include_base_salary=False,
            enforce_non_negative=False,
        )

        deductions = tuple(
            SettlementDeduction(
                code=d.code,
                name=d.name,
                amount=d.amount,
                skip=d.is_skipped,
                is_required=d.is_required,
            )
            for d in computation.deductions
        )
        summary = SettlementSummary(
            gross_pay=computation.gross_pay,
            total_deductions=computation.total_deductions,
            net_pay=computation.net_pay,
            primary_tax=computation.tax_amount,
            unemployment_contribution=computation.uif_amount,
        )

        logger.info(
            "settlement_composed",
            extra={
                "employee_id": str(profile.employee_id),
                "gross_pay": str(summary.gross_pay),
                "net_pay": str(summary.net_pay),
            },
        )
        return TerminationPayComponents(
            earnings=earnings,
            deductions=deductions,
            summary=summary,
            daily_rate=daily_rate,
            warnings=tuple(warnings),
        )
