"""
payroll_engines.compensation -- Gross-to-net payslip computation.

Responsibility:
    Turn one employee's compensation profile, a pay period and the period's
    earning/deduction inputs into a fully itemized payslip: earnings lines,
    deduction lines (statutory and voluntary), employer contributions and
    the gross/deductions/net totals.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Used by the pay run
    orchestrator for every in-scope employee, by payslip edits, and by the
    settlement calculator for termination deductions.

Invariants enforced:
    - gross_pay == sum of earning amounts.
    - total_deductions == sum of deduction amounts that are not skipped.
    - net_pay == gross_pay - total_deductions, and net_pay >= 0 unless the
      caller explicitly asks for an unchecked preview.
    - The base salary line, income tax and UIF (when the employee
      contributes) are always present, even at zero, and can never be
      skipped.
    - Every line amount is rounded exactly once; totals are sums of the
      rounded lines.

Failure modes:
    - ValidationError: malformed line input, or a skip on a required line.
    - NegativeNetPayError: deductions exceed gross pay.

Usage:
    calculator = CompensationCalculator(StatutoryConfig.with_defaults())
    payslip = calculator.compute_payslip(profile, period)
    payslip.net_pay
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_config.schema import StatutoryConfig
from payroll_engines.statutory import (
    PayFrequency,
    skills_levy,
    uif_contribution,
    withholding_tax,
)
from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.values import ZERO, round_money
from payroll_kernel.exceptions import NegativeNetPayError, ValidationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.compensation")

BASIC = "BASIC"
OVERTIME = "OT"
PAYE = "PAYE"
UIF = "UIF"
UIF_EMPLOYER = "UIF_EMPLOYER"
SDL = "SDL"

STATUTORY_DEDUCTIONS = frozenset({PAYE, UIF})


class SalaryType(str, Enum):
    FIXED = "fixed"
    HOURLY = "hourly"


@dataclass(frozen=True)
class CompensationProfile:
    """What the calculator needs to know about an employee.

    ``salary_amount`` is the per-period salary for fixed employees and the
    hourly rate for hourly employees.
    """
    employee_id: UUID
    salary_type: SalaryType
    salary_amount: Decimal
    pay_frequency: PayFrequency = PayFrequency.MONTHLY
    working_hours_per_day: Decimal = Decimal("8")
    uif_included: bool = True
    sdl_included: bool = True

    @property
    def monthly_salary(self) -> Decimal:
        """Monthly equivalent of a fixed salary (unrounded)."""
        return self.salary_amount * self.pay_frequency.periods_per_year / 12


@dataclass(frozen=True)
class PayPeriod:
    start: date
    end: date
    pay_date: date
    frequency: PayFrequency = PayFrequency.MONTHLY
    working_days: Decimal | None = None


@dataclass(frozen=True)
class EarningInput:
    """An earning for the period: a fixed amount, or hours at a rate."""
    code: str
    name: str
    amount: Decimal | None = None
    hours: Decimal | None = None
    rate: Decimal | None = None
    taxable: bool = True


@dataclass(frozen=True)
class DeductionInput:
    """A deduction: a fixed amount, or a rate applied to gross pay.

    For PAYE and UIF an ``amount`` overrides the computed figure.
    """
    code: str
    name: str
    amount: Decimal | None = None
    rate: Decimal | None = None
    is_required: bool = False
    is_skipped: bool = False


@dataclass(frozen=True)
class EarningLine:
    code: str
    name: str
    amount: Decimal
    taxable: bool = True
    is_required: bool = False
    hours: Decimal | None = None
    rate: Decimal | None = None


@dataclass(frozen=True)
class DeductionLine:
    code: str
    name: str
    amount: Decimal
    is_statutory: bool = False
    is_required: bool = False
    is_skipped: bool = False


@dataclass(frozen=True)
class ContributionLine:
    """Employer-side cost reported on the payslip but not deducted."""
    code: str
    name: str
    amount: Decimal


@dataclass(frozen=True)
class PayslipComputation:
    employee_id: UUID
    earnings: tuple[EarningLine, ...]
    deductions: tuple[DeductionLine, ...]
    employer_contributions: tuple[ContributionLine, ...] = field(default_factory=tuple)
    gross_pay: Decimal = ZERO
    taxable_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    net_pay: Decimal = ZERO

    def deduction_amount(self, code: str) -> Decimal:
        return sum(
            (d.amount for d in self.deductions if d.code == code and not d.is_skipped),
            ZERO,
        )

    def contribution_amount(self, code: str) -> Decimal:
        return sum((c.amount for c in self.employer_contributions if c.code == code), ZERO)

    @property
    def tax_amount(self) -> Decimal:
        return self.deduction_amount(PAYE)

    @property
    def uif_amount(self) -> Decimal:
        return self.deduction_amount(UIF)

    @property
    def other_deductions(self) -> Decimal:
        return self.total_deductions - self.tax_amount - self.uif_amount


class CompensationCalculator:
    """
    Pure payslip calculator.

    Contract:
        ``compute_payslip`` has no side effects and no clock access;
        identical inputs give identical payslips.
    """

    def __init__(self, config: StatutoryConfig | None = None):
        self._config = config or StatutoryConfig.with_defaults()

    @property
    def config(self) -> StatutoryConfig:
        return self._config

    def hourly_base_rate(self, profile: CompensationProfile) -> Decimal:
        """Ordinary hourly rate (unrounded)."""
        if profile.salary_type is SalaryType.HOURLY:
            return profile.salary_amount
        return profile.monthly_salary / self._config.standard_monthly_hours

    @traced_engine("compensation", "1.0", fingerprint_fields=("profile", "period"))
    def compute_payslip(
        self,
        profile: CompensationProfile,
        period: PayPeriod,
        earnings_input: Sequence[EarningInput] = (),
        deductions_input: Sequence[DeductionInput] = (),
        *,
        include_base_salary: bool = True,
        enforce_non_negative: bool = True,
    ) -> PayslipComputation:
        """
        Compute one employee's payslip for a period.

        Preconditions:
            Input codes are unique within each sequence.
        Postconditions:
            The returned payslip satisfies the gross/deductions/net
            identities listed in the module docstring.

        Raises:
            ValidationError: On malformed input or a skipped required line.
            NegativeNetPayError: If ``enforce_non_negative`` and net < 0.
        """
        earnings = self._earnings(profile, period, earnings_input, include_base_salary)
        gross = sum((e.amount for e in earnings), ZERO)
        taxable = sum((e.amount for e in earnings if e.taxable), ZERO)

        deductions = self._deductions(profile, period, gross, taxable, deductions_input)
        total_deductions = sum((d.amount for d in deductions if not d.is_skipped), ZERO)
        net = gross - total_deductions

        contributions: list[ContributionLine] = []
        if profile.uif_included:
            employee_uif = next(d.amount for d in deductions if d.code == UIF)
            contributions.append(ContributionLine(UIF_EMPLOYER, "UIF (employer)", employee_uif))
        if profile.sdl_included:
            contributions.append(
                ContributionLine(SDL, "Skills Development Levy", skills_levy(gross, self._config))
            )

        if net < 0 and enforce_non_negative:
            logger.warning(
                "payslip_negative_net_pay",
                extra={
                    "employee_id": str(profile.employee_id),
                    "gross_pay": str(gross),
                    "total_deductions": str(total_deductions),
                },
            )
            raise NegativeNetPayError(
                employee_id=str(profile.employee_id),
                gross_pay=gross,
                total_deductions=total_deductions,
            )

        return PayslipComputation(
            employee_id=profile.employee_id,
            earnings=tuple(earnings),
            deductions=tuple(deductions),
            employer_contributions=tuple(contributions),
            gross_pay=gross,
            taxable_gross=taxable,
            total_deductions=total_deductions,
            net_pay=net,
        )

    # ------------------------------------------------------------------
    # Earnings
    # ------------------------------------------------------------------

    def _earnings(
        self,
        profile: CompensationProfile,
        period: PayPeriod,
        earnings_input: Sequence[EarningInput],
        include_base_salary: bool,
    ) -> list[EarningLine]:
        _check_unique_codes([e.code for e in earnings_input], "earnings")
        lines: list[EarningLine] = []
        supplied = {e.code for e in earnings_input}
        if include_base_salary and BASIC not in supplied:
            lines.append(self._base_salary_line(profile, period))
        for item in earnings_input:
            lines.append(self._earning_line(profile, item))
        return lines

    def _base_salary_line(self, profile: CompensationProfile, period: PayPeriod) -> EarningLine:
        if profile.salary_type is SalaryType.FIXED:
            return EarningLine(
                code=BASIC,
                name="Basic Salary",
                amount=round_money(profile.salary_amount),
                is_required=True,
            )
        if period.working_days is None:
            raise ValidationError(
                "period.working_days",
                "hourly employees need the number of working days in the period",
            )
        hours = profile.working_hours_per_day * period.working_days
        return EarningLine(
            code=BASIC,
            name="Basic Salary",
            amount=round_money(hours * profile.salary_amount),
            is_required=True,
            hours=hours,
            rate=profile.salary_amount,
        )

    def _earning_line(self, profile: CompensationProfile, item: EarningInput) -> EarningLine:
        required = item.code == BASIC
        if item.amount is not None:
            if item.amount < 0:
                raise ValidationError(f"earnings.{item.code}", "amount cannot be negative")
            return EarningLine(
                code=item.code,
                name=item.name,
                amount=round_money(item.amount),
                taxable=item.taxable,
                is_required=required,
            )
        if item.hours is None:
            raise ValidationError(f"earnings.{item.code}", "either amount or hours is required")
        if item.hours < 0:
            raise ValidationError(f"earnings.{item.code}", "hours cannot be negative")
        rate = item.rate
        if rate is None:
            rate = self.hourly_base_rate(profile)
            if item.code == OVERTIME:
                rate = rate * self._config.overtime_multiplier
        if rate < 0:
            raise ValidationError(f"earnings.{item.code}", "rate cannot be negative")
        return EarningLine(
            code=item.code,
            name=item.name,
            amount=round_money(item.hours * rate),
            taxable=item.taxable,
            is_required=required,
            hours=item.hours,
            rate=rate,
        )

    # ------------------------------------------------------------------
    # Deductions
    # ------------------------------------------------------------------

    def _deductions(
        self,
        profile: CompensationProfile,
        period: PayPeriod,
        gross: Decimal,
        taxable: Decimal,
        deductions_input: Sequence[DeductionInput],
    ) -> list[DeductionLine]:
        _check_unique_codes([d.code for d in deductions_input], "deductions")
        supplied = {d.code: d for d in deductions_input}

        for code in STATUTORY_DEDUCTIONS:
            item = supplied.get(code)
            if item is not None and item.is_skipped:
                raise ValidationError(f"deductions.{code}", "statutory deductions cannot be skipped")

        lines = [
            DeductionLine(
                code=PAYE,
                name="PAYE",
                amount=self._override_or(
                    supplied.get(PAYE),
                    lambda: withholding_tax(taxable, period.frequency, self._config),
                ),
                is_statutory=True,
                is_required=True,
            )
        ]
        if profile.uif_included:
            lines.append(
                DeductionLine(
                    code=UIF,
                    name="UIF",
                    amount=self._override_or(
                        supplied.get(UIF),
                        lambda: uif_contribution(gross, period.frequency, self._config),
                    ),
                    is_statutory=True,
                    is_required=True,
                )
            )

        for item in deductions_input:
            if item.code in STATUTORY_DEDUCTIONS:
                continue
            if item.is_required and item.is_skipped:
                raise ValidationError(f"deductions.{item.code}", "required deductions cannot be skipped")
            if item.amount is not None:
                amount = item.amount
            elif item.rate is not None:
                amount = gross * item.rate
            else:
                raise ValidationError(f"deductions.{item.code}", "either amount or rate is required")
            if amount < 0:
                raise ValidationError(f"deductions.{item.code}", "amount cannot be negative")
            lines.append(
                DeductionLine(
                    code=item.code,
                    name=item.name,
                    amount=round_money(amount),
                    is_required=item.is_required,
                    is_skipped=item.is_skipped,
                )
            )
        return lines

    @staticmethod
    def _override_or(item: DeductionInput | None, compute) -> Decimal:
        if item is not None and item.amount is not None:
            if item.amount < 0:
                raise ValidationError(f"deductions.{item.code}", "amount cannot be negative")
            return round_money(item.amount)
        return compute()


def _check_unique_codes(codes: list[str], field_name: str) -> None:
    seen: set[str] = set()
    for code in codes:
        if code in seen:
            raise ValidationError(field_name, f"duplicate line code {code}")
        seen.add(code)
