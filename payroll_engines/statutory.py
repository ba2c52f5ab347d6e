"""
payroll_engines.statutory -- Statutory deduction formulas.

Responsibility:
    Income-tax withholding (PAYE), unemployment insurance (UIF) and the
    skills development levy (SDL) as pure functions of gross pay, pay
    frequency and ``StatutoryConfig``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Each returned amount is rounded exactly once (ROUND_HALF_UP, cents).
    - UIF never exceeds the monthly cap scaled to the pay frequency.
    - Bracket tax annualizes the period's taxable income, applies the
      progressive table and de-annualizes; the intermediates stay unrounded.

Failure modes:
    - ValueError for negative gross amounts.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum

from payroll_config.schema import StatutoryConfig
from payroll_kernel.domain.values import ZERO, round_money


class PayFrequency(str, Enum):
    """How often an employee is paid."""

    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"

    @property
    def periods_per_year(self) -> int:
        return {"weekly": 52, "fortnightly": 26, "monthly": 12}[self.value]


def _check_non_negative(amount: Decimal, name: str) -> None:
    if amount < 0:
        raise ValueError(f"{name} cannot be negative: {amount}")


def annual_bracket_tax(annual_income: Decimal, config: StatutoryConfig) -> Decimal:
    """Progressive tax on an annual income (unrounded)."""
    tax = ZERO
    lower = ZERO
    for bracket in config.tax_brackets:
        upper = bracket.upper_limit
        if upper is None or annual_income <= upper:
            tax += (annual_income - lower) * bracket.rate
            return tax
        tax += (upper - lower) * bracket.rate
        lower = upper
    return tax


def withholding_tax(
    taxable_gross: Decimal,
    frequency: PayFrequency,
    config: StatutoryConfig,
) -> Decimal:
    """Per-period income tax on ``taxable_gross``."""
    _check_non_negative(taxable_gross, "taxable_gross")
    if config.tax_method == "flat":
        return round_money(taxable_gross * config.tax_flat_rate)
    periods = Decimal(frequency.periods_per_year)
    annual_tax = annual_bracket_tax(taxable_gross * periods, config)
    return round_money(annual_tax / periods)


def uif_cap(frequency: PayFrequency, config: StatutoryConfig) -> Decimal:
    """The UIF ceiling for one pay period of ``frequency`` (unrounded)."""
    if frequency is PayFrequency.MONTHLY:
        return config.uif_monthly_cap
    return config.uif_monthly_cap * 12 / Decimal(frequency.periods_per_year)


def uif_contribution(
    gross: Decimal,
    frequency: PayFrequency,
    config: StatutoryConfig,
) -> Decimal:
    """Employee UIF: ``min(gross * rate, cap)``.  The employer matches it."""
    _check_non_negative(gross, "gross")
    return round_money(min(gross * config.uif_rate, uif_cap(frequency, config)))


def skills_levy(gross: Decimal, config: StatutoryConfig) -> Decimal:
    """Employer-only skills development levy."""
    _check_non_negative(gross, "gross")
    return round_money(gross * config.sdl_rate)


def tax_year_start(day: date, start_month: int) -> date:
    """First day of the tax year containing ``day``."""
    year = day.year if day.month >= start_month else day.year - 1
    return date(year, start_month, 1)


def tax_year_of(day: date, start_month: int) -> int:
    """Tax year containing ``day``, named by the calendar year it ends in."""
    start = tax_year_start(day, start_month)
    return start.year + 1 if start_month > 1 else start.year
