"""
Module: payroll_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for the
    modules layer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import payroll_kernel (domain, exceptions, logging) and
    payroll_config.  MUST NOT import payroll_modules.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
    - Decimal-only arithmetic; floats are rejected.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from payroll_engines import CompensationCalculator, SettlementCalculator
    from payroll_engines import FilingReconciliationEngine
"""

from payroll_engines.compensation import (
    BASIC,
    OVERTIME,
    PAYE,
    SDL,
    UIF,
    UIF_EMPLOYER,
    CompensationCalculator,
    CompensationProfile,
    ContributionLine,
    DeductionInput,
    DeductionLine,
    EarningInput,
    EarningLine,
    PayPeriod,
    PayslipComputation,
    SalaryType,
)
from payroll_engines.reconciliation import (
    EmployeeVarianceLine,
    FilingReconciliationEngine,
    FilingTaxRecord,
    PayRunTaxRecord,
    PeriodLine,
    ReconciliationResult,
    ReconciliationType,
    tax_year_months,
)
from payroll_engines.settlement import (
    SettlementCalculator,
    SettlementDeduction,
    SettlementEarnings,
    SettlementOverrides,
    SettlementSummary,
    SettlementTerms,
    TerminationPayComponents,
    TerminationReason,
)
from payroll_engines.statutory import PayFrequency, tax_year_of, tax_year_start

__all__ = [
    "BASIC",
    "OVERTIME",
    "PAYE",
    "SDL",
    "UIF",
    "UIF_EMPLOYER",
    "CompensationCalculator",
    "CompensationProfile",
    "ContributionLine",
    "DeductionInput",
    "DeductionLine",
    "EarningInput",
    "EarningLine",
    "EmployeeVarianceLine",
    "FilingReconciliationEngine",
    "FilingTaxRecord",
    "PayFrequency",
    "PayPeriod",
    "PayRunTaxRecord",
    "PayslipComputation",
    "PeriodLine",
    "ReconciliationResult",
    "ReconciliationType",
    "SalaryType",
    "SettlementCalculator",
    "SettlementDeduction",
    "SettlementEarnings",
    "SettlementOverrides",
    "SettlementSummary",
    "SettlementTerms",
    "TerminationPayComponents",
    "TerminationReason",
    "tax_year_months",
    "tax_year_of",
    "tax_year_start",
]
