"""Monthly employer tax filings and bi-annual reconciliations."""

from payroll_modules.filings.models import (
    AlertSeverity,
    BiAnnualReconciliation,
    FilingAlert,
    FilingEmployeeLine,
    FilingIssue,
    FilingOutcome,
    FilingOverview,
    FilingPayRun,
    FilingStatus,
    FilingSubmission,
    FilingValidation,
    MonthlyFiling,
    ReconciliationEmployeeLine,
    ReconciliationPeriodLine,
    ReconciliationStatus,
)
from payroll_modules.filings.monthly import MonthlyFilingService, filing_due_date
from payroll_modules.filings.reconciliation import ReconciliationService

__all__ = [
    "AlertSeverity",
    "BiAnnualReconciliation",
    "FilingAlert",
    "FilingEmployeeLine",
    "FilingIssue",
    "FilingOutcome",
    "FilingOverview",
    "FilingPayRun",
    "FilingStatus",
    "FilingSubmission",
    "FilingValidation",
    "MonthlyFiling",
    "MonthlyFilingService",
    "ReconciliationEmployeeLine",
    "ReconciliationPeriodLine",
    "ReconciliationService",
    "ReconciliationStatus",
    "filing_due_date",
]
