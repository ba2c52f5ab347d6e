"""
Tests for the bi-annual filing reconciliation engine.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from payroll_engines.reconciliation import (
    FilingReconciliationEngine,
    FilingTaxRecord,
    PayRunTaxRecord,
    ReconciliationType,
    tax_year_months,
)

EMPLOYEE_A = UUID("00000000-0000-0000-0000-00000000000a")
EMPLOYEE_B = UUID("00000000-0000-0000-0000-00000000000b")

INTERIM_2026 = ((2025, 3), (2025, 4), (2025, 5), (2025, 6), (2025, 7), (2025, 8))


def _run(year, month, tax_a, tax_b="0", status="finalized"):
    return PayRunTaxRecord(
        pay_run_id=uuid4(),
        status=status,
        pay_date=date(year, month, 25),
        employee_tax={EMPLOYEE_A: Decimal(tax_a), EMPLOYEE_B: Decimal(tax_b)},
    )


def _filing(year, month, tax_a, tax_b="0", status="submitted"):
    return FilingTaxRecord(
        filing_id=uuid4(),
        status=status,
        year=year,
        month=month,
        total_tax=Decimal(tax_a) + Decimal(tax_b),
        employee_tax={EMPLOYEE_A: Decimal(tax_a), EMPLOYEE_B: Decimal(tax_b)},
    )


@pytest.fixture
def engine():
    return FilingReconciliationEngine(3)


class TestTaxYearMonths:

    def test_interim_covers_first_six_months(self):
        assert tax_year_months(2026, ReconciliationType.INTERIM, 3) == INTERIM_2026

    def test_final_crosses_calendar_year(self):
        months = tax_year_months(2026, ReconciliationType.FINAL, 3)

        assert len(months) == 12
        assert months[0] == (2025, 3)
        assert months[-1] == (2026, 2)

    def test_january_start(self):
        assert tax_year_months(2026, ReconciliationType.INTERIM, 1)[0] == (2026, 1)


class TestReconcile:

    def test_variance_is_payroll_minus_filing(self, engine):
        runs = [_run(y, m, "100000") for y, m in INTERIM_2026[:5]]
        runs.append(_run(2025, 8, "98000"))
        filings = [_filing(y, m, "100000") for y, m in INTERIM_2026]

        result = engine.reconcile(2026, ReconciliationType.INTERIM, runs, filings)

        assert result.payroll_total_tax == Decimal("598000")
        assert result.filing_total_tax == Decimal("600000")
        assert result.variance == Decimal("-2000")
        assert result.period_lines[-1].variance == Decimal("-2000")
        assert all(line.variance == 0 for line in result.period_lines[:5])

    def test_employee_mismatch_flagged(self, engine):
        runs = [_run(2025, 3, "1000", "500")]
        filings = [_filing(2025, 3, "1000", "400")]

        result = engine.reconcile(2026, ReconciliationType.INTERIM, runs, filings)

        line_a, line_b = result.employee_lines
        assert line_a.employee_id == EMPLOYEE_A and not line_a.has_mismatch
        assert line_b.variance == Decimal("100")
        assert result.mismatched_employees == (line_b,)

    def test_only_counted_statuses_contribute(self, engine):
        runs = [_run(2025, 3, "1000"), _run(2025, 4, "1000", status="ready")]
        filings = [
            _filing(2025, 3, "1000", status="accepted"),
            _filing(2025, 4, "1000", status="draft"),
        ]

        result = engine.reconcile(2026, ReconciliationType.INTERIM, runs, filings)

        assert result.payroll_total_tax == Decimal("1000")
        assert result.filing_total_tax == Decimal("1000")
        assert len(result.pay_run_ids) == 1
        assert len(result.filing_ids) == 1

    def test_months_outside_window_ignored(self, engine):
        runs = [_run(2025, 9, "1000")]
        filings = [_filing(2025, 2, "1000")]

        result = engine.reconcile(2026, ReconciliationType.INTERIM, runs, filings)

        assert result.variance == 0
        assert result.employee_lines == ()
        assert result.covered_periods == INTERIM_2026

    def test_no_inputs(self, engine):
        result = engine.reconcile(2026, ReconciliationType.FINAL, [], [])

        assert result.payroll_total_tax == 0
        assert len(result.period_lines) == 12
        assert result.employee_count == 0
