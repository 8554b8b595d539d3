"""
Tests for TTB Form 5120.17 period computation.

Covers:
- Period date ranges and labels
- Removal breakdown totals
- Form balance check and tolerance
- Period form assembly with tax summary
"""

from datetime import date
from decimal import Decimal

import pytest

from cidery_engines.ttb.period import (
    InventoryBreakdown,
    OtherRemovals,
    TaxPaidRemovals,
    build_period_form,
    calculate_form_reconciliation,
    format_period_label,
    get_period_date_range,
    reporting_period,
)
from cidery_kernel.domain.entities import PeriodType, TaxClass
from cidery_kernel.exceptions import InvalidPeriodError


class TestPeriodRanges:
    def test_february_leap_year(self):
        assert get_period_date_range("monthly", 2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_quarter(self):
        assert get_period_date_range(PeriodType.QUARTERLY, 2025, 3) == (
            date(2025, 7, 1),
            date(2025, 9, 30),
        )

    def test_annual_ignores_period_number(self):
        period = reporting_period("annual", 2025, 7)
        assert (period.start_date, period.end_date) == (date(2025, 1, 1), date(2025, 12, 31))
        assert period.period_number is None
        assert period.label == "2025"

    def test_period_number_defaults_to_one(self):
        assert format_period_label("monthly", 2025) == "January 2025"
        assert format_period_label("quarterly", 2025) == "Q1 2025"

    @pytest.mark.parametrize("period_type,number", [("monthly", 13), ("monthly", 0), ("quarterly", 5)])
    def test_out_of_range(self, period_type, number):
        with pytest.raises(InvalidPeriodError):
            reporting_period(period_type, 2025, number)


class TestRemovalTotals:
    def test_tax_paid_total(self):
        removals = TaxPaidRemovals(tasting_room="10.5", wholesale="100", online_dtc="4", events="1", uncategorized="0.5")
        assert removals.total == Decimal("116.0")

    def test_other_total(self):
        removals = OtherRemovals(samples="1", breakage="2", process_losses="3", spoilage="4", distilling="5")
        assert removals.total == Decimal("15")


class TestFormReconciliation:
    def test_balanced(self):
        recon = calculate_form_reconciliation(1000, 200, 0, 150, 10, 1040)
        assert recon.total_available == Decimal("1200.000")
        assert recon.total_accounted_for == Decimal("1200.000")
        assert recon.variance == Decimal("0.000")
        assert recon.balanced is True

    def test_variance_at_tolerance_is_unbalanced(self):
        recon = calculate_form_reconciliation(1000, 200, 0, 150, 10, "1039.9")
        assert recon.variance == Decimal("0.100")
        assert recon.balanced is False

    def test_custom_tolerance(self):
        recon = calculate_form_reconciliation(1000, 200, 0, 150, 10, "1039.9", tolerance="0.5")
        assert recon.balanced is True


class TestBuildPeriodForm:
    def _form(self, ending_bulk="800", **kwargs):
        return build_period_form(
            period_type=PeriodType.MONTHLY,
            year=2025,
            period_number=1,
            beginning=InventoryBreakdown(bulk="900", bottled="100"),
            wine_produced="200",
            receipts="0",
            tax_paid_removals=TaxPaidRemovals(tasting_room="50", wholesale="100"),
            other_removals=OtherRemovals(process_losses="10"),
            ending=InventoryBreakdown(bulk=ending_bulk, bottled="240"),
            **kwargs,
        )

    def test_removals_taxed_as_hard_cider_by_default(self):
        form = self._form()

        assert form.reporting_period.label == "January 2025"
        assert form.reconciliation.balanced is True
        cider = form.tax_summary.by_class[TaxClass.HARD_CIDER]
        assert cider.taxable_gallons == Decimal("150")
        assert form.tax_summary.total_tax == Decimal("25.50")

    def test_removals_by_class_override(self):
        form = self._form(removals_by_class={TaxClass.WINE_UNDER_16: Decimal("150")})
        assert list(form.tax_summary.by_class) == [TaxClass.WINE_UNDER_16]

    def test_unbalanced_form_is_reported_and_logged(self, captured_logs):
        form = self._form(ending_bulk="790")

        assert form.reconciliation.balanced is False
        assert form.reconciliation.variance == Decimal("10.000")
        assert any(r["message"] == "period_form_unbalanced" for r in captured_logs())
