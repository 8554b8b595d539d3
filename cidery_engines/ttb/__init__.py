"""
TTB - Form 5120.17 computation: units, excise tax, period forms, and
book-vs-physical reconciliation.

All figures are wine gallons; liters are converted at this boundary
through ``cidery_engines.ttb.units``.
"""

from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.ttb")

from cidery_engines.ttb.period import (
    BatchProduction,
    FormReconciliation,
    InventoryBreakdown,
    OtherRemovals,
    PeriodForm,
    ReportingPeriod,
    TaxPaidRemovals,
    build_period_form,
    calculate_form_reconciliation,
    format_period_label,
    get_period_date_range,
    reporting_period,
)
from cidery_engines.ttb.reconciliation import (
    CountLine,
    InventoryAudit,
    OpeningBalance,
    PhysicalCount,
    ReconciliationAdjustmentSpec,
    ReconciliationEngine,
    ReconciliationInput,
    ReconciliationResult,
    SnapshotLink,
    VarianceResult,
    adjustment_net_effect,
    physical_count_line,
    validate_adjustment,
    validate_chain,
    validate_link,
)
from cidery_engines.ttb.tax import (
    DEFAULT_RATE_TABLE,
    SnapshotTaxResult,
    TaxCalculationResult,
    TaxClassRate,
    TaxRateTable,
    calculate_class_tax,
    calculate_hard_cider_tax,
    calculate_snapshot_tax,
    classify_tax_class,
    select_rate_table,
)
from cidery_engines.ttb.units import (
    LITERS_PER_WINE_GALLON,
    WINE_GALLONS_PER_LITER,
    juice_volume_to_liters,
    liters_to_wine_gallons,
    ml_to_wine_gallons,
    round_gallons,
    wine_gallons_to_liters,
)

__all__ = [
    "BatchProduction",
    "CountLine",
    "DEFAULT_RATE_TABLE",
    "FormReconciliation",
    "InventoryAudit",
    "InventoryBreakdown",
    "LITERS_PER_WINE_GALLON",
    "OpeningBalance",
    "OtherRemovals",
    "PeriodForm",
    "PhysicalCount",
    "ReconciliationAdjustmentSpec",
    "ReconciliationEngine",
    "ReconciliationInput",
    "ReconciliationResult",
    "ReportingPeriod",
    "SnapshotLink",
    "SnapshotTaxResult",
    "TaxCalculationResult",
    "TaxClassRate",
    "TaxPaidRemovals",
    "TaxRateTable",
    "VarianceResult",
    "WINE_GALLONS_PER_LITER",
    "adjustment_net_effect",
    "build_period_form",
    "calculate_class_tax",
    "calculate_form_reconciliation",
    "calculate_hard_cider_tax",
    "calculate_snapshot_tax",
    "classify_tax_class",
    "format_period_label",
    "get_period_date_range",
    "juice_volume_to_liters",
    "liters_to_wine_gallons",
    "ml_to_wine_gallons",
    "physical_count_line",
    "reporting_period",
    "round_gallons",
    "select_rate_table",
    "validate_adjustment",
    "validate_chain",
    "validate_link",
    "wine_gallons_to_liters",
]
