"""
TTB Form 5120.17 period computation.

Responsibility:
    Reporting period date ranges and labels, the removal breakdowns the
    form reports, the form's balance check, and assembly of a complete
    period form from already-aggregated gallon figures.

Architecture position:
    Engines > TTB -- pure functions over wine gallons.  Liters are
    converted by the caller through ``cidery_engines.ttb.units``.

Invariants enforced:
    - total_available = beginning + produced + receipts
    - total_accounted_for = tax-paid removals + other removals + ending
    - variance = total_available - total_accounted_for, rounded to
      three places; ``balanced`` is ``|variance| < tolerance``.
    - Imbalance is reported, never raised.

Failure modes:
    - InvalidPeriodError for a month outside 1-12 or a quarter outside 1-4.
"""

from __future__ import annotations

import calendar
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from cidery_engines.tracer import traced_engine
from cidery_engines.ttb.tax import (
    DEFAULT_RATE_TABLE,
    SnapshotTaxResult,
    TaxRateTable,
    calculate_snapshot_tax,
)
from cidery_engines.ttb.units import round_gallons
from cidery_kernel.domain.entities import PeriodType, TaxClass
from cidery_kernel.domain.values import ZERO, NumberLike, to_decimal
from cidery_kernel.exceptions import InvalidPeriodError
from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.ttb.period")

DEFAULT_FORM_TOLERANCE_GALLONS = Decimal("0.1")

_MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


@dataclass(frozen=True)
class ReportingPeriod:
    period_type: PeriodType
    year: int
    period_number: int | None
    start_date: date
    end_date: date
    label: str


def _period_number(period_type: PeriodType, period_number: int | None) -> int | None:
    if period_type == PeriodType.ANNUAL:
        return None
    number = 1 if period_number is None else period_number
    upper = 12 if period_type == PeriodType.MONTHLY else 4
    if not 1 <= number <= upper:
        raise InvalidPeriodError(period_type.value, period_number)
    return number


def get_period_date_range(
    period_type: PeriodType | str,
    year: int,
    period_number: int | None = None,
) -> tuple[date, date]:
    """
    Inclusive first and last day of a reporting period.

    ``period_number`` is the month (1-12) or quarter (1-4); it defaults to
    1 and is ignored for annual periods.
    """
    kind = PeriodType(period_type)
    number = _period_number(kind, period_number)
    if kind == PeriodType.MONTHLY:
        last = calendar.monthrange(year, number)[1]
        return date(year, number, 1), date(year, number, last)
    if kind == PeriodType.QUARTERLY:
        first_month = (number - 1) * 3 + 1
        last_month = first_month + 2
        last = calendar.monthrange(year, last_month)[1]
        return date(year, first_month, 1), date(year, last_month, last)
    return date(year, 1, 1), date(year, 12, 31)


def format_period_label(
    period_type: PeriodType | str,
    year: int,
    period_number: int | None = None,
) -> str:
    """``January 2025``, ``Q1 2025`` or ``2025``."""
    kind = PeriodType(period_type)
    number = _period_number(kind, period_number)
    if kind == PeriodType.MONTHLY:
        return f"{_MONTH_NAMES[number - 1]} {year}"
    if kind == PeriodType.QUARTERLY:
        return f"Q{number} {year}"
    return str(year)


def reporting_period(
    period_type: PeriodType | str,
    year: int,
    period_number: int | None = None,
) -> ReportingPeriod:
    kind = PeriodType(period_type)
    start, end = get_period_date_range(kind, year, period_number)
    return ReportingPeriod(
        period_type=kind,
        year=year,
        period_number=_period_number(kind, period_number),
        start_date=start,
        end_date=end,
        label=format_period_label(kind, year, period_number),
    )


@dataclass(frozen=True)
class InventoryBreakdown:
    """Wine gallons in bulk (vessels) and bottled (finished packages)."""

    bulk: Decimal = ZERO
    bottled: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "bulk", to_decimal(self.bulk))
        object.__setattr__(self, "bottled", to_decimal(self.bottled))

    @property
    def total(self) -> Decimal:
        return self.bulk + self.bottled


@dataclass(frozen=True)
class TaxPaidRemovals:
    """Tax-paid removals by sales channel, in wine gallons."""

    tasting_room: Decimal = ZERO
    wholesale: Decimal = ZERO
    online_dtc: Decimal = ZERO
    events: Decimal = ZERO
    uncategorized: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("tasting_room", "wholesale", "online_dtc", "events", "uncategorized"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    @property
    def total(self) -> Decimal:
        return self.tasting_room + self.wholesale + self.online_dtc + self.events + self.uncategorized


@dataclass(frozen=True)
class OtherRemovals:
    """Removals that are not tax-paid sales, in wine gallons."""

    samples: Decimal = ZERO
    breakage: Decimal = ZERO
    process_losses: Decimal = ZERO
    spoilage: Decimal = ZERO
    distilling: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("samples", "breakage", "process_losses", "spoilage", "distilling"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    @property
    def total(self) -> Decimal:
        return self.samples + self.breakage + self.process_losses + self.spoilage + self.distilling


@dataclass(frozen=True)
class FormReconciliation:
    total_available: Decimal
    total_accounted_for: Decimal
    variance: Decimal
    balanced: bool


def calculate_form_reconciliation(
    beginning: NumberLike,
    produced: NumberLike,
    receipts: NumberLike,
    tax_paid_removals: NumberLike,
    other_removals: NumberLike,
    ending: NumberLike,
    tolerance: NumberLike = DEFAULT_FORM_TOLERANCE_GALLONS,
) -> FormReconciliation:
    """Check that what was available equals what is accounted for."""
    available = to_decimal(beginning) + to_decimal(produced) + to_decimal(receipts)
    accounted = (
        to_decimal(tax_paid_removals) + to_decimal(other_removals) + to_decimal(ending)
    )
    variance = round_gallons(available - accounted)
    return FormReconciliation(
        total_available=round_gallons(available),
        total_accounted_for=round_gallons(accounted),
        variance=variance,
        balanced=abs(variance) < to_decimal(tolerance),
    )


@dataclass(frozen=True)
class BatchProduction:
    batch_id: str
    name: str
    gallons: Decimal


@dataclass(frozen=True)
class PeriodForm:
    """Everything Form 5120.17 reports for one period."""

    reporting_period: ReportingPeriod
    beginning_inventory: InventoryBreakdown
    wine_produced: Decimal
    receipts: Decimal
    tax_paid_removals: TaxPaidRemovals
    other_removals: OtherRemovals
    ending_inventory: InventoryBreakdown
    tax_summary: SnapshotTaxResult
    reconciliation: FormReconciliation
    produced_by_batch: tuple[BatchProduction, ...] = field(default_factory=tuple)


@traced_engine(
    "ttb_period_form",
    "1.0",
    fingerprint_fields=(
        "period_type",
        "year",
        "period_number",
        "beginning",
        "wine_produced",
        "receipts",
        "tax_paid_removals",
        "other_removals",
        "ending",
    ),
)
def build_period_form(
    period_type: PeriodType | str,
    year: int,
    period_number: int | None,
    beginning: InventoryBreakdown,
    wine_produced: NumberLike,
    receipts: NumberLike,
    tax_paid_removals: TaxPaidRemovals,
    other_removals: OtherRemovals,
    ending: InventoryBreakdown,
    removals_by_class: Mapping[TaxClass, NumberLike] | None = None,
    rate_table: TaxRateTable = DEFAULT_RATE_TABLE,
    prior_gallons_credited: NumberLike = 0,
    tolerance: NumberLike = DEFAULT_FORM_TOLERANCE_GALLONS,
    produced_by_batch: tuple[BatchProduction, ...] = (),
) -> PeriodForm:
    """
    Assemble a period form.

    When ``removals_by_class`` is omitted every tax-paid removal is
    taxed as hard cider.
    """
    period = reporting_period(period_type, year, period_number)
    produced = to_decimal(wine_produced)
    received = to_decimal(receipts)

    by_class = removals_by_class
    if by_class is None:
        by_class = {TaxClass.HARD_CIDER: tax_paid_removals.total}
    tax_summary = calculate_snapshot_tax(by_class, rate_table, prior_gallons_credited)

    recon = calculate_form_reconciliation(
        beginning=beginning.total,
        produced=produced,
        receipts=received,
        tax_paid_removals=tax_paid_removals.total,
        other_removals=other_removals.total,
        ending=ending.total,
        tolerance=tolerance,
    )
    if not recon.balanced:
        logger.warning(
            "period_form_unbalanced",
            extra={
                "period": period.label,
                "variance_gallons": str(recon.variance),
                "tolerance_gallons": str(tolerance),
            },
        )

    return PeriodForm(
        reporting_period=period,
        beginning_inventory=beginning,
        wine_produced=produced,
        receipts=received,
        tax_paid_removals=tax_paid_removals,
        other_removals=other_removals,
        ending_inventory=ending,
        tax_summary=tax_summary,
        reconciliation=recon,
        produced_by_batch=tuple(produced_by_batch),
    )
