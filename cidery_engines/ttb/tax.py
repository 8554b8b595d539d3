"""
TTB Tax Engine - Federal excise tax on removals, with small producer credit.

Rates are never module constants consulted implicitly: every calculation
takes a ``TaxRateTable``, a versioned value object with an effective
date range, so a historical period is recomputed with the rates that
were in force at the time.

Usage:
    from cidery_engines.ttb.tax import DEFAULT_RATE_TABLE, calculate_hard_cider_tax

    result = calculate_hard_cider_tax(Decimal("1000"))
    result.gross_tax                # Decimal("226.00")
    result.small_producer_credit    # Decimal("56.00")
    result.net_tax_owed             # Decimal("170.00")
    result.effective_rate           # Decimal("0.1700")

Rounding:
    Money is rounded half-up to cents, the effective rate to four places.
    Net tax is rounded from the unrounded gross minus unrounded credit.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType

from cidery_engines.tracer import traced_engine
from cidery_kernel.domain.entities import TaxClass
from cidery_kernel.domain.values import (
    ZERO,
    NumberLike,
    quantize_money,
    quantize_rate,
    to_decimal,
)
from cidery_kernel.exceptions import TaxClassNotRatedError, TaxRateNotFoundError
from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.ttb.tax")

HARD_CIDER_MAX_ABV = Decimal("8.5")
WINE_LOW_MAX_ABV = Decimal("16")
WINE_MID_MAX_ABV = Decimal("21")
WINE_HIGH_MAX_ABV = Decimal("24")


@dataclass(frozen=True)
class TaxClassRate:
    """Per-wine-gallon rate and small producer credit for one tax class."""

    rate_per_gallon: Decimal
    credit_per_gallon: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "rate_per_gallon", to_decimal(self.rate_per_gallon))
        object.__setattr__(self, "credit_per_gallon", to_decimal(self.credit_per_gallon))
        if self.rate_per_gallon < 0 or self.credit_per_gallon < 0:
            raise ValueError("Tax rates and credits cannot be negative")
        if self.credit_per_gallon > self.rate_per_gallon:
            raise ValueError("Credit per gallon cannot exceed the rate per gallon")

    @property
    def net_rate_per_gallon(self) -> Decimal:
        return self.rate_per_gallon - self.credit_per_gallon


@dataclass(frozen=True)
class TaxRateTable:
    """
    One version of the federal rate schedule.

    ``credit_limit_gallons`` is the annual allowance of credited gallons,
    shared by every tax class.
    """

    version: str
    effective_from: date
    rates: Mapping[TaxClass, TaxClassRate]
    credit_limit_gallons: Decimal = Decimal("30000")
    effective_to: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "rates",
            MappingProxyType({TaxClass(k): v for k, v in dict(self.rates).items()}),
        )
        object.__setattr__(self, "credit_limit_gallons", to_decimal(self.credit_limit_gallons))
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError(
                f"Rate table {self.version}: effective_to precedes effective_from"
            )

    def rate_for(self, tax_class: TaxClass | str) -> TaxClassRate:
        cls = TaxClass(tax_class)
        try:
            return self.rates[cls]
        except KeyError:
            raise TaxClassNotRatedError(self.version, cls.value) from None

    def is_effective(self, on_date: date) -> bool:
        if on_date < self.effective_from:
            return False
        if self.effective_to is not None and on_date > self.effective_to:
            return False
        return True


DEFAULT_RATE_TABLE = TaxRateTable(
    version="cbma-2018",
    effective_from=date(2018, 1, 1),
    rates={
        TaxClass.HARD_CIDER: TaxClassRate(Decimal("0.226"), Decimal("0.056")),
        TaxClass.WINE_UNDER_16: TaxClassRate(Decimal("1.07"), Decimal("1.00")),
        TaxClass.WINE_16_TO_21: TaxClassRate(Decimal("1.57"), Decimal("1.00")),
        TaxClass.WINE_21_TO_24: TaxClassRate(Decimal("3.15"), Decimal("1.00")),
        TaxClass.SPARKLING_WINE: TaxClassRate(Decimal("3.40"), Decimal("1.00")),
        TaxClass.CARBONATED_WINE: TaxClassRate(Decimal("3.30"), Decimal("1.00")),
    },
    credit_limit_gallons=Decimal("30000"),
)


@dataclass(frozen=True)
class TaxCalculationResult:
    taxable_gallons: Decimal
    gross_tax: Decimal
    small_producer_credit: Decimal
    credit_eligible_gallons: Decimal
    net_tax_owed: Decimal
    effective_rate: Decimal
    tax_class: TaxClass = TaxClass.HARD_CIDER
    rate_per_gallon: Decimal = ZERO

    @classmethod
    def zero(cls, tax_class: TaxClass = TaxClass.HARD_CIDER, rate: Decimal = ZERO) -> TaxCalculationResult:
        return cls(ZERO, ZERO, ZERO, ZERO, ZERO, ZERO, tax_class, rate)


@dataclass(frozen=True)
class SnapshotTaxResult:
    """Tax for every class removed in a period, with the shared credit applied."""

    by_class: Mapping[TaxClass, TaxCalculationResult] = field(default_factory=dict)
    total_gross_tax: Decimal = ZERO
    total_credit: Decimal = ZERO
    total_tax: Decimal = ZERO
    gallons_credited: Decimal = ZERO
    rate_table_version: str = ""


def calculate_class_tax(
    taxable_gallons: NumberLike,
    rate_table: TaxRateTable,
    tax_class: TaxClass | str = TaxClass.HARD_CIDER,
    prior_gallons_credited: NumberLike = 0,
) -> TaxCalculationResult:
    """
    Excise tax for one class.

    ``prior_gallons_credited`` is how much of the annual credit allowance
    earlier removals this year already used.
    """
    cls = TaxClass(tax_class)
    rate = rate_table.rate_for(cls)
    gallons = to_decimal(taxable_gallons)
    if gallons <= 0:
        return TaxCalculationResult.zero(cls, rate.rate_per_gallon)

    prior = to_decimal(prior_gallons_credited)
    gross = gallons * rate.rate_per_gallon
    remaining_allowance = max(ZERO, rate_table.credit_limit_gallons - prior)
    eligible = min(gallons, remaining_allowance)
    credit = eligible * rate.credit_per_gallon
    net = gross - credit

    return TaxCalculationResult(
        taxable_gallons=gallons,
        gross_tax=quantize_money(gross),
        small_producer_credit=quantize_money(credit),
        credit_eligible_gallons=eligible,
        net_tax_owed=quantize_money(net),
        effective_rate=quantize_rate(net / gallons),
        tax_class=cls,
        rate_per_gallon=rate.rate_per_gallon,
    )


def calculate_hard_cider_tax(
    taxable_gallons: NumberLike,
    prior_gallons_credited: NumberLike = 0,
    rate_table: TaxRateTable = DEFAULT_RATE_TABLE,
) -> TaxCalculationResult:
    return calculate_class_tax(
        taxable_gallons, rate_table, TaxClass.HARD_CIDER, prior_gallons_credited
    )


@traced_engine(
    "ttb_tax",
    "1.0",
    fingerprint_fields=("removals_by_class", "rate_table", "prior_gallons_credited"),
)
def calculate_snapshot_tax(
    removals_by_class: Mapping[TaxClass, NumberLike],
    rate_table: TaxRateTable,
    prior_gallons_credited: NumberLike = 0,
) -> SnapshotTaxResult:
    """
    Tax for a period's tax-paid removals across all classes.

    Classes are processed in ``TaxClass`` declaration order and draw on
    one credit allowance, so the credit a class receives depends on what
    the classes before it used.
    """
    removals = {TaxClass(k): to_decimal(v) for k, v in removals_by_class.items()}
    credited = to_decimal(prior_gallons_credited)
    results: dict[TaxClass, TaxCalculationResult] = {}

    for cls in TaxClass:
        gallons = removals.get(cls, ZERO)
        if gallons <= 0:
            continue
        result = calculate_class_tax(gallons, rate_table, cls, credited)
        credited += result.credit_eligible_gallons
        results[cls] = result

    total_gross = sum((r.gross_tax for r in results.values()), ZERO)
    total_credit = sum((r.small_producer_credit for r in results.values()), ZERO)
    total_tax = sum((r.net_tax_owed for r in results.values()), ZERO)
    gallons_credited = sum((r.credit_eligible_gallons for r in results.values()), ZERO)

    logger.info(
        "snapshot_tax_calculated",
        extra={
            "rate_table_version": rate_table.version,
            "classes": [c.value for c in results],
            "total_tax": str(total_tax),
            "total_credit": str(total_credit),
        },
    )
    return SnapshotTaxResult(
        by_class=MappingProxyType(results),
        total_gross_tax=total_gross,
        total_credit=total_credit,
        total_tax=total_tax,
        gallons_credited=gallons_credited,
        rate_table_version=rate_table.version,
    )


def classify_tax_class(
    abv: NumberLike,
    is_sparkling: bool = False,
    is_carbonated: bool = False,
    is_cider: bool = True,
) -> TaxClass:
    """
    Map a product to its TTB tax class.

    Cider under 8.5% ABV that is not artificially carbonated is hard
    cider; naturally sparkling product is sparkling wine regardless of
    strength; everything else falls into a still-wine ABV band.

    Raises:
        ValueError: If ABV is not finite, negative, or above 24%.
    """
    value = to_decimal(abv)
    if not value.is_finite() or value < 0:
        raise ValueError(f"ABV must be a non-negative number: {abv!r}")
    if value > WINE_HIGH_MAX_ABV:
        raise ValueError(f"ABV {value}% is above the wine tax classes (max 24%)")

    if is_sparkling:
        return TaxClass.SPARKLING_WINE
    if is_carbonated:
        return TaxClass.CARBONATED_WINE
    if is_cider and value < HARD_CIDER_MAX_ABV:
        return TaxClass.HARD_CIDER
    if value <= WINE_LOW_MAX_ABV:
        return TaxClass.WINE_UNDER_16
    if value <= WINE_MID_MAX_ABV:
        return TaxClass.WINE_16_TO_21
    return TaxClass.WINE_21_TO_24


def select_rate_table(tables: Iterable[TaxRateTable], as_of: date) -> TaxRateTable:
    """
    The table in force on ``as_of``; the latest ``effective_from`` wins
    when versions overlap.
    """
    effective = [t for t in tables if t.is_effective(as_of)]
    if not effective:
        raise TaxRateNotFoundError(as_of.isoformat())
    return max(effective, key=lambda t: t.effective_from)
