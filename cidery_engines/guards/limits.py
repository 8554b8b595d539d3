"""
Guard bounds.

Domain defaults for every physical and business bound the guards check.
A deployment overrides them through ``cidery_config`` (``guard_limits``
section of the active configuration set); guards receive the resulting
``GuardLimits`` as an explicit parameter and never read config themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


def _default_quantity_limits() -> dict[str, Decimal]:
    return {
        "kg": Decimal("100000"),
        "lb": Decimal("220000"),
        "L": Decimal("50000"),
        "gal": Decimal("13200"),
    }


@dataclass(frozen=True)
class GuardLimits:
    """
    Immutable bundle of guard bounds.

    "Business" bounds are what a cidery normally sees; "absolute" bounds
    are what is physically possible or what any beverage process could
    plausibly produce.  Readings outside the absolute bounds are reported
    as equipment/procedure problems, readings between the two as product
    problems.
    """

    max_volume_l: Decimal = Decimal("50000")
    quantity_max_by_unit: dict[str, Decimal] = field(default_factory=_default_quantity_limits)
    default_quantity_max: Decimal = Decimal("1000000")
    max_count: int = 1_000_000
    max_price: Decimal = Decimal("1000000")

    abv_min: Decimal = Decimal("0")
    abv_max: Decimal = Decimal("20")
    abv_warning: Decimal = Decimal("12")

    ph_min_possible: Decimal = Decimal("0")
    ph_max_possible: Decimal = Decimal("14")
    ph_min: Decimal = Decimal("2.5")
    ph_max: Decimal = Decimal("4.5")

    sg_min_reasonable: Decimal = Decimal("0.980")
    sg_max_reasonable: Decimal = Decimal("1.300")
    sg_min: Decimal = Decimal("1.000")
    sg_max: Decimal = Decimal("1.200")

    acidity_max: Decimal = Decimal("5")
    acidity_dangerous: Decimal = Decimal("20")

    temperature_min_reasonable: Decimal = Decimal("-50")
    temperature_max_reasonable: Decimal = Decimal("100")
    temperature_min: Decimal = Decimal("-10")
    temperature_max: Decimal = Decimal("50")

    measurement_volume_max_l: Decimal = Decimal("50000")

    bottle_tolerance_l: Decimal = Decimal("0.05")

    notes_max_length: int = 1000
    taken_by_max_length: int = 100
    reason_max_length: int = 500

    def quantity_max(self, unit: str) -> Decimal:
        return self.quantity_max_by_unit.get(unit, self.default_quantity_max)


DEFAULT_LIMITS = GuardLimits()
