"""
Volume units for TTB reporting.

Batch ledgers are kept in liters; TTB Form 5120.17 is denominated in
wine gallons.  Conversion happens here, at the reporting boundary, and
nowhere in the guards.
"""

from __future__ import annotations

from decimal import Decimal

from cidery_kernel.domain.values import ZERO, NumberLike, quantize_gallons, to_decimal

LITERS_PER_WINE_GALLON = Decimal("3.78541")
WINE_GALLONS_PER_LITER = Decimal("0.264172")
ML_PER_LITER = Decimal("1000")


def liters_to_wine_gallons(liters: NumberLike) -> Decimal:
    """``1000`` liters is ``264.172`` wine gallons; negatives convert to 0."""
    value = to_decimal(liters)
    if value < 0:
        return ZERO
    return value * WINE_GALLONS_PER_LITER


def wine_gallons_to_liters(gallons: NumberLike) -> Decimal:
    value = to_decimal(gallons)
    if value < 0:
        return ZERO
    return value * LITERS_PER_WINE_GALLON


def ml_to_wine_gallons(ml: NumberLike) -> Decimal:
    return liters_to_wine_gallons(to_decimal(ml) / ML_PER_LITER)


def round_gallons(gallons: NumberLike) -> Decimal:
    """Round to three places (about 3.8 mL), half-up."""
    return quantize_gallons(to_decimal(gallons))


_UNIT_TO_LITERS = {
    "l": Decimal("1"),
    "liter": Decimal("1"),
    "liters": Decimal("1"),
    "gal": LITERS_PER_WINE_GALLON,
    "gallon": LITERS_PER_WINE_GALLON,
    "gallons": LITERS_PER_WINE_GALLON,
    "ml": Decimal("1") / ML_PER_LITER,
}


def juice_volume_to_liters(volume: NumberLike, unit: str = "L") -> Decimal:
    """
    Normalize a juice purchase or press-run volume to liters.

    Raises:
        ValueError: If ``unit`` is not one of L, gal, mL.
    """
    try:
        factor = _UNIT_TO_LITERS[unit.strip().lower()]
    except KeyError:
        raise ValueError(f"Unsupported volume unit: {unit!r}") from None
    return to_decimal(volume) * factor
