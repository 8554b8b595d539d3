"""
Numeric and temporal value helpers for the cidery domain.

Volumes, readings, and tax amounts are always ``Decimal``. Floats that
arrive from the outside are converted through ``str()`` so that ``0.1``
becomes ``Decimal("0.1")`` rather than its binary expansion.

Non-finite values (NaN, Infinity) are representable on purpose: guards
report them as "must be a valid number" errors instead of crashing at
the conversion boundary.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")

MONEY_QUANTUM = Decimal("0.01")
RATE_QUANTUM = Decimal("0.0001")
GALLON_QUANTUM = Decimal("0.001")

NumberLike = Decimal | int | float | str


def to_decimal(value: NumberLike) -> Decimal:
    """
    Coerce a numeric input to Decimal.

    Raises:
        ValueError: If ``value`` is a bool or a string that is not a number.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid numeric value: {value!r}") from e


def to_optional_decimal(value: NumberLike | None) -> Decimal | None:
    if value is None:
        return None
    return to_decimal(value)


def is_finite(value: Decimal) -> bool:
    return value.is_finite()


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_rate(value: Decimal) -> Decimal:
    """Round a per-gallon rate to four places, half-up."""
    return value.quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_gallons(value: Decimal) -> Decimal:
    """Round gallons to three places, half-up."""
    return value.quantize(GALLON_QUANTUM, rounding=ROUND_HALF_UP)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def is_after(moment: date | datetime, now: datetime) -> bool:
    """
    True if ``moment`` lies after ``now``.

    Plain dates compare against the UTC calendar date of ``now``, so
    "today" is never in the future.
    """
    if isinstance(moment, datetime):
        return as_utc(moment) > as_utc(now)
    return moment > as_utc(now).date()


def to_date(moment: date | datetime) -> date:
    if isinstance(moment, datetime):
        return as_utc(moment).date()
    return moment


def iso(moment: date | datetime) -> str:
    return moment.isoformat()
