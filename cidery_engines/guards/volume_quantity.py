"""
Unit guards for volumes, quantities, counts, prices, and percentages.

Responsibility:
    Reject numeric inputs that are not finite, not positive (or not
    non-negative), or beyond the facility bounds in ``GuardLimits``.

Architecture position:
    Engines > Guards -- pure functions, zero I/O.  Called directly by
    API handlers and by the transfer and packaging guards.

Invariants enforced:
    - Non-finite input is reported before any ordering comparison
      (``Decimal("NaN") < 0`` would otherwise raise InvalidOperation).
    - Check order is fixed: finite, sign, zero, upper bound.  The first
      violation wins.

Failure modes:
    - VolumeValidationError for volumes.
    - QuantityValidationError for quantities, counts, prices, percentages.
"""

from __future__ import annotations

from decimal import Decimal

from cidery_engines.guards._messages import fmt, fmt_grouped, for_context, with_unit
from cidery_engines.guards.limits import DEFAULT_LIMITS, GuardLimits
from cidery_kernel.domain.values import NumberLike, to_decimal
from cidery_kernel.exceptions import QuantityValidationError, VolumeValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def validate_positive_volume(
    volume: NumberLike,
    field_name: str = "Volume",
    context: str = "",
    limits: GuardLimits = DEFAULT_LIMITS,
) -> None:
    """Volume must be finite, > 0 and <= the facility maximum."""
    v = to_decimal(volume)
    details = {"field_name": field_name, "volume": v, "context": context}
    _check_volume_finite(v, field_name, context, details)
    _check_volume_not_negative(v, field_name, context, details)
    if v == ZERO:
        raise VolumeValidationError(
            f"{field_name} cannot be zero: {fmt(v)}",
            f"{field_name} must be greater than 0L{for_context(context)}. "
            "Please enter a positive volume.",
            details,
        )
    _check_volume_max(v, field_name, context, details, limits)


def validate_non_negative_volume(
    volume: NumberLike,
    field_name: str = "Volume",
    context: str = "",
    limits: GuardLimits = DEFAULT_LIMITS,
) -> None:
    """Volume must be finite, >= 0 and <= the facility maximum."""
    v = to_decimal(volume)
    details = {"field_name": field_name, "volume": v, "context": context}
    _check_volume_finite(v, field_name, context, details)
    _check_volume_not_negative(v, field_name, context, details)
    _check_volume_max(v, field_name, context, details, limits)


def _check_volume_finite(v: Decimal, field_name: str, context: str, details: dict) -> None:
    if not v.is_finite():
        raise VolumeValidationError(
            f"{field_name} must be a valid number: {v}",
            f"{field_name} must be a valid number{for_context(context)}. "
            "Please check your input.",
            details,
        )


def _check_volume_not_negative(v: Decimal, field_name: str, context: str, details: dict) -> None:
    if v < ZERO:
        raise VolumeValidationError(
            f"{field_name} cannot be negative: {fmt(v)}",
            f"{field_name} cannot be negative. "
            f"Please enter a positive value{for_context(context)}.",
            details,
        )


def _check_volume_max(
    v: Decimal,
    field_name: str,
    context: str,
    details: dict,
    limits: GuardLimits,
) -> None:
    if v > limits.max_volume_l:
        raise VolumeValidationError(
            f"{field_name} exceeds maximum allowed: {fmt(v)}L",
            f"{field_name} of {fmt(v)}L seems unusually large for cidery operations. "
            f"Maximum allowed is {fmt_grouped(limits.max_volume_l)}L. "
            "Please verify your input.",
            {**details, "max_allowed": limits.max_volume_l},
        )


def validate_positive_quantity(
    quantity: NumberLike,
    field_name: str = "Quantity",
    unit: str = "",
    context: str = "",
    limits: GuardLimits = DEFAULT_LIMITS,
) -> None:
    """Quantity must be finite, > 0 and within the per-unit maximum."""
    q = to_decimal(quantity)
    details = {"field_name": field_name, "quantity": q, "unit": unit, "context": context}

    if not q.is_finite():
        raise QuantityValidationError(
            f"{field_name} must be a valid number: {q}",
            f"{field_name} must be a valid number{for_context(context)}. "
            "Please check your input.",
            details,
        )
    if q < ZERO:
        raise QuantityValidationError(
            f"{field_name} cannot be negative: {fmt(q)}",
            f"{field_name} cannot be negative. "
            f"Please enter a positive value{for_context(context)}.",
            details,
        )
    if q == ZERO:
        raise QuantityValidationError(
            f"{field_name} cannot be zero: {fmt(q)}",
            f"{field_name} must be greater than 0{with_unit(unit)}{for_context(context)}. "
            "Please enter a positive quantity.",
            details,
        )

    max_allowed = limits.quantity_max(unit)
    if q > max_allowed:
        raise QuantityValidationError(
            f"{field_name} exceeds maximum allowed: {fmt(q)} {unit}".rstrip(),
            f"{field_name} of {fmt(q)}{with_unit(unit)} seems unusually large. "
            f"Maximum allowed is {fmt_grouped(max_allowed)}{with_unit(unit)}. "
            "Please verify your input.",
            {**details, "max_allowed": max_allowed},
        )


def validate_positive_count(
    count: int | NumberLike,
    field_name: str = "Count",
    context: str = "",
    limits: GuardLimits = DEFAULT_LIMITS,
) -> None:
    """Count must be a whole number, > 0 and <= the maximum count."""
    details = {"field_name": field_name, "count": count, "context": context}

    if isinstance(count, bool) or not _is_whole_number(count):
        raise QuantityValidationError(
            f"{field_name} must be a whole number: {count}",
            f"{field_name} must be a whole number{for_context(context)}. "
            "Please enter an integer value.",
            details,
        )

    n = int(to_decimal(count))
    if n < 0:
        raise QuantityValidationError(
            f"{field_name} cannot be negative: {n}",
            f"{field_name} cannot be negative{for_context(context)}. "
            "Please enter a positive number.",
            details,
        )
    if n == 0:
        raise QuantityValidationError(
            f"{field_name} cannot be zero: {n}",
            f"{field_name} must be greater than 0{for_context(context)}. "
            "Please enter a positive count.",
            details,
        )
    if n > limits.max_count:
        raise QuantityValidationError(
            f"{field_name} exceeds maximum allowed: {n}",
            f"{field_name} of {n:,} seems unusually large. "
            f"Maximum allowed is {limits.max_count:,}. Please verify your input.",
            {**details, "max_allowed": limits.max_count},
        )


def _is_whole_number(value: object) -> bool:
    if isinstance(value, int):
        return True
    try:
        d = to_decimal(value)  # type: ignore[arg-type]
    except ValueError:
        return False
    return d.is_finite() and d == d.to_integral_value()


def validate_positive_price(
    price: NumberLike,
    field_name: str = "Price",
    currency: str = "",
    context: str = "",
    limits: GuardLimits = DEFAULT_LIMITS,
) -> None:
    """Price must be finite, > 0 and <= the maximum price."""
    p = to_decimal(price)
    details = {"field_name": field_name, "price": p, "currency": currency, "context": context}

    if not p.is_finite():
        raise QuantityValidationError(
            f"{field_name} must be a valid number: {p}",
            f"{field_name} must be a valid number{for_context(context)}. "
            "Please check your input.",
            details,
        )
    if p < ZERO:
        raise QuantityValidationError(
            f"{field_name} cannot be negative: {fmt(p)}",
            f"{field_name} cannot be negative{for_context(context)}. "
            "Please enter a positive value.",
            details,
        )
    if p == ZERO:
        raise QuantityValidationError(
            f"{field_name} cannot be zero: {fmt(p)}",
            f"{field_name} must be greater than 0{with_unit(currency)}{for_context(context)}. "
            "Please enter a positive price.",
            details,
        )
    if p > limits.max_price:
        raise QuantityValidationError(
            f"{field_name} exceeds maximum allowed: {fmt(p)}",
            f"{field_name} of {fmt_grouped(p)}{with_unit(currency)} seems unusually large. "
            f"Maximum allowed is {fmt_grouped(limits.max_price)}. Please verify your input.",
            {**details, "max_allowed": limits.max_price},
        )


def validate_percentage(
    percentage: NumberLike,
    field_name: str = "Percentage",
    context: str = "",
) -> None:
    """Percentage must be finite and within 0..100 inclusive."""
    pct = to_decimal(percentage)
    details = {"field_name": field_name, "percentage": pct, "context": context}

    if not pct.is_finite():
        raise QuantityValidationError(
            f"{field_name} must be a valid number: {pct}",
            f"{field_name} must be a valid number{for_context(context)}. "
            "Please check your input.",
            details,
        )
    if pct < ZERO:
        raise QuantityValidationError(
            f"{field_name} cannot be negative: {fmt(pct)}%",
            f"{field_name} cannot be negative{for_context(context)}. "
            "Please enter a value between 0% and 100%.",
            details,
        )
    if pct > HUNDRED:
        raise QuantityValidationError(
            f"{field_name} cannot exceed 100%: {fmt(pct)}%",
            f"{field_name} cannot exceed 100%{for_context(context)}. "
            "Please enter a value between 0% and 100%.",
            details,
        )
