"""Formatting helpers shared by the guard modules."""

from __future__ import annotations

from decimal import Decimal


def fmt(value: Decimal | int | float | None) -> str:
    """Render a number the way an operator typed it (no exponent notation)."""
    if value is None:
        return "None"
    if isinstance(value, Decimal) and value.is_finite():
        text = format(value, "f")
        return text
    return str(value)


def fmt_grouped(value: Decimal | int) -> str:
    """Render with thousands separators, e.g. ``50,000``."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return f"{int(value):,}"
        return f"{value:,}"
    return f"{value:,}"


def for_context(context: str) -> str:
    return f" for {context}" if context else ""


def with_unit(unit: str) -> str:
    return f" {unit}" if unit else ""
