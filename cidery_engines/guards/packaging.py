"""
Packaging guard -- batch-to-package volume consumption.

Responsibility:
    Decide whether a packaging run may draw its volume from a batch:
    batch readiness, run date, remaining volume, bottle arithmetic, and
    ABV at packaging.

Architecture position:
    Engines > Guards -- pure functions.  Reuses the unit guards for
    volume and count positivity.

Invariants enforced:
    - Only ``aging`` batches with volume may be packaged.
    - Cumulative packaged volume never exceeds the batch volume:
      ``run.volume <= batch.current_volume_l - previously_packaged``.
    - ``bottle_count * bottle_size`` matches the packaged volume within
      the configured tolerance; the boundary is inclusive (a difference
      exactly equal to the tolerance passes).

Failure modes:
    - PackagingValidationError for readiness, date, overrun, bottle
      format/mismatch, ABV.
    - VolumeValidationError / QuantityValidationError from the reused
      unit guards (non-positive volume, non-integer bottle count).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from cidery_engines.guards._messages import fmt
from cidery_engines.guards.limits import DEFAULT_LIMITS, GuardLimits
from cidery_engines.guards.volume_quantity import validate_positive_count, validate_positive_volume
from cidery_engines.tracer import traced_engine
from cidery_kernel.domain.clock import Clock, SystemClock
from cidery_kernel.domain.entities import Batch, BatchStatus, ExistingPackaging, PackagingRun
from cidery_kernel.domain.values import ZERO, as_utc, is_after, iso, to_optional_decimal
from cidery_kernel.exceptions import PackagingValidationError, ValidationError
from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.guards.packaging")

LITERS_PER_FL_OZ = Decimal("0.0295735")
_ML_PER_L = Decimal("1000")

_BOTTLE_SIZE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]*)", re.IGNORECASE)
_LITER_TOKENS = frozenset({"l", "liter", "liters", "litre", "litres"})


@dataclass(frozen=True)
class BottleSize:
    """A parsed bottle size label such as ``750ml`` or ``12 oz``."""

    magnitude: Decimal
    unit: str  # "ml" | "l" | "oz"
    liters: Decimal


def parse_bottle_size(text: str) -> BottleSize:
    """
    Parse a bottle size label into liters.

    The first number in the label is the magnitude.  The word right after
    it selects the unit: ``ml`` for milliliters, ``l`` (or ``liter``) for
    liters, anything else (``oz``, ``fl oz``, nothing) for fluid ounces.

    Raises:
        PackagingValidationError: If the label contains no number.
    """
    match = _BOTTLE_SIZE_RE.search(text or "")
    if match is None:
        raise PackagingValidationError(
            f"Invalid bottle size format: {text}",
            f'Bottle size "{text}" is not in a valid format. Please use a format like '
            '"750ml", "500mL", "1L", "12oz", etc.',
            {"bottle_size": text},
        )
    magnitude = Decimal(match.group(1))
    token = match.group(2).lower()
    if token == "ml":
        return BottleSize(magnitude, "ml", magnitude / _ML_PER_L)
    if token in _LITER_TOKENS:
        return BottleSize(magnitude, "l", magnitude)
    return BottleSize(magnitude, "oz", magnitude * LITERS_PER_FL_OZ)


def validate_batch_ready_for_packaging(batch: Batch) -> None:
    details = {"batch_id": batch.id, "batch_number": batch.batch_number, "status": batch.status.value}
    if batch.status == BatchStatus.DISCARDED:
        raise PackagingValidationError(
            f"Batch {batch.batch_number} is discarded",
            f'Batch "{batch.batch_number}" is discarded and cannot be packaged.',
            details,
        )
    if batch.status != BatchStatus.AGING:
        raise PackagingValidationError(
            f"Batch {batch.batch_number} is not ready for packaging",
            f'Batch "{batch.batch_number}" must be in aging stage to be packaged. '
            f"Current status: {batch.status.value}.",
            details,
        )
    if batch.current_volume_l <= 0:
        raise PackagingValidationError(
            f"Batch {batch.batch_number} has no volume available",
            f'Batch "{batch.batch_number}" has no volume available for packaging '
            f"({fmt(batch.current_volume_l)}L). Please check the batch status.",
            {
                "batch_id": batch.id,
                "batch_number": batch.batch_number,
                "current_volume_l": batch.current_volume_l,
            },
        )


def validate_packaging_date(package_date: date | datetime, clock: Clock | None = None) -> None:
    now = (clock or SystemClock()).now()
    if is_after(package_date, now):
        raise PackagingValidationError(
            f"Packaging date cannot be in the future: {iso(package_date)}",
            "Packaging date cannot be in the future. "
            "Please select today's date or an earlier date.",
            {"package_date": iso(package_date), "current_date": as_utc(now).isoformat()},
        )


def validate_packaging_volume(
    batch: Batch,
    run: PackagingRun,
    existing: ExistingPackaging | None = None,
    limits: GuardLimits = DEFAULT_LIMITS,
) -> None:
    validate_positive_volume(
        run.volume_packaged_l,
        "Packaging volume",
        f"batch {batch.batch_number}",
        limits,
    )

    previously = existing.total_volume_packaged_l if existing is not None else ZERO
    remaining = batch.current_volume_l - previously
    requested = run.volume_packaged_l
    if requested > remaining:
        raise PackagingValidationError(
            f"Packaging volume {fmt(requested)}L exceeds remaining batch volume {fmt(remaining)}L",
            f'Cannot package {fmt(requested)}L from batch "{batch.batch_number}". '
            f"Only {fmt(remaining)}L remains available (batch volume: "
            f"{fmt(batch.current_volume_l)}L, previously packaged: {fmt(previously)}L). "
            f"Please reduce the packaging volume to {fmt(remaining)}L or less.",
            {
                "batch_id": batch.id,
                "batch_number": batch.batch_number,
                "batch_volume_l": batch.current_volume_l,
                "previously_packaged_l": previously,
                "remaining_volume_l": remaining,
                "requested_volume_l": requested,
                "excess_volume_l": requested - remaining,
            },
        )


def validate_bottle_consistency(run: PackagingRun, limits: GuardLimits = DEFAULT_LIMITS) -> None:
    validate_positive_count(run.bottle_count, "Bottle count", "packaging run", limits)

    size = parse_bottle_size(run.bottle_size)
    calculated = size.liters * int(run.bottle_count)
    difference = abs(calculated - run.volume_packaged_l)
    tolerance = limits.bottle_tolerance_l

    if difference > tolerance:
        raise PackagingValidationError(
            f"Volume mismatch: {run.bottle_count} x {run.bottle_size} != "
            f"{fmt(run.volume_packaged_l)}L",
            "The bottle count and size don't match the packaging volume. "
            f"{run.bottle_count} bottles of {run.bottle_size} should equal approximately "
            f"{calculated:.2f}L, but {fmt(run.volume_packaged_l)}L was specified. "
            "Please verify your calculations.",
            {
                "bottle_count": run.bottle_count,
                "bottle_size": run.bottle_size,
                "bottle_volume_l": size.liters,
                "calculated_total_volume_l": calculated,
                "specified_volume_l": run.volume_packaged_l,
                "volume_difference_l": difference,
                "tolerance_l": tolerance,
            },
        )


def validate_packaging_abv(abv: Decimal | None, limits: GuardLimits = DEFAULT_LIMITS) -> None:
    value = to_optional_decimal(abv)
    if value is None:
        return
    if not value.is_finite():
        raise PackagingValidationError(
            f"ABV must be a valid number: {value}",
            "ABV at packaging must be a valid number. Please check your input.",
            {"abv": value},
        )
    if value < limits.abv_min:
        raise PackagingValidationError(
            f"ABV cannot be negative: {fmt(value)}%",
            "ABV at packaging cannot be negative. Please enter a value between "
            f"{fmt(limits.abv_min)}% and {fmt(limits.abv_max)}%.",
            {"abv": value},
        )
    if value > limits.abv_max:
        raise PackagingValidationError(
            f"ABV exceeds maximum: {fmt(value)}%",
            f"ABV at packaging of {fmt(value)}% exceeds the maximum allowed for cider "
            f"({fmt(limits.abv_max)}%). Please verify your measurement.",
            {"abv": value, "max_allowed": limits.abv_max},
        )
    if value > limits.abv_warning:
        logger.warning(
            "high_abv_detected",
            extra={
                "abv": str(value),
                "warning_threshold": str(limits.abv_warning),
                "context": "packaging",
            },
        )


@traced_engine("packaging_guard", "1.0", fingerprint_fields=("batch", "run", "existing"))
def validate_packaging(
    batch: Batch,
    run: PackagingRun,
    existing: ExistingPackaging | None = None,
    clock: Clock | None = None,
    limits: GuardLimits = DEFAULT_LIMITS,
) -> None:
    """
    Run every packaging check in order; raise on the first violation.

    Order: batch readiness, date, volume, bottle consistency, ABV.
    """
    try:
        validate_batch_ready_for_packaging(batch)
        validate_packaging_date(run.package_date, clock)
        validate_packaging_volume(batch, run, existing, limits)
        validate_bottle_consistency(run, limits)
        validate_packaging_abv(run.abv_at_packaging, limits)
    except ValidationError as exc:
        logger.info(
            "packaging_rejected",
            extra={
                "batch_id": batch.id,
                "volume_l": str(run.volume_packaged_l),
                "error_code": exc.code,
            },
        )
        raise
