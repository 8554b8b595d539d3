"""
Measurement range guards.

Responsibility:
    Range-check each reading in a ``Measurement`` (ABV, pH, specific
    gravity, total acidity, temperature, volume) and its date.  Absent
    readings are skipped; every present reading is checked independently.

Architecture position:
    Engines > Guards -- pure functions.  Time is read through an
    injected Clock only.

Invariants enforced:
    - Two-tier bounds: a reading outside the absolute (possible or
      reasonable) range is reported as an equipment/procedure problem
      before the business range is consulted, so both tiers are
      reachable and carry distinct details.
    - Total acidity above the dangerous level is its own error tier.
    - ABV above the warning level is logged, never rejected.

Failure modes:
    - MeasurementValidationError for every violation.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from cidery_engines.guards._messages import fmt
from cidery_engines.guards.limits import DEFAULT_LIMITS, GuardLimits
from cidery_engines.tracer import traced_engine
from cidery_kernel.domain.clock import Clock, SystemClock
from cidery_kernel.domain.entities import Measurement
from cidery_kernel.domain.values import NumberLike, as_utc, is_after, iso, to_optional_decimal
from cidery_kernel.exceptions import MeasurementValidationError
from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.guards.measurements")


def _invalid_number(label: str, value: Decimal, key: str, measurement_type: str) -> MeasurementValidationError:
    return MeasurementValidationError(
        f"{label} must be a valid number: {value}",
        f"{label} must be a valid number. Please check your input.",
        {key: value, "measurement_type": measurement_type},
    )


def validate_abv(abv: NumberLike | None, limits: GuardLimits = DEFAULT_LIMITS) -> None:
    value = to_optional_decimal(abv)
    if value is None:
        return
    if not value.is_finite():
        raise _invalid_number("ABV", value, "abv", "abv")

    bounds = {
        "abv": value,
        "min_allowed": limits.abv_min,
        "max_allowed": limits.abv_max,
        "measurement_type": "abv",
    }
    if value < limits.abv_min:
        raise MeasurementValidationError(
            f"ABV cannot be negative: {fmt(value)}%",
            f"ABV cannot be negative. Please enter a value between "
            f"{fmt(limits.abv_min)}% and {fmt(limits.abv_max)}%.",
            bounds,
        )
    if value > limits.abv_max:
        raise MeasurementValidationError(
            f"ABV exceeds maximum for cider: {fmt(value)}%",
            f"ABV of {fmt(value)}% exceeds the typical maximum for cider "
            f"({fmt(limits.abv_max)}%). Please verify your measurement. If this reading "
            "is correct, this may indicate a measurement error or incomplete fermentation.",
            bounds,
        )
    if value > limits.abv_warning:
        logger.warning(
            "high_abv_detected",
            extra={"abv": str(value), "warning_threshold": str(limits.abv_warning)},
        )


def validate_ph(ph: NumberLike | None, limits: GuardLimits = DEFAULT_LIMITS) -> None:
    value = to_optional_decimal(ph)
    if value is None:
        return
    if not value.is_finite():
        raise _invalid_number("pH", value, "ph", "ph")

    if value < limits.ph_min_possible or value > limits.ph_max_possible:
        raise MeasurementValidationError(
            f"pH outside possible range: {fmt(value)}",
            f"pH of {fmt(value)} is outside the possible range "
            f"({fmt(limits.ph_min_possible)}-{fmt(limits.ph_max_possible)}). "
            "Please check your measurement equipment and procedure.",
            {
                "ph": value,
                "min_possible": limits.ph_min_possible,
                "max_possible": limits.ph_max_possible,
                "measurement_type": "ph",
            },
        )

    bounds = {
        "ph": value,
        "min_allowed": limits.ph_min,
        "max_allowed": limits.ph_max,
        "measurement_type": "ph",
    }
    normal = f"Normal range is {fmt(limits.ph_min)}-{fmt(limits.ph_max)}."
    if value < limits.ph_min:
        raise MeasurementValidationError(
            f"pH too low for cider: {fmt(value)}",
            f"pH of {fmt(value)} is dangerously low for cider. {normal} Please verify "
            "your measurement as this may indicate contamination or measurement error.",
            bounds,
        )
    if value > limits.ph_max:
        raise MeasurementValidationError(
            f"pH too high for cider: {fmt(value)}",
            f"pH of {fmt(value)} is too high for safe cider production. {normal} This may "
            "indicate bacterial contamination or incomplete fermentation. "
            "Please verify your measurement.",
            bounds,
        )


def validate_specific_gravity(sg: NumberLike | None, limits: GuardLimits = DEFAULT_LIMITS) -> None:
    value = to_optional_decimal(sg)
    if value is None:
        return
    if not value.is_finite():
        raise _invalid_number("Specific gravity", value, "specific_gravity", "specific_gravity")

    if value < limits.sg_min_reasonable or value > limits.sg_max_reasonable:
        raise MeasurementValidationError(
            f"Specific gravity outside reasonable bounds: {fmt(value)}",
            f"Specific gravity of {fmt(value)} is outside reasonable bounds for any "
            "beverage production. Please check your measurement equipment and procedure.",
            {
                "specific_gravity": value,
                "min_reasonable": limits.sg_min_reasonable,
                "max_reasonable": limits.sg_max_reasonable,
                "measurement_type": "specific_gravity",
            },
        )

    bounds = {
        "specific_gravity": value,
        "min_allowed": limits.sg_min,
        "max_allowed": limits.sg_max,
        "measurement_type": "specific_gravity",
    }
    normal = f"Normal range is {fmt(limits.sg_min)}-{fmt(limits.sg_max)}."
    if value < limits.sg_min:
        raise MeasurementValidationError(
            f"Specific gravity too low: {fmt(value)}",
            f"Specific gravity of {fmt(value)} is below {fmt(limits.sg_min)}, which is "
            f"not expected for cider. {normal} Please verify your measurement.",
            bounds,
        )
    if value > limits.sg_max:
        raise MeasurementValidationError(
            f"Specific gravity too high: {fmt(value)}",
            f"Specific gravity of {fmt(value)} is unusually high for cider. {normal} "
            "Please verify your measurement - this may indicate very high sugar "
            "content or measurement error.",
            bounds,
        )


def validate_total_acidity(acidity: NumberLike | None, limits: GuardLimits = DEFAULT_LIMITS) -> None:
    value = to_optional_decimal(acidity)
    if value is None:
        return
    if not value.is_finite():
        raise _invalid_number("Total acidity", value, "total_acidity", "total_acidity")

    if value < 0:
        raise MeasurementValidationError(
            f"Total acidity cannot be negative: {fmt(value)}",
            "Total acidity cannot be negative. Please enter a positive value.",
            {"total_acidity": value, "measurement_type": "total_acidity"},
        )
    if value > limits.acidity_dangerous:
        raise MeasurementValidationError(
            f"Total acidity dangerously high: {fmt(value)}g/L",
            f"Total acidity of {fmt(value)}g/L is dangerously high. This level could "
            "indicate a serious issue. Please verify your measurement immediately.",
            {
                "total_acidity": value,
                "dangerous_level": limits.acidity_dangerous,
                "measurement_type": "total_acidity",
            },
        )
    if value > limits.acidity_max:
        raise MeasurementValidationError(
            f"Total acidity too high: {fmt(value)}g/L",
            f"Total acidity of {fmt(value)}g/L is unusually high for cider. Normal range "
            f"is 0-{fmt(limits.acidity_max)}g/L. Please verify your measurement as this "
            "may indicate excessive acid addition or measurement error.",
            {
                "total_acidity": value,
                "max_allowed": limits.acidity_max,
                "measurement_type": "total_acidity",
            },
        )


def validate_temperature(temperature: NumberLike | None, limits: GuardLimits = DEFAULT_LIMITS) -> None:
    value = to_optional_decimal(temperature)
    if value is None:
        return
    if not value.is_finite():
        raise _invalid_number("Temperature", value, "temperature", "temperature")

    if value < limits.temperature_min_reasonable or value > limits.temperature_max_reasonable:
        raise MeasurementValidationError(
            f"Temperature outside reasonable bounds: {fmt(value)}°C",
            f"Temperature of {fmt(value)}°C is outside reasonable bounds. "
            "Please check your measurement equipment.",
            {
                "temperature": value,
                "min_reasonable": limits.temperature_min_reasonable,
                "max_reasonable": limits.temperature_max_reasonable,
                "measurement_type": "temperature",
            },
        )

    bounds = {
        "temperature": value,
        "min_allowed": limits.temperature_min,
        "max_allowed": limits.temperature_max,
        "measurement_type": "temperature",
    }
    if value < limits.temperature_min:
        raise MeasurementValidationError(
            f"Temperature too low: {fmt(value)}°C",
            f"Temperature of {fmt(value)}°C is too low for cider storage or production. "
            "Please verify your measurement.",
            bounds,
        )
    if value > limits.temperature_max:
        raise MeasurementValidationError(
            f"Temperature too high: {fmt(value)}°C",
            f"Temperature of {fmt(value)}°C is too high for cider - this could damage the "
            "product or indicate equipment malfunction. Normal range is "
            f"{fmt(limits.temperature_min)}°C to {fmt(limits.temperature_max)}°C.",
            bounds,
        )


def validate_measurement_date(
    measurement_date: date | datetime,
    clock: Clock | None = None,
) -> None:
    now = (clock or SystemClock()).now()
    if is_after(measurement_date, now):
        raise MeasurementValidationError(
            f"Measurement date cannot be in the future: {iso(measurement_date)}",
            "Measurement date cannot be in the future. "
            "Please select today's date or an earlier date.",
            {
                "measurement_date": iso(measurement_date),
                "current_date": as_utc(now).isoformat(),
                "measurement_type": "date",
            },
        )


def validate_measurement_volume(volume_l: NumberLike | None, limits: GuardLimits = DEFAULT_LIMITS) -> None:
    value = to_optional_decimal(volume_l)
    if value is None:
        return
    if not value.is_finite():
        raise _invalid_number("Volume", value, "volume_l", "volume")
    if value < 0:
        raise MeasurementValidationError(
            f"Volume cannot be negative: {fmt(value)}L",
            "Volume cannot be negative. Please enter a positive value.",
            {"volume_l": value, "measurement_type": "volume"},
        )
    if value > limits.measurement_volume_max_l:
        raise MeasurementValidationError(
            f"Volume unusually large: {fmt(value)}L",
            f"Volume of {fmt(value)}L seems unusually large for a single measurement. "
            "Please verify your input.",
            {
                "volume_l": value,
                "max_reasonable": limits.measurement_volume_max_l,
                "measurement_type": "volume",
            },
        )


def _validate_text_length(value: str | None, label: str, key: str, max_length: int) -> None:
    if value is not None and len(value) > max_length:
        raise MeasurementValidationError(
            f"{label} exceeds {max_length} characters: {len(value)}",
            f"{label} cannot exceed {max_length} characters. Please shorten your entry.",
            {key: len(value), "max_length": max_length, "measurement_type": key},
        )


@traced_engine("measurement_guard", "1.0", fingerprint_fields=("measurement",))
def validate_measurement(
    measurement: Measurement,
    clock: Clock | None = None,
    limits: GuardLimits = DEFAULT_LIMITS,
) -> None:
    """
    Validate every reading of a measurement, fail-fast.

    Order: date, ABV, pH, specific gravity, total acidity, temperature,
    volume, then the free-text field lengths.
    """
    validate_measurement_date(measurement.measurement_date, clock)
    validate_abv(measurement.abv, limits)
    validate_ph(measurement.ph, limits)
    validate_specific_gravity(measurement.specific_gravity, limits)
    validate_total_acidity(measurement.total_acidity, limits)
    validate_temperature(measurement.temperature, limits)
    validate_measurement_volume(measurement.volume_l, limits)
    _validate_text_length(measurement.notes, "Notes", "notes", limits.notes_max_length)
    _validate_text_length(measurement.taken_by, "Taken by", "taken_by", limits.taken_by_max_length)
