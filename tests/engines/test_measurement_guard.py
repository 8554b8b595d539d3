"""
Tests for the measurement range guards.

Covers:
- Two-tier bounds (absolute range reported before the business range)
- Absent readings skipped
- High-ABV warning
- Future-dated measurements and free-text lengths
"""

from datetime import date
from decimal import Decimal

import pytest

from cidery_engines.guards.limits import GuardLimits
from cidery_engines.guards.measurements import (
    validate_abv,
    validate_measurement,
    validate_measurement_volume,
    validate_ph,
    validate_specific_gravity,
    validate_temperature,
    validate_total_acidity,
)
from cidery_kernel.domain.entities import Measurement
from cidery_kernel.exceptions import MeasurementValidationError


def _measurement(**readings):
    readings.setdefault("measurement_date", date(2025, 1, 10))
    return Measurement(batch_id="batch-1", **readings)


class TestPhScenario:
    def test_ph_above_cider_range_rejected(self, deterministic_clock):
        with pytest.raises(MeasurementValidationError) as exc_info:
            validate_measurement(_measurement(ph="5.0"), deterministic_clock)

        assert exc_info.value.details["max_allowed"] == Decimal("4.5")
        assert exc_info.value.details["measurement_type"] == "ph"

    def test_ph_in_range_accepted(self, deterministic_clock):
        validate_measurement(_measurement(ph="3.8"), deterministic_clock)


class TestTwoTierBounds:
    def test_impossible_ph_reports_possible_range(self):
        with pytest.raises(MeasurementValidationError) as exc_info:
            validate_ph("15")
        assert "max_possible" in exc_info.value.details
        assert "equipment" in exc_info.value.user_message

    def test_low_ph_reports_business_range(self):
        with pytest.raises(MeasurementValidationError) as exc_info:
            validate_ph("2.0")
        assert exc_info.value.details["min_allowed"] == Decimal("2.5")

    def test_unreasonable_gravity_before_business_range(self):
        with pytest.raises(MeasurementValidationError) as exc_info:
            validate_specific_gravity("0.900")
        assert "min_reasonable" in exc_info.value.details

    def test_gravity_below_one_but_reasonable(self):
        with pytest.raises(MeasurementValidationError, match="too low"):
            validate_specific_gravity("0.995")

    def test_temperature_tiers(self):
        with pytest.raises(MeasurementValidationError, match="reasonable"):
            validate_temperature("120")
        with pytest.raises(MeasurementValidationError, match="too high"):
            validate_temperature("60")

    def test_dangerous_acidity_reported_before_high(self):
        with pytest.raises(MeasurementValidationError, match="dangerously"):
            validate_total_acidity("25")
        with pytest.raises(MeasurementValidationError, match="too high"):
            validate_total_acidity("6")

    def test_boundaries_inclusive(self):
        limits = GuardLimits()
        validate_ph(limits.ph_min)
        validate_ph(limits.ph_max)
        validate_specific_gravity(limits.sg_max)
        validate_abv(limits.abv_max)


class TestAbv:
    def test_negative(self):
        with pytest.raises(MeasurementValidationError, match="negative"):
            validate_abv("-0.1")

    def test_over_maximum(self):
        with pytest.raises(MeasurementValidationError, match="maximum"):
            validate_abv("21")

    def test_high_abv_is_logged_not_rejected(self, captured_logs):
        validate_abv("14")
        warnings = [r for r in captured_logs() if r["message"] == "high_abv_detected"]
        assert warnings and warnings[0]["abv"] == "14"

    def test_nan_reported_as_invalid_number(self):
        with pytest.raises(MeasurementValidationError, match="valid number"):
            validate_abv("NaN")


class TestMeasurementRecord:
    def test_absent_readings_skipped(self, deterministic_clock):
        validate_measurement(_measurement(), deterministic_clock)

    def test_future_date_checked_first(self, deterministic_clock):
        m = _measurement(measurement_date=date(2025, 3, 1), ph="9")
        with pytest.raises(MeasurementValidationError) as exc_info:
            validate_measurement(m, deterministic_clock)
        assert exc_info.value.details["measurement_type"] == "date"

    def test_volume_over_limit(self):
        with pytest.raises(MeasurementValidationError, match="unusually large"):
            validate_measurement_volume("50001")

    def test_notes_too_long(self, deterministic_clock):
        m = _measurement(notes="x" * 1001)
        with pytest.raises(MeasurementValidationError) as exc_info:
            validate_measurement(m, deterministic_clock)
        assert exc_info.value.details["max_length"] == 1000

    def test_taken_by_too_long(self, deterministic_clock):
        m = _measurement(taken_by="y" * 101)
        with pytest.raises(MeasurementValidationError, match="Taken by"):
            validate_measurement(m, deterministic_clock)
