"""
Tests for the packaging guard.

Covers:
- Bottle size parsing
- Batch readiness
- Remaining-volume overrun with prior runs
- Bottle arithmetic tolerance boundary
- ABV at packaging
"""

from datetime import date
from decimal import Decimal

import pytest

from cidery_engines.guards.limits import GuardLimits
from cidery_engines.guards.packaging import (
    LITERS_PER_FL_OZ,
    parse_bottle_size,
    validate_batch_ready_for_packaging,
    validate_bottle_consistency,
    validate_packaging,
    validate_packaging_abv,
    validate_packaging_volume,
)
from cidery_kernel.domain.entities import (
    BatchStatus,
    ExistingPackaging,
    PackagingRun,
    PriorPackagingRun,
)
from cidery_kernel.exceptions import (
    PackagingValidationError,
    QuantityValidationError,
    VolumeValidationError,
)


def _run(volume, bottle_count=20, bottle_size="750ml", abv=None, when=date(2025, 1, 10)):
    return PackagingRun(
        batch_id="batch-1",
        package_date=when,
        volume_packaged_l=volume,
        bottle_size=bottle_size,
        bottle_count=bottle_count,
        abv_at_packaging=abv,
    )


class TestParseBottleSize:
    @pytest.mark.parametrize(
        "label,unit,liters",
        [
            ("750ml", "ml", Decimal("0.75")),
            ("500 mL", "ml", Decimal("0.5")),
            ("1L", "l", Decimal("1")),
            ("1.5 litre", "l", Decimal("1.5")),
        ],
    )
    def test_metric_labels(self, label, unit, liters):
        size = parse_bottle_size(label)
        assert size.unit == unit
        assert size.liters == liters

    @pytest.mark.parametrize("label", ["12oz", "12 fl oz", "12"])
    def test_other_labels_are_fluid_ounces(self, label):
        size = parse_bottle_size(label)
        assert size.unit == "oz"
        assert size.liters == Decimal("12") * LITERS_PER_FL_OZ

    @pytest.mark.parametrize("label", ["", "magnum", "ml"])
    def test_label_without_number_rejected(self, label):
        with pytest.raises(PackagingValidationError, match="bottle size"):
            parse_bottle_size(label)


class TestBatchReadiness:
    def test_aging_batch_with_volume_is_ready(self, make_batch):
        validate_batch_ready_for_packaging(make_batch(status=BatchStatus.AGING))

    @pytest.mark.parametrize(
        "status", [BatchStatus.FERMENTATION, BatchStatus.CONDITIONING, BatchStatus.COMPLETED]
    )
    def test_other_stages_not_ready(self, make_batch, status):
        with pytest.raises(PackagingValidationError, match="not ready"):
            validate_batch_ready_for_packaging(make_batch(status=status))

    def test_discarded_batch(self, make_batch):
        with pytest.raises(PackagingValidationError, match="discarded"):
            validate_batch_ready_for_packaging(make_batch(status=BatchStatus.DISCARDED))

    def test_empty_batch(self, make_batch):
        with pytest.raises(PackagingValidationError, match="no volume"):
            validate_batch_ready_for_packaging(make_batch(status=BatchStatus.AGING, current_volume_l="0"))


class TestPackagingVolume:
    def test_prior_runs_reduce_remaining(self, make_batch):
        batch = make_batch(status=BatchStatus.AGING, current_volume_l="100")
        existing = ExistingPackaging.from_runs(
            [PriorPackagingRun(id="run-1", volume_packaged_l="60", package_date=date(2025, 1, 2))]
        )

        with pytest.raises(PackagingValidationError) as exc_info:
            validate_packaging_volume(batch, _run("45"), existing)

        details = exc_info.value.details
        assert details["remaining_volume_l"] == Decimal("40")
        assert details["excess_volume_l"] == Decimal("5")

    def test_exact_remaining_is_allowed(self, make_batch):
        batch = make_batch(status=BatchStatus.AGING, current_volume_l="100")
        existing = ExistingPackaging(total_volume_packaged_l="60")
        validate_packaging_volume(batch, _run("40"), existing)

    def test_zero_volume_uses_volume_guard(self, make_batch):
        with pytest.raises(VolumeValidationError):
            validate_packaging_volume(make_batch(status=BatchStatus.AGING), _run("0"))


class TestBottleConsistency:
    def test_difference_equal_to_tolerance_passes(self):
        """20 x 750 mL = 15.0 L; 15.05 L is exactly on the boundary."""
        validate_bottle_consistency(_run("15.05"))

    def test_difference_just_over_tolerance_fails(self):
        with pytest.raises(PackagingValidationError) as exc_info:
            validate_bottle_consistency(_run("15.0501"))
        assert exc_info.value.details["volume_difference_l"] == Decimal("0.0501")

    def test_configured_tolerance_applies(self):
        limits = GuardLimits(bottle_tolerance_l=Decimal("0.1"))
        validate_bottle_consistency(_run("15.08"), limits)

    def test_fractional_bottle_count_rejected(self):
        with pytest.raises(QuantityValidationError, match="whole number"):
            validate_bottle_consistency(_run("15", bottle_count=Decimal("20.5")))


class TestPackagingAbv:
    def test_absent_abv_skipped(self):
        validate_packaging_abv(None)

    def test_negative_abv(self):
        with pytest.raises(PackagingValidationError, match="negative"):
            validate_packaging_abv(Decimal("-1"))

    def test_abv_over_maximum(self):
        with pytest.raises(PackagingValidationError, match="exceeds"):
            validate_packaging_abv(Decimal("20.5"))

    def test_unusually_high_abv_warns_but_passes(self, captured_logs):
        validate_packaging_abv(Decimal("14"))

        warnings = [r for r in captured_logs() if r["message"] == "high_abv_detected"]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["abv"] == "14"
        assert warnings[0]["context"] == "packaging"

    def test_typical_abv_does_not_warn(self, captured_logs):
        validate_packaging_abv(Decimal("6.5"))
        assert not [r for r in captured_logs() if r["message"] == "high_abv_detected"]


class TestPackagingScenario:
    def test_bottle_math_mismatch_rejects_run(self, make_batch, deterministic_clock):
        """132 x 750 mL = 99.0 L against a 100 L request."""
        batch = make_batch(status=BatchStatus.AGING, current_volume_l="100")
        run = _run("100", bottle_count=132)

        with pytest.raises(PackagingValidationError) as exc_info:
            validate_packaging(batch, run, clock=deterministic_clock)

        assert exc_info.value.details["calculated_total_volume_l"] == Decimal("99.00")
        assert exc_info.value.details["volume_difference_l"] == Decimal("1.00")

    def test_consistent_run_is_accepted(self, make_batch, deterministic_clock):
        batch = make_batch(status=BatchStatus.AGING, current_volume_l="100")
        validate_packaging(batch, _run("99", bottle_count=132, abv="6.5"), clock=deterministic_clock)

    def test_future_packaging_date_rejected(self, make_batch, deterministic_clock):
        batch = make_batch(status=BatchStatus.AGING, current_volume_l="100")
        with pytest.raises(PackagingValidationError, match="future"):
            validate_packaging(batch, _run("15", when=date(2025, 2, 1)), clock=deterministic_clock)
