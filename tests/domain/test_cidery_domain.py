"""
Tests for the pure cidery domain layer.

These tests verify:
- Numeric coercion and rounding helpers
- Domain records are immutable and coerce their fields
- Clock abstraction works correctly
- Opening balances total and apply to the right periods
"""

from dataclasses import FrozenInstanceError
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from cidery_kernel.domain.clock import DeterministicClock, SystemClock
from cidery_kernel.domain.entities import (
    Batch,
    BatchStatus,
    ExistingPackaging,
    Measurement,
    PriorPackagingRun,
    TaxClass,
    Transfer,
    Vessel,
    VesselStatus,
)
from cidery_kernel.domain.opening_balances import NO_OPENING_BALANCES, OpeningBalances
from cidery_kernel.domain.values import (
    is_after,
    quantize_gallons,
    quantize_money,
    to_date,
    to_decimal,
    to_optional_decimal,
)


class TestToDecimal:
    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_decimal_returned_unchanged(self):
        value = Decimal("12.500")
        assert to_decimal(value) is value

    def test_nan_is_representable(self):
        assert to_decimal("NaN").is_nan()

    @pytest.mark.parametrize("value", [True, False, "twelve", ""])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid numeric value"):
            to_decimal(value)

    def test_optional(self):
        assert to_optional_decimal(None) is None
        assert to_optional_decimal(3) == Decimal("3")


class TestRounding:
    def test_money_half_up(self):
        assert quantize_money(Decimal("0.125")) == Decimal("0.13")

    def test_gallons_half_up(self):
        assert quantize_gallons(Decimal("264.1725")) == Decimal("264.173")


class TestTemporal:
    NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_today_is_not_after_now(self):
        assert is_after(date(2025, 1, 15), self.NOW) is False
        assert is_after(date(2025, 1, 16), self.NOW) is True

    def test_naive_datetime_treated_as_utc(self):
        assert is_after(datetime(2025, 1, 15, 12, 0, 1), self.NOW) is True
        assert is_after(datetime(2025, 1, 15, 11, 59), self.NOW) is False

    def test_to_date_converts_to_utc_first(self):
        eastern = timezone(timedelta(hours=-5))
        assert to_date(datetime(2025, 1, 15, 22, 0, tzinfo=eastern)) == date(2025, 1, 16)
        assert to_date(date(2025, 1, 15)) == date(2025, 1, 15)


class TestRecords:
    def test_vessel_coerces_and_is_frozen(self):
        vessel = Vessel(id="tank-1", name="Tank 1", capacity_l="1000", status="in_use", current_volume_l=250)

        assert vessel.capacity_l == Decimal("1000")
        assert vessel.status == VesselStatus.IN_USE
        assert vessel.headroom_l == Decimal("750")
        with pytest.raises(FrozenInstanceError):
            vessel.current_volume_l = Decimal("0")

    def test_invalid_state_is_representable(self):
        vessel = Vessel(id="tank-1", name="Tank 1", capacity_l="100", current_volume_l="150")
        assert vessel.headroom_l == Decimal("-50")

    def test_with_volume_returns_new_record(self):
        vessel = Vessel(id="tank-1", name="Tank 1", capacity_l="1000")
        filled = vessel.with_volume("400")
        assert filled.current_volume_l == Decimal("400")
        assert vessel.current_volume_l == Decimal("0")

    @pytest.mark.parametrize(
        "status,closed",
        [
            (BatchStatus.FERMENTATION, False),
            (BatchStatus.AGING, False),
            (BatchStatus.COMPLETED, True),
            (BatchStatus.DISCARDED, True),
        ],
    )
    def test_batch_closed(self, status, closed):
        batch = Batch(id="b", batch_number="B-1", current_volume_l="10", status=status)
        assert batch.is_closed is closed

    def test_batch_with_volume_keeps_dates(self):
        batch = Batch(id="b", batch_number="B-1", current_volume_l="10", start_date=date(2024, 9, 1))
        assert batch.with_volume("5").start_date == date(2024, 9, 1)

    def test_transfer_volume_coerced(self):
        transfer = Transfer("b", "tank-2", 12.5, date(2025, 1, 1))
        assert transfer.volume_transferred_l == Decimal("12.5")

    def test_measurement_readings_optional(self):
        m = Measurement("b", date(2025, 1, 1), specific_gravity="1.010")
        assert m.specific_gravity == Decimal("1.010")
        assert m.abv is None

    def test_existing_packaging_from_runs(self):
        existing = ExistingPackaging.from_runs(
            [
                PriorPackagingRun("r1", "100", date(2025, 1, 1)),
                PriorPackagingRun("r2", "50.5", date(2025, 1, 8)),
            ]
        )
        assert existing.total_volume_packaged_l == Decimal("150.5")
        assert len(existing.runs) == 2


class TestClock:
    def test_deterministic_clock_default(self):
        clock = DeterministicClock()
        assert clock.now() == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert clock.now() == clock.now()

    def test_advance(self):
        clock = DeterministicClock()
        clock.advance_days(2)
        assert clock.today() == date(2025, 1, 17)
        assert clock.tick() == datetime(2025, 1, 17, 12, 0, 1, tzinfo=timezone.utc)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(100)
        clock.set_time(datetime(2024, 6, 1, tzinfo=timezone.utc))
        assert clock.now() == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None


class TestOpeningBalances:
    def test_totals(self):
        balances = OpeningBalances(
            as_of_date=date(2025, 1, 1),
            bulk={TaxClass.HARD_CIDER: Decimal("800"), TaxClass.WINE_UNDER_16: Decimal("50")},
            bottled={TaxClass.HARD_CIDER: Decimal("150")},
            spirits=Decimal("12"),
        )
        assert balances.bulk_total == Decimal("850")
        assert balances.bottled_total == Decimal("150")
        assert balances.total_gallons == Decimal("1000")

    def test_mappings_are_read_only(self):
        balances = OpeningBalances(bulk={TaxClass.HARD_CIDER: Decimal("1")})
        with pytest.raises(TypeError):
            balances.bulk[TaxClass.HARD_CIDER] = Decimal("2")

    def test_applies_on_or_after_as_of_date(self):
        balances = OpeningBalances(as_of_date=date(2025, 1, 1))
        assert balances.applies_to(date(2025, 1, 1)) is True
        assert balances.applies_to(date(2025, 2, 1)) is True
        assert balances.applies_to(date(2024, 12, 1)) is False

    def test_unconfigured_never_applies(self):
        assert NO_OPENING_BALANCES.applies_to(date(2025, 1, 1)) is False
        assert NO_OPENING_BALANCES.total_gallons == Decimal("0")
