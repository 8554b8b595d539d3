"""
Tests for ReconciliationService.

Covers:
- Opening balance from configured balances and from the previous snapshot
- Counts and adjustments recorded against a draft, then recomputed
- Finalize refuses an unexplained variance and leaves the row unchanged
- Explanations and closing adjustments allow finalization
- Chain validation at finalize (gap, overlap)
- Counts, adjustments and finalized snapshots are immutable
"""

from datetime import date
from decimal import Decimal

import pytest

from cidery_config.schema import CideryConfig, Tolerances
from cidery_engines.ttb.reconciliation import OPENING_FROM_CONFIG, OPENING_FROM_PHYSICAL, OPENING_NONE
from cidery_kernel.domain.entities import AdjustmentReason, MeasurementMethod, SnapshotStatus, TaxClass
from cidery_kernel.domain.opening_balances import OpeningBalances
from cidery_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidSnapshotTransitionError,
    SnapshotAlreadyFinalizedError,
    SnapshotChainGapError,
    SnapshotChainOverlapError,
    SnapshotImmutableError,
    UnexplainedVarianceError,
    VolumeValidationError,
)
from cidery_services import ReconciliationService

# 3917.902 L is 1035.000 wine gallons
COUNTED_LITERS = ("2000", "1917.902")


@pytest.fixture
def config():
    return CideryConfig(
        config_id="test",
        version=1,
        opening_balances=OpeningBalances(
            as_of_date=date(2025, 1, 1),
            bulk={TaxClass.HARD_CIDER: Decimal("800")},
            bottled={TaxClass.HARD_CIDER: Decimal("200")},
        ),
    )


@pytest.fixture
def service(session, deterministic_clock, config):
    return ReconciliationService(session, clock=deterministic_clock, config=config)


def _january(service, actor_id, **kwargs):
    values = dict(
        production_press_runs_gallons="150",
        production_juice_purchases_gallons="50",
        tax_paid_removals_gallons="150",
        other_removals_gallons="10",
    )
    values.update(kwargs)
    return service.create_snapshot(
        date(2025, 2, 3), date(2025, 1, 1), date(2025, 1, 31), actor_id, **values
    )


def _count(service, snapshot, actor_id):
    for i, liters in enumerate(COUNTED_LITERS, start=1):
        service.record_count(snapshot.id, f"tank-{i}", liters, liters, actor_id)
    return service.recompute(snapshot.id)


class TestCreateSnapshot:
    def test_configured_opening_balance(self, service, test_actor_id):
        row = _january(service, test_actor_id)

        assert row.status == SnapshotStatus.DRAFT.value
        assert row.opening_balance_gallons == Decimal("1000.000")
        assert row.opening_balance_source == OPENING_FROM_CONFIG
        assert row.calculated_ending_gallons == Decimal("1040.000")
        assert row.physical_count_gallons is None
        assert row.variance_gallons is None
        assert row.is_reconciled is False
        assert row.previous_reconciliation_id is None

    def test_without_config_opening_is_zero(self, session, deterministic_clock, test_actor_id):
        service = ReconciliationService(session, clock=deterministic_clock)
        row = _january(service, test_actor_id)
        assert row.opening_balance_source == OPENING_NONE
        assert row.calculated_ending_gallons == Decimal("40.000")

    def test_calculated_ttb_balance(self, service, test_actor_id):
        row = _january(service, test_actor_id, inventory_bulk="1000", inventory_removals="30")

        assert row.ttb_source_type == "calculated"
        assert row.ttb_balance == Decimal("1040.000")
        assert row.inventory_accounted_for == Decimal("1030.000")
        assert row.inventory_difference == Decimal("10.000")

    def test_manual_ttb_balance(self, service, test_actor_id):
        row = _january(service, test_actor_id, ttb_balance="1000", inventory_bulk="1000")

        assert row.ttb_source_type == "manual"
        assert row.inventory_difference == Decimal("0.000")

    def test_period_must_not_end_before_start(self, service, test_actor_id):
        with pytest.raises(ValueError):
            service.create_snapshot(date(2025, 2, 3), date(2025, 1, 31), date(2025, 1, 1), test_actor_id)


class TestCountsAndAdjustments:
    def test_count_line_stored(self, service, test_actor_id):
        row = _january(service, test_actor_id)
        count = service.record_count(
            row.id, "tank-1", "2100", "2000", test_actor_id, method=MeasurementMethod.SIGHT_GLASS
        )

        assert count.variance_liters == Decimal("-100")
        assert count.variance_percentage == Decimal("-4.76")
        assert count.measurement_method == "sight_glass"

    def test_count_does_not_recompute(self, service, test_actor_id):
        row = _january(service, test_actor_id)
        service.record_count(row.id, "tank-1", "100", "100", test_actor_id)
        assert row.physical_count_gallons is None

    def test_recompute_uses_counts(self, service, test_actor_id):
        row = _count(service, _january(service, test_actor_id), test_actor_id)

        assert row.physical_count_gallons == Decimal("1035.000")
        assert row.variance_gallons == Decimal("-5.000")
        assert row.is_reconciled is False

    def test_negative_count_rejected(self, service, test_actor_id):
        row = _january(service, test_actor_id)
        with pytest.raises(VolumeValidationError):
            service.record_count(row.id, "tank-1", "100", "-1", test_actor_id)
        assert service.counts_for(row.id) == []

    def test_adjustment_direction_checked(self, service, test_actor_id):
        row = _january(service, test_actor_id)
        with pytest.raises(VolumeValidationError):
            service.record_adjustment(row.id, AdjustmentReason.CORRECTION_UP, "100", "90", test_actor_id)

    def test_adjustment_stores_delta(self, service, test_actor_id):
        row = _january(service, test_actor_id)
        adjustment = service.record_adjustment(
            row.id, "evaporation", "100", "81.073", test_actor_id, batch_adjustment_id="adj-7"
        )
        assert adjustment.adjustment_liters == Decimal("-18.927")
        assert service.adjustments_for(row.id) == [adjustment]

    def test_count_rows_are_append_only(self, service, session, test_actor_id):
        row = _january(service, test_actor_id)
        count = service.record_count(row.id, "tank-1", "100", "100", test_actor_id)

        count.physical_volume_liters = Decimal("90")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_adjustment_rows_cannot_be_deleted(self, service, session, test_actor_id):
        row = _january(service, test_actor_id)
        adjustment = service.record_adjustment(row.id, "sampling", "100", "99", test_actor_id)

        session.delete(adjustment)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestFinalize:
    def test_unexplained_variance_refused(self, service, test_actor_id, captured_logs):
        row = _count(service, _january(service, test_actor_id), test_actor_id)

        with pytest.raises(UnexplainedVarianceError) as exc_info:
            service.finalize(row.id, test_actor_id)

        assert exc_info.value.variance_gallons == "-5.000"
        assert row.status == SnapshotStatus.DRAFT.value
        assert row.finalized_at is None
        refused = [r for r in captured_logs() if r["message"] == "reconciliation_finalize_refused"]
        assert refused[0]["snapshot_id"] == str(row.id)

    def test_uncounted_snapshot_refused(self, service, test_actor_id):
        row = _january(service, test_actor_id)
        with pytest.raises(UnexplainedVarianceError) as exc_info:
            service.finalize(row.id, test_actor_id)
        assert exc_info.value.variance_gallons == "uncounted"

    def test_explanation_allows_finalize(self, service, test_actor_id):
        row = _count(service, _january(service, test_actor_id), test_actor_id)

        service.finalize(row.id, test_actor_id, explanation="Barrel room evaporation")

        assert row.status == SnapshotStatus.FINALIZED.value
        assert row.is_reconciled is True
        assert row.discrepancy_explanation == "Barrel room evaporation"
        assert row.finalized_by_id == test_actor_id

    def test_closing_adjustment_allows_finalize(self, service, test_actor_id):
        row = _count(service, _january(service, test_actor_id), test_actor_id)
        service.record_adjustment(row.id, AdjustmentReason.EVAPORATION, "100", "81.073", test_actor_id)

        service.finalize(row.id, test_actor_id)

        assert row.is_reconciled is True
        assert row.discrepancy_explanation is None

    def test_configured_tolerance(self, session, deterministic_clock, config, test_actor_id):
        wide = CideryConfig(
            config_id="wide",
            version=1,
            tolerances=Tolerances(reconciliation_variance_gallons=Decimal("10")),
            opening_balances=config.opening_balances,
        )
        service = ReconciliationService(session, clock=deterministic_clock, config=wide)
        row = _count(service, _january(service, test_actor_id), test_actor_id)

        assert service.tolerance_gallons == Decimal("10")
        assert service.finalize(row.id, test_actor_id).is_finalized

    def test_finalize_once(self, service, test_actor_id):
        row = _january(service, test_actor_id)
        service.finalize(row.id, test_actor_id, explanation="No count taken")
        with pytest.raises(SnapshotAlreadyFinalizedError):
            service.finalize(row.id, test_actor_id, explanation="again")

    def test_finalized_snapshot_rejects_new_records(self, service, test_actor_id):
        row = _january(service, test_actor_id)
        service.finalize(row.id, test_actor_id, explanation="No count taken")

        with pytest.raises(SnapshotImmutableError):
            service.record_count(row.id, "tank-1", "1", "1", test_actor_id)
        with pytest.raises(SnapshotImmutableError):
            service.record_adjustment(row.id, "sampling", "2", "1", test_actor_id)
        with pytest.raises(SnapshotImmutableError):
            service.recompute(row.id)

    def test_orm_blocks_edit_of_finalized(self, service, session, test_actor_id):
        row = _january(service, test_actor_id)
        service.finalize(row.id, test_actor_id, explanation="No count taken")

        row.calculated_ending_gallons = Decimal("0")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_review_then_finalize(self, service, test_actor_id):
        row = _january(service, test_actor_id)
        service.submit_for_review(row.id, test_actor_id)
        with pytest.raises(InvalidSnapshotTransitionError):
            service.submit_for_review(row.id, test_actor_id)
        assert service.finalize(row.id, test_actor_id, explanation="No count").is_finalized


class TestChain:
    def _finalized_january(self, service, actor_id):
        row = _count(service, _january(service, actor_id), actor_id)
        return service.finalize(row.id, actor_id, explanation="Evaporation")

    def test_next_snapshot_opens_with_previous_count(self, service, test_actor_id):
        january = self._finalized_january(service, test_actor_id)

        february = service.create_snapshot(
            date(2025, 3, 3), date(2025, 2, 1), date(2025, 2, 28), test_actor_id
        )

        assert service.latest_finalized().id == january.id
        assert february.previous_reconciliation_id == january.id
        assert february.opening_balance_gallons == Decimal("1035.000")
        assert february.opening_balance_source == OPENING_FROM_PHYSICAL
        service.finalize(february.id, test_actor_id, explanation="No count taken")

    def test_gap_refused(self, service, test_actor_id):
        self._finalized_january(service, test_actor_id)
        february = service.create_snapshot(
            date(2025, 3, 3), date(2025, 2, 2), date(2025, 2, 28), test_actor_id
        )
        with pytest.raises(SnapshotChainGapError):
            service.finalize(february.id, test_actor_id, explanation="No count taken")
        assert february.is_finalized is False

    def test_overlap_refused(self, service, test_actor_id):
        self._finalized_january(service, test_actor_id)
        first = service.create_snapshot(date(2025, 3, 3), date(2025, 2, 1), date(2025, 2, 28), test_actor_id)
        second = service.create_snapshot(date(2025, 3, 4), date(2025, 2, 1), date(2025, 2, 28), test_actor_id)

        service.finalize(first.id, test_actor_id, explanation="No count taken")
        with pytest.raises(SnapshotChainOverlapError):
            service.finalize(second.id, test_actor_id, explanation="No count taken")
