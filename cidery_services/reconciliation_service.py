"""
ReconciliationService -- TTB reconciliation snapshot lifecycle.

Responsibility:
    Creates reconciliation snapshots chained to the latest finalized one,
    records physical counts and adjustments against them, re-runs the
    ReconciliationEngine over the recorded data, and finalizes a snapshot
    once its variance is reconciled.

Architecture position:
    Services -- composes ``cidery_engines.ttb.reconciliation`` with the
    TTBReconciliationSnapshot, PhysicalInventoryCount and
    ReconciliationAdjustment models.

Invariants enforced:
    - Every stored figure comes from ``ReconciliationEngine.build_snapshot``,
      so calculated_ending = opening + production - tax-paid - other and
      variance = physical - calculated hold on every row.
    - Counts and adjustments are append-only and may only be recorded
      against a snapshot that is not finalized.
    - Finalization locks the snapshot and its predecessor, validates the
      chain (no gap, no overlap, no cycle) and refuses an unexplained
      variance.  It happens once.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - SnapshotNotFoundError, SnapshotAlreadyFinalizedError,
      SnapshotImmutableError, InvalidSnapshotTransitionError.
    - SnapshotChainGapError / SnapshotChainOverlapError /
      SnapshotChainCycleError at finalize.
    - UnexplainedVarianceError at finalize.
    - VolumeValidationError for an invalid count or adjustment volume.

Audit relevance:
    The finalized chain is the audit trail of book vs. physical
    inventory.  Creation, counts, adjustments and finalization are each
    logged with the snapshot id and actor.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cidery_config.schema import CideryConfig
from cidery_engines.guards.volume_quantity import validate_non_negative_volume
from cidery_engines.ttb.reconciliation import (
    DEFAULT_VARIANCE_TOLERANCE_GALLONS,
    PhysicalCount,
    ReconciliationAdjustmentSpec,
    ReconciliationEngine,
    ReconciliationInput,
    ReconciliationResult,
    SnapshotLink,
    physical_count_line,
    validate_adjustment,
    validate_chain,
)
from cidery_kernel.domain.clock import Clock, SystemClock
from cidery_kernel.domain.entities import AdjustmentReason, MeasurementMethod, SnapshotStatus
from cidery_kernel.domain.opening_balances import NO_OPENING_BALANCES
from cidery_kernel.domain.values import NumberLike, to_decimal
from cidery_kernel.exceptions import (
    InvalidSnapshotTransitionError,
    SnapshotAlreadyFinalizedError,
    SnapshotImmutableError,
    SnapshotNotFoundError,
    UnexplainedVarianceError,
)
from cidery_kernel.logging_config import LogContext, get_logger
from cidery_kernel.models.ttb import (
    PhysicalInventoryCount,
    ReconciliationAdjustment,
    TTBReconciliationSnapshot,
)
from cidery_kernel.services.base import BaseService

logger = get_logger("services.reconciliation")

TTB_SOURCE_CALCULATED = "calculated"
TTB_SOURCE_MANUAL = "manual"

_RESULT_COLUMNS = (
    "opening_balance_gallons",
    "opening_balance_source",
    "production_press_runs_gallons",
    "production_juice_purchases_gallons",
    "production_total_gallons",
    "tax_paid_removals_gallons",
    "other_removals_gallons",
    "calculated_ending_gallons",
    "physical_count_gallons",
    "variance_gallons",
    "is_reconciled",
)

_AUDIT_COLUMNS = (
    "inventory_bulk",
    "inventory_packaged",
    "inventory_on_hand",
    "inventory_removals",
    "inventory_legacy",
    "inventory_accounted_for",
    "inventory_difference",
)


def snapshot_link(row: TTBReconciliationSnapshot) -> SnapshotLink:
    """The chain-relevant view of a stored snapshot."""
    return SnapshotLink(
        id=str(row.id),
        period_start_date=row.period_start_date,
        period_end_date=row.period_end_date,
        calculated_ending_gallons=row.calculated_ending_gallons,
        physical_count_gallons=row.physical_count_gallons,
        previous_reconciliation_id=(
            str(row.previous_reconciliation_id)
            if row.previous_reconciliation_id is not None
            else None
        ),
        status=SnapshotStatus(row.status),
    )


class ReconciliationService(BaseService[TTBReconciliationSnapshot]):
    """
    Service for TTB reconciliation snapshots.

    Contract:
        Callers supply period figures already aggregated to wine gallons;
        the service supplies the opening balance, the recorded counts and
        adjustments, and persists the engine's result.

    Guarantees:
        - ``recompute`` and ``finalize`` give the same figures for the
          same recorded data.
        - A failed finalize leaves the row unchanged.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT apply adjustments to batch volume ledgers; the
          ``batch_adjustment_id`` link records that the caller did.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: CideryConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        if config is not None:
            tolerance = config.tolerances.reconciliation_variance_gallons
            self._opening = config.opening_balances
        else:
            tolerance = DEFAULT_VARIANCE_TOLERANCE_GALLONS
            self._opening = NO_OPENING_BALANCES
        self._engine = ReconciliationEngine(tolerance)

    @property
    def tolerance_gallons(self) -> Decimal:
        return self._engine.tolerance_gallons

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, snapshot_id: UUID | str) -> TTBReconciliationSnapshot:
        """
        Raises:
            SnapshotNotFoundError: If no snapshot has this id.
        """
        row = self.session.get(TTBReconciliationSnapshot, UUID(str(snapshot_id)))
        if row is None:
            raise SnapshotNotFoundError(str(snapshot_id))
        return row

    def counts_for(self, snapshot_id: UUID | str) -> list[PhysicalInventoryCount]:
        return list(
            self.session.execute(
                select(PhysicalInventoryCount)
                .where(PhysicalInventoryCount.reconciliation_snapshot_id == UUID(str(snapshot_id)))
                .order_by(PhysicalInventoryCount.counted_at, PhysicalInventoryCount.vessel_id)
            ).scalars()
        )

    def adjustments_for(self, snapshot_id: UUID | str) -> list[ReconciliationAdjustment]:
        return list(
            self.session.execute(
                select(ReconciliationAdjustment)
                .where(ReconciliationAdjustment.reconciliation_snapshot_id == UUID(str(snapshot_id)))
                .order_by(ReconciliationAdjustment.adjusted_at)
            ).scalars()
        )

    def latest_finalized(self) -> TTBReconciliationSnapshot | None:
        return self.session.execute(
            select(TTBReconciliationSnapshot)
            .where(TTBReconciliationSnapshot.status == SnapshotStatus.FINALIZED.value)
            .order_by(TTBReconciliationSnapshot.period_end_date.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _get_for_update(self, snapshot_id: UUID | str) -> TTBReconciliationSnapshot:
        row = self.session.execute(
            select(TTBReconciliationSnapshot)
            .where(TTBReconciliationSnapshot.id == UUID(str(snapshot_id)))
            .with_for_update()
        ).scalar_one_or_none()
        if row is None:
            raise SnapshotNotFoundError(str(snapshot_id))
        return row

    def _get_open_snapshot(self, snapshot_id: UUID | str, operation: str) -> TTBReconciliationSnapshot:
        row = self.get(snapshot_id)
        if row.is_finalized:
            raise SnapshotImmutableError(str(row.id), operation)
        return row

    # ------------------------------------------------------------------
    # Engine plumbing
    # ------------------------------------------------------------------

    def _previous_link(self, row: TTBReconciliationSnapshot, lock: bool = False) -> SnapshotLink | None:
        if row.previous_reconciliation_id is None:
            return None
        stmt = select(TTBReconciliationSnapshot).where(
            TTBReconciliationSnapshot.id == row.previous_reconciliation_id
        )
        if lock:
            stmt = stmt.with_for_update()
        previous = self.session.execute(stmt).scalar_one_or_none()
        if previous is None:
            raise SnapshotNotFoundError(str(row.previous_reconciliation_id))
        return snapshot_link(previous)

    def _configured_opening(self, previous: SnapshotLink | None, period_start: date) -> Decimal | None:
        if previous is None and self._opening.applies_to(period_start):
            return self._opening.total_gallons
        return None

    def _input_for(
        self,
        row: TTBReconciliationSnapshot,
        previous: SnapshotLink | None,
        explanation: str | None,
    ) -> ReconciliationInput:
        counts = tuple(
            PhysicalCount(
                vessel_id=c.vessel_id,
                book_volume_liters=c.book_volume_liters,
                physical_volume_liters=c.physical_volume_liters,
                batch_id=c.batch_id,
                measurement_method=MeasurementMethod(c.measurement_method),
            )
            for c in self.counts_for(row.id)
        )
        adjustments = tuple(
            ReconciliationAdjustmentSpec(
                reason=AdjustmentReason(a.reason),
                volume_before_liters=a.volume_before_liters,
                volume_after_liters=a.volume_after_liters,
                batch_id=a.batch_id,
                batch_adjustment_id=a.batch_adjustment_id,
                notes=a.notes,
            )
            for a in self.adjustments_for(row.id)
        )
        manual_balance = row.ttb_balance if row.ttb_source_type == TTB_SOURCE_MANUAL else None
        return ReconciliationInput(
            reconciliation_date=row.reconciliation_date,
            period_start_date=row.period_start_date,
            period_end_date=row.period_end_date,
            previous=previous,
            configured_opening_gallons=self._configured_opening(previous, row.period_start_date),
            production_press_runs_gallons=row.production_press_runs_gallons,
            production_juice_purchases_gallons=row.production_juice_purchases_gallons,
            tax_paid_removals_gallons=row.tax_paid_removals_gallons,
            other_removals_gallons=row.other_removals_gallons,
            counts=counts,
            adjustments=adjustments,
            discrepancy_explanation=explanation,
            ttb_balance=manual_balance,
            ttb_source_type=row.ttb_source_type,
            inventory_bulk=row.inventory_bulk,
            inventory_packaged=row.inventory_packaged,
            inventory_removals=row.inventory_removals,
            inventory_legacy=row.inventory_legacy,
        )

    @staticmethod
    def _apply_result(row: TTBReconciliationSnapshot, result: ReconciliationResult) -> None:
        for name in _RESULT_COLUMNS:
            setattr(row, name, getattr(result, name))
        for name in _AUDIT_COLUMNS:
            setattr(row, name, getattr(result.audit, name))
        row.ttb_balance = result.audit.ttb_balance

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_snapshot(
        self,
        reconciliation_date: date,
        period_start_date: date,
        period_end_date: date,
        actor_id: UUID,
        production_press_runs_gallons: NumberLike = 0,
        production_juice_purchases_gallons: NumberLike = 0,
        tax_paid_removals_gallons: NumberLike = 0,
        other_removals_gallons: NumberLike = 0,
        ttb_balance: NumberLike | None = None,
        inventory_bulk: NumberLike = 0,
        inventory_packaged: NumberLike = 0,
        inventory_removals: NumberLike = 0,
        inventory_legacy: NumberLike = 0,
        notes: str | None = None,
    ) -> TTBReconciliationSnapshot:
        """
        Compute and persist a draft snapshot chained to the latest
        finalized one.

        ``ttb_balance`` is the balance reported to TTB when it was entered
        by hand; when omitted the calculated ending balance is used.

        Raises:
            ValueError: If the period ends before it starts.
        """
        if period_end_date < period_start_date:
            raise ValueError(
                f"period_start_date ({period_start_date}) cannot be after "
                f"period_end_date ({period_end_date})"
            )

        previous_row = self.latest_finalized()
        previous = snapshot_link(previous_row) if previous_row is not None else None
        source_type = TTB_SOURCE_CALCULATED if ttb_balance is None else TTB_SOURCE_MANUAL

        data = ReconciliationInput(
            reconciliation_date=reconciliation_date,
            period_start_date=period_start_date,
            period_end_date=period_end_date,
            previous=previous,
            configured_opening_gallons=self._configured_opening(previous, period_start_date),
            production_press_runs_gallons=production_press_runs_gallons,
            production_juice_purchases_gallons=production_juice_purchases_gallons,
            tax_paid_removals_gallons=tax_paid_removals_gallons,
            other_removals_gallons=other_removals_gallons,
            ttb_balance=ttb_balance,
            ttb_source_type=source_type,
            inventory_bulk=inventory_bulk,
            inventory_packaged=inventory_packaged,
            inventory_removals=inventory_removals,
            inventory_legacy=inventory_legacy,
        )
        result = self._engine.build_snapshot(data)

        row = TTBReconciliationSnapshot(
            reconciliation_date=reconciliation_date,
            period_start_date=period_start_date,
            period_end_date=period_end_date,
            previous_reconciliation_id=previous_row.id if previous_row is not None else None,
            ttb_source_type=source_type,
            status=SnapshotStatus.DRAFT.value,
            notes=notes,
            created_by_id=actor_id,
        )
        self._apply_result(row, result)
        self.session.add(row)
        self.session.flush()

        logger.info(
            "reconciliation_snapshot_created",
            extra={
                "snapshot_id": str(row.id),
                "previous_reconciliation_id": (
                    str(row.previous_reconciliation_id) if row.previous_reconciliation_id else None
                ),
                "period_start": period_start_date.isoformat(),
                "period_end": period_end_date.isoformat(),
                "actor_id": str(actor_id),
            },
        )
        return row

    def record_count(
        self,
        snapshot_id: UUID | str,
        vessel_id: str,
        book_l: NumberLike,
        physical_l: NumberLike,
        counted_by: UUID,
        method: MeasurementMethod | str = MeasurementMethod.DIPSTICK,
        batch_id: str | None = None,
        notes: str | None = None,
    ) -> PhysicalInventoryCount:
        """
        Record one vessel's physical count.  Append-only.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist.
            SnapshotImmutableError: If the snapshot is finalized.
            VolumeValidationError: If a volume is negative or not a number.
        """
        row = self._get_open_snapshot(snapshot_id, "record a count on")
        validate_non_negative_volume(book_l, "Book volume", f"vessel {vessel_id}")
        validate_non_negative_volume(physical_l, "Physical volume", f"vessel {vessel_id}")

        book = to_decimal(book_l)
        physical = to_decimal(physical_l)
        line = physical_count_line(book, physical)
        count = PhysicalInventoryCount(
            reconciliation_snapshot_id=row.id,
            vessel_id=vessel_id,
            batch_id=batch_id,
            book_volume_liters=book,
            physical_volume_liters=physical,
            variance_liters=line.variance_liters,
            variance_percentage=line.variance_percentage,
            counted_at=self._clock.now(),
            counted_by=counted_by,
            measurement_method=MeasurementMethod(method).value,
            notes=notes,
            created_by_id=counted_by,
        )
        self.session.add(count)
        self.session.flush()

        logger.info(
            "physical_count_recorded",
            extra={
                "snapshot_id": str(row.id),
                "vessel_id": vessel_id,
                "variance_liters": str(line.variance_liters),
                "actor_id": str(counted_by),
            },
        )
        return count

    def record_adjustment(
        self,
        snapshot_id: UUID | str,
        reason: AdjustmentReason | str,
        volume_before_l: NumberLike,
        volume_after_l: NumberLike,
        actor_id: UUID,
        batch_id: str | None = None,
        batch_adjustment_id: str | None = None,
        notes: str | None = None,
    ) -> ReconciliationAdjustment:
        """
        Record an adjustment explaining part of the variance.  Append-only.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist.
            SnapshotImmutableError: If the snapshot is finalized.
            VolumeValidationError: If a volume is invalid or a correction
                moves the wrong way.
        """
        row = self._get_open_snapshot(snapshot_id, "record an adjustment on")
        spec = ReconciliationAdjustmentSpec(
            reason=reason,
            volume_before_liters=volume_before_l,
            volume_after_liters=volume_after_l,
            batch_id=batch_id,
            batch_adjustment_id=batch_adjustment_id,
            notes=notes,
        )
        validate_adjustment(spec)

        adjustment = ReconciliationAdjustment(
            reconciliation_snapshot_id=row.id,
            reason=spec.reason.value,
            volume_before_liters=spec.volume_before_liters,
            volume_after_liters=spec.volume_after_liters,
            adjustment_liters=spec.delta_liters,
            batch_id=batch_id,
            batch_adjustment_id=batch_adjustment_id,
            notes=notes,
            adjusted_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(adjustment)
        self.session.flush()

        logger.info(
            "reconciliation_adjustment_recorded",
            extra={
                "snapshot_id": str(row.id),
                "reason": spec.reason.value,
                "adjustment_liters": str(spec.delta_liters),
                "batch_adjustment_id": batch_adjustment_id,
                "actor_id": str(actor_id),
            },
        )
        return adjustment

    def recompute(self, snapshot_id: UUID | str) -> TTBReconciliationSnapshot:
        """
        Re-run the engine over the snapshot's recorded counts and adjustments.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist.
            SnapshotImmutableError: If the snapshot is finalized.
        """
        row = self._get_for_update(snapshot_id)
        if row.is_finalized:
            raise SnapshotImmutableError(str(row.id), "recompute")

        previous = self._previous_link(row)
        result = self._engine.build_snapshot(
            self._input_for(row, previous, row.discrepancy_explanation)
        )
        self._apply_result(row, result)
        self.session.flush()
        return row

    def submit_for_review(self, snapshot_id: UUID | str, actor_id: UUID) -> TTBReconciliationSnapshot:
        """
        Raises:
            SnapshotNotFoundError, SnapshotAlreadyFinalizedError,
            InvalidSnapshotTransitionError.
        """
        row = self._get_for_update(snapshot_id)
        if row.is_finalized:
            raise SnapshotAlreadyFinalizedError(str(row.id))
        if row.status != SnapshotStatus.DRAFT.value:
            raise InvalidSnapshotTransitionError(
                str(row.id), row.status, SnapshotStatus.REVIEW.value
            )

        row.status = SnapshotStatus.REVIEW.value
        row.submitted_at = self._clock.now()
        row.submitted_by_id = actor_id
        row.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "reconciliation_submitted",
            extra={"snapshot_id": str(row.id), "actor_id": str(actor_id)},
        )
        return row

    def _validate_chain_for(self, row: TTBReconciliationSnapshot) -> None:
        """
        Check ``row`` against every finalized snapshot as if it were
        already finalized.
        """
        finalized = self.session.execute(
            select(TTBReconciliationSnapshot).where(
                TTBReconciliationSnapshot.status == SnapshotStatus.FINALIZED.value,
                TTBReconciliationSnapshot.id != row.id,
            )
        ).scalars()
        links = [snapshot_link(s) for s in finalized]
        links.append(snapshot_link(row))
        validate_chain(links)

    def finalize(
        self,
        snapshot_id: UUID | str,
        actor_id: UUID,
        explanation: str | None = None,
    ) -> TTBReconciliationSnapshot:
        """
        Finalize a snapshot.  One-way.

        Locks the snapshot and its predecessor, validates the chain,
        re-runs the engine over the recorded data and refuses to finalize
        an unreconciled variance.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist.
            SnapshotAlreadyFinalizedError: If it is already finalized.
            SnapshotChainGapError, SnapshotChainOverlapError,
            SnapshotChainCycleError: If the chain is broken.
            UnexplainedVarianceError: If the variance is outside tolerance
                with no explanation and no closing adjustments.
        """
        row = self._get_for_update(snapshot_id)
        if row.is_finalized:
            raise SnapshotAlreadyFinalizedError(str(row.id))

        with LogContext.bind(snapshot_id=str(row.id), actor_id=str(actor_id)):
            previous = self._previous_link(row, lock=True)
            self._validate_chain_for(row)

            reason = explanation if explanation is not None else row.discrepancy_explanation
            result = self._engine.build_snapshot(self._input_for(row, previous, reason))
            if not result.is_reconciled:
                variance = (
                    str(result.variance_gallons)
                    if result.variance_gallons is not None
                    else "uncounted"
                )
                logger.warning(
                    "reconciliation_finalize_refused",
                    extra={
                        "variance_gallons": variance,
                        "tolerance_gallons": str(self.tolerance_gallons),
                    },
                )
                raise UnexplainedVarianceError(
                    str(row.id), variance, str(self.tolerance_gallons)
                )

            self._apply_result(row, result)
            row.discrepancy_explanation = reason
            row.status = SnapshotStatus.FINALIZED.value
            row.finalized_at = self._clock.now()
            row.finalized_by_id = actor_id
            row.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "reconciliation_finalized",
                extra={
                    "calculated_ending_gallons": str(row.calculated_ending_gallons),
                    "variance_gallons": (
                        str(row.variance_gallons) if row.variance_gallons is not None else None
                    ),
                    "explained": bool(reason),
                },
            )
        return row
