"""
PeriodSnapshotService -- TTB Form 5120.17 period snapshot lifecycle.

Responsibility:
    Saves the figures reported for a period as a draft, moves the
    snapshot through review to finalized, and derives a period's
    beginning inventory from the chain of finalized snapshots.

Architecture position:
    Services -- stateful shell over TTBPeriodSnapshot.
    Figures come from ``cidery_engines.ttb.period``; this service only
    persists them.

Invariants enforced:
    - One snapshot per (period_type, year, period_number).
    - Lifecycle is draft -> review -> finalized; finalization happens once
      and is serialized by ``SELECT ... FOR UPDATE`` on the row.
    - A finalized snapshot is never overwritten (SnapshotImmutableError);
      the ORM listeners in db/immutability.py back this up.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - SnapshotNotFoundError: no snapshot with the given id.
    - SnapshotImmutableError: save_draft over a finalized snapshot.
    - SnapshotAlreadyFinalizedError: second finalize.
    - InvalidSnapshotTransitionError: submit of a snapshot not in draft.
    - InvalidPeriodError: month or quarter out of range.
    - ValueError: unknown value field in save_draft.

Audit relevance:
    A finalized snapshot's ending inventory is the next period's beginning
    inventory.  Saves and lifecycle transitions are logged with the period
    and actor.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cidery_config.schema import CideryConfig
from cidery_engines.ttb.period import InventoryBreakdown, PeriodForm, reporting_period
from cidery_kernel.domain.clock import Clock, SystemClock
from cidery_kernel.domain.entities import PeriodType, SnapshotStatus, TaxClass
from cidery_kernel.domain.opening_balances import NO_OPENING_BALANCES
from cidery_kernel.domain.values import ZERO, NumberLike, to_decimal
from cidery_kernel.exceptions import (
    InvalidSnapshotTransitionError,
    SnapshotAlreadyFinalizedError,
    SnapshotImmutableError,
    SnapshotNotFoundError,
)
from cidery_kernel.logging_config import get_logger
from cidery_kernel.models.ttb import PERIOD_VALUE_FIELDS, TTBPeriodSnapshot
from cidery_kernel.services.base import BaseService

logger = get_logger("services.period_snapshot")

BEGINNING_FROM_PREVIOUS = "previous_period"
BEGINNING_FROM_CONFIG = "configured"
BEGINNING_NONE = "none"


@dataclass(frozen=True)
class BeginningInventory:
    """Per-class inventory a period opens with, and where it came from."""

    source: str
    bulk: Mapping[TaxClass, Decimal] = field(default_factory=dict)
    bottled: Mapping[TaxClass, Decimal] = field(default_factory=dict)
    spirits: Decimal = ZERO
    previous_snapshot_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "bulk", MappingProxyType(dict(self.bulk)))
        object.__setattr__(self, "bottled", MappingProxyType(dict(self.bottled)))

    def breakdown(self) -> InventoryBreakdown:
        return InventoryBreakdown(
            bulk=sum(self.bulk.values(), ZERO),
            bottled=sum(self.bottled.values(), ZERO),
        )


def period_form_values(form: PeriodForm) -> dict[str, Decimal]:
    """
    Snapshot column values for the removal and tax figures of a period form.

    Inventory columns are per tax class and are not part of ``PeriodForm``;
    callers add them before saving.
    """
    taxpaid = form.tax_paid_removals
    other = form.other_removals
    tax = form.tax_summary
    values = {
        "taxpaid_tasting_room": taxpaid.tasting_room,
        "taxpaid_wholesale": taxpaid.wholesale,
        "taxpaid_online_dtc": taxpaid.online_dtc,
        "taxpaid_events": taxpaid.events,
        "taxpaid_other": taxpaid.uncategorized,
        "removed_samples": other.samples,
        "removed_breakage": other.breakage,
        "removed_process_loss": other.process_losses,
        "removed_spoilage": other.spoilage,
        "removed_distilling": other.distilling,
        "tax_small_producer_credit": tax.total_credit,
        "tax_total": tax.total_tax,
    }
    for tax_class, result in tax.by_class.items():
        values[f"tax_{tax_class.value}"] = result.gross_tax
    return values


class PeriodSnapshotService(BaseService[TTBPeriodSnapshot]):
    """
    Service for TTB period snapshots.

    Contract:
        Accepts period coordinates and already-computed figures; returns
        the persisted ``TTBPeriodSnapshot`` row after flushing.

    Guarantees:
        - Saving over a finalized snapshot raises before any change is
          made to the row.
        - Concurrent finalize attempts serialize on the row lock; the
          loser sees ``SnapshotAlreadyFinalizedError``.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT aggregate batch ledgers into period figures.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: CideryConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._opening = config.opening_balances if config is not None else NO_OPENING_BALANCES

    def _find(self, period_type: PeriodType, year: int, period_number: int | None):
        stmt = select(TTBPeriodSnapshot).where(
            TTBPeriodSnapshot.period_type == period_type.value,
            TTBPeriodSnapshot.year == year,
        )
        if period_number is None:
            stmt = stmt.where(TTBPeriodSnapshot.period_number.is_(None))
        else:
            stmt = stmt.where(TTBPeriodSnapshot.period_number == period_number)
        return self.session.execute(stmt).scalar_one_or_none()

    def _get_for_update(self, snapshot_id: UUID | str) -> TTBPeriodSnapshot:
        row = self.session.execute(
            select(TTBPeriodSnapshot)
            .where(TTBPeriodSnapshot.id == UUID(str(snapshot_id)))
            .with_for_update()
        ).scalar_one_or_none()
        if row is None:
            raise SnapshotNotFoundError(str(snapshot_id))
        return row

    def get(self, snapshot_id: UUID | str) -> TTBPeriodSnapshot:
        """
        Raises:
            SnapshotNotFoundError: If no snapshot has this id.
        """
        row = self.session.get(TTBPeriodSnapshot, UUID(str(snapshot_id)))
        if row is None:
            raise SnapshotNotFoundError(str(snapshot_id))
        return row

    def save_draft(
        self,
        period_type: PeriodType | str,
        year: int,
        period_number: int | None,
        values: Mapping[str, NumberLike],
        actor_id: UUID,
        notes: str | None = None,
        rate_table_version: str | None = None,
    ) -> TTBPeriodSnapshot:
        """
        Create or update the draft snapshot for a period.

        Saving a snapshot that is in review returns it to draft.  Fields
        not present in ``values`` keep their current (or default zero)
        value.

        Raises:
            ValueError: If ``values`` names a field that is not a
                snapshot figure.
            SnapshotImmutableError: If the period's snapshot is finalized.
            InvalidPeriodError: If the period number is out of range.
        """
        unknown = set(values) - PERIOD_VALUE_FIELDS
        if unknown:
            raise ValueError(f"Unknown period snapshot fields: {sorted(unknown)}")

        period = reporting_period(period_type, year, period_number)
        row = self._find(period.period_type, year, period.period_number)
        created = row is None

        if row is None:
            row = TTBPeriodSnapshot(
                period_type=period.period_type.value,
                year=year,
                period_number=period.period_number,
                period_start=period.start_date,
                period_end=period.end_date,
                status=SnapshotStatus.DRAFT.value,
                created_by_id=actor_id,
            )
            self.session.add(row)
        elif row.is_finalized:
            raise SnapshotImmutableError(str(row.id), "save")
        else:
            row.status = SnapshotStatus.DRAFT.value
            row.updated_by_id = actor_id

        for name, value in values.items():
            setattr(row, name, to_decimal(value))
        if notes is not None:
            row.notes = notes
        if rate_table_version is not None:
            row.tax_rate_table_version = rate_table_version

        self.session.flush()
        logger.info(
            "snapshot_saved",
            extra={
                "snapshot_id": str(row.id),
                "period": period.label,
                "is_new": created,
                "actor_id": str(actor_id),
            },
        )
        return row

    def submit_for_review(self, snapshot_id: UUID | str, actor_id: UUID) -> TTBPeriodSnapshot:
        """
        Move a draft snapshot to review.

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
            "snapshot_submitted",
            extra={"snapshot_id": str(row.id), "actor_id": str(actor_id)},
        )
        return row

    def finalize(self, snapshot_id: UUID | str, actor_id: UUID) -> TTBPeriodSnapshot:
        """
        Finalize a draft or in-review snapshot.

        Uses SELECT FOR UPDATE so that concurrent finalize attempts
        serialize and the second sees the committed status.

        Postconditions:
            - ``status`` is finalized, ``finalized_at`` is the clock time
              and ``finalized_by_id`` is ``actor_id``.
            - The ending inventory becomes the next period's beginning
              inventory.

        Raises:
            SnapshotNotFoundError: If no snapshot has this id.
            SnapshotAlreadyFinalizedError: If it is already finalized.
        """
        row = self._get_for_update(snapshot_id)
        if row.is_finalized:
            raise SnapshotAlreadyFinalizedError(str(row.id))

        row.status = SnapshotStatus.FINALIZED.value
        row.finalized_at = self._clock.now()
        row.finalized_by_id = actor_id
        row.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "snapshot_finalized",
            extra={
                "snapshot_id": str(row.id),
                "period_type": row.period_type,
                "year": row.year,
                "period_number": row.period_number,
                "actor_id": str(actor_id),
            },
        )
        return row

    def beginning_inventory(
        self,
        period_type: PeriodType | str,
        year: int,
        period_number: int | None = None,
    ) -> BeginningInventory:
        """
        Inventory a period opens with.

        Priority:
            1. Ending inventory of the latest finalized snapshot that ends
               before the period starts.
            2. Configured opening balances, when the period starts on or
               after their as-of date.
            3. Zero.
        """
        period = reporting_period(period_type, year, period_number)
        previous = self.session.execute(
            select(TTBPeriodSnapshot)
            .where(
                TTBPeriodSnapshot.status == SnapshotStatus.FINALIZED.value,
                TTBPeriodSnapshot.period_end < period.start_date,
            )
            .order_by(TTBPeriodSnapshot.period_end.desc())
            .limit(1)
        ).scalar_one_or_none()

        if previous is not None:
            return BeginningInventory(
                source=BEGINNING_FROM_PREVIOUS,
                bulk=previous.bulk_by_class(),
                bottled=previous.bottled_by_class(),
                spirits=previous.spirits_total,
                previous_snapshot_id=previous.id,
            )
        if self._opening.applies_to(period.start_date):
            return BeginningInventory(
                source=BEGINNING_FROM_CONFIG,
                bulk=self._opening.bulk,
                bottled=self._opening.bottled,
                spirits=self._opening.spirits,
            )
        return BeginningInventory(source=BEGINNING_NONE)
