"""
Module: cidery_kernel.models.ttb
Responsibility: ORM persistence for TTB compliance records -- period
    snapshots (Form 5120.17 figures), reconciliation snapshots, the physical
    inventory counts taken for a reconciliation, and the adjustments that
    explain its variance.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/entities.py only.

Invariants enforced:
    - One period snapshot per (period_type, year, period_number)
      (uq_ttb_period).
    - Reconciliation snapshots chain through previous_reconciliation_id.
      Gap, overlap and cycle checks run at finalize time in
      ReconciliationService.
    - Finalized snapshots, counts and adjustments are immutable
      (db/immutability.py).

Audit relevance:
    A finalized snapshot is what was reported to TTB.  Its ending values
    seed the next period, so it must never change after finalization.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cidery_kernel.db.base import TrackedBase, UUIDString
from cidery_kernel.domain.entities import SnapshotStatus, TaxClass

_ZERO = Decimal("0")

TAX_CLASS_KEYS = tuple(c.value for c in TaxClass)


def _amount() -> Mapped[Decimal]:
    return mapped_column(Numeric(38, 9), default=_ZERO, nullable=False)


class TTBPeriodSnapshot(TrackedBase):
    """
    Saved Form 5120.17 figures for one reporting period.

    Contract:
        Inventory columns (``bulk_*``, ``bottled_*``, ``spirits_*``) hold the
        period's ENDING inventory in wine (or proof) gallons.  Once the row
        is finalized those values are the next period's beginning inventory.

    Guarantees:
        - Lifecycle is draft -> review -> finalized.
        - Finalized rows reject every field change except updated_at and
          updated_by_id.

    Non-goals:
        - Does NOT compute anything; values come from the TTB engines.
    """

    __tablename__ = "ttb_period_snapshots"

    __table_args__ = (
        UniqueConstraint("period_type", "year", "period_number", name="uq_ttb_period"),
        Index("idx_ttb_period_end", "period_end"),
        Index("idx_ttb_period_status", "status"),
    )

    period_type: Mapped[str] = mapped_column(String(20), nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    period_number: Mapped[int | None] = mapped_column(nullable=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # Bulk wines (ending inventory)
    bulk_hard_cider: Mapped[Decimal] = _amount()
    bulk_wine_under_16: Mapped[Decimal] = _amount()
    bulk_wine_16_to_21: Mapped[Decimal] = _amount()
    bulk_wine_21_to_24: Mapped[Decimal] = _amount()
    bulk_sparkling_wine: Mapped[Decimal] = _amount()
    bulk_carbonated_wine: Mapped[Decimal] = _amount()

    # Bottled wines (ending inventory)
    bottled_hard_cider: Mapped[Decimal] = _amount()
    bottled_wine_under_16: Mapped[Decimal] = _amount()
    bottled_wine_16_to_21: Mapped[Decimal] = _amount()
    bottled_wine_21_to_24: Mapped[Decimal] = _amount()
    bottled_sparkling_wine: Mapped[Decimal] = _amount()
    bottled_carbonated_wine: Mapped[Decimal] = _amount()

    # Spirits on hand (proof gallons)
    spirits_apple_brandy: Mapped[Decimal] = _amount()
    spirits_grape: Mapped[Decimal] = _amount()
    spirits_other: Mapped[Decimal] = _amount()

    # Production
    produced_hard_cider: Mapped[Decimal] = _amount()
    produced_wine_under_16: Mapped[Decimal] = _amount()
    produced_wine_16_to_21: Mapped[Decimal] = _amount()
    produced_wine_21_to_24: Mapped[Decimal] = _amount()
    produced_sparkling_wine: Mapped[Decimal] = _amount()
    produced_carbonated_wine: Mapped[Decimal] = _amount()

    # Tax-paid removals by channel
    taxpaid_tasting_room: Mapped[Decimal] = _amount()
    taxpaid_wholesale: Mapped[Decimal] = _amount()
    taxpaid_online_dtc: Mapped[Decimal] = _amount()
    taxpaid_events: Mapped[Decimal] = _amount()
    taxpaid_other: Mapped[Decimal] = _amount()

    # Other removals
    removed_samples: Mapped[Decimal] = _amount()
    removed_breakage: Mapped[Decimal] = _amount()
    removed_process_loss: Mapped[Decimal] = _amount()
    removed_spoilage: Mapped[Decimal] = _amount()
    removed_distilling: Mapped[Decimal] = _amount()

    # Materials received
    materials_apples_lbs: Mapped[Decimal] = _amount()
    materials_other_fruit_lbs: Mapped[Decimal] = _amount()
    materials_juice_gallons: Mapped[Decimal] = _amount()
    materials_sugar_lbs: Mapped[Decimal] = _amount()

    # Tax (dollars)
    tax_hard_cider: Mapped[Decimal] = _amount()
    tax_wine_under_16: Mapped[Decimal] = _amount()
    tax_wine_16_to_21: Mapped[Decimal] = _amount()
    tax_wine_21_to_24: Mapped[Decimal] = _amount()
    tax_sparkling_wine: Mapped[Decimal] = _amount()
    tax_carbonated_wine: Mapped[Decimal] = _amount()
    tax_small_producer_credit: Mapped[Decimal] = _amount()
    tax_total: Mapped[Decimal] = _amount()
    tax_rate_table_version: Mapped[str | None] = mapped_column(String(50), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=SnapshotStatus.DRAFT.value,
        nullable=False,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<TTBPeriodSnapshot {self.period_type} {self.year}/{self.period_number}: {self.status}>"

    @property
    def is_finalized(self) -> bool:
        return self.status == SnapshotStatus.FINALIZED.value

    def bulk_by_class(self) -> dict[TaxClass, Decimal]:
        return {TaxClass(k): getattr(self, f"bulk_{k}") for k in TAX_CLASS_KEYS}

    def bottled_by_class(self) -> dict[TaxClass, Decimal]:
        return {TaxClass(k): getattr(self, f"bottled_{k}") for k in TAX_CLASS_KEYS}

    @property
    def spirits_total(self) -> Decimal:
        return self.spirits_apple_brandy + self.spirits_grape + self.spirits_other


# Columns a caller may set through PeriodSnapshotService.save_draft().
PERIOD_VALUE_FIELDS: frozenset[str] = frozenset(
    [f"{prefix}_{k}" for prefix in ("bulk", "bottled", "produced", "tax") for k in TAX_CLASS_KEYS]
    + [
        "spirits_apple_brandy",
        "spirits_grape",
        "spirits_other",
        "taxpaid_tasting_room",
        "taxpaid_wholesale",
        "taxpaid_online_dtc",
        "taxpaid_events",
        "taxpaid_other",
        "removed_samples",
        "removed_breakage",
        "removed_process_loss",
        "removed_spoilage",
        "removed_distilling",
        "materials_apples_lbs",
        "materials_other_fruit_lbs",
        "materials_juice_gallons",
        "materials_sugar_lbs",
        "tax_small_producer_credit",
        "tax_total",
    ]
)


class TTBReconciliationSnapshot(TrackedBase):
    """
    Book balance vs. physical inventory for one reconciliation period.

    Contract:
        Every computed column is written from a ReconciliationResult;
        nothing here is derived by the database.

    Guarantees:
        - calculated_ending_gallons = opening + production - tax-paid - other.
        - variance_gallons = physical_count_gallons - calculated_ending_gallons,
          or NULL when no count was recorded.
        - inventory_difference = ttb_balance - inventory_accounted_for.
    """

    __tablename__ = "ttb_reconciliation_snapshots"

    __table_args__ = (
        Index("idx_ttb_recon_period_end", "period_end_date"),
        Index("idx_ttb_recon_status", "status"),
        Index("idx_ttb_recon_previous", "previous_reconciliation_id"),
    )

    reconciliation_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_end_date: Mapped[date] = mapped_column(Date, nullable=False)

    previous_reconciliation_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ttb_reconciliation_snapshots.id"),
        nullable=True,
    )

    opening_balance_gallons: Mapped[Decimal] = _amount()
    opening_balance_source: Mapped[str] = mapped_column(String(30), nullable=False)

    production_press_runs_gallons: Mapped[Decimal] = _amount()
    production_juice_purchases_gallons: Mapped[Decimal] = _amount()
    production_total_gallons: Mapped[Decimal] = _amount()
    tax_paid_removals_gallons: Mapped[Decimal] = _amount()
    other_removals_gallons: Mapped[Decimal] = _amount()

    calculated_ending_gallons: Mapped[Decimal] = _amount()
    physical_count_gallons: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    variance_gallons: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    ttb_balance: Mapped[Decimal] = _amount()
    ttb_source_type: Mapped[str] = mapped_column(String(20), default="calculated", nullable=False)

    inventory_bulk: Mapped[Decimal] = _amount()
    inventory_packaged: Mapped[Decimal] = _amount()
    inventory_on_hand: Mapped[Decimal] = _amount()
    inventory_removals: Mapped[Decimal] = _amount()
    inventory_legacy: Mapped[Decimal] = _amount()
    inventory_accounted_for: Mapped[Decimal] = _amount()
    inventory_difference: Mapped[Decimal] = _amount()

    status: Mapped[str] = mapped_column(
        String(20),
        default=SnapshotStatus.DRAFT.value,
        nullable=False,
    )
    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    discrepancy_explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<TTBReconciliationSnapshot {self.period_start_date}..{self.period_end_date}: "
            f"{self.status}>"
        )

    @property
    def is_finalized(self) -> bool:
        return self.status == SnapshotStatus.FINALIZED.value


class PhysicalInventoryCount(TrackedBase):
    """One vessel's counted volume for a reconciliation.  Append-only."""

    __tablename__ = "physical_inventory_counts"

    __table_args__ = (
        Index("idx_physical_count_snapshot", "reconciliation_snapshot_id"),
    )

    reconciliation_snapshot_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ttb_reconciliation_snapshots.id"),
        nullable=False,
    )
    vessel_id: Mapped[str] = mapped_column(String(100), nullable=False)
    batch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    book_volume_liters: Mapped[Decimal] = _amount()
    physical_volume_liters: Mapped[Decimal] = _amount()
    variance_liters: Mapped[Decimal] = _amount()
    variance_percentage: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    counted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    counted_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    measurement_method: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class ReconciliationAdjustment(TrackedBase):
    """
    A recorded explanation for part of a variance.  Append-only.

    Re-adjusting means recording a new adjustment; rows are never edited.
    """

    __tablename__ = "reconciliation_adjustments"

    __table_args__ = (
        Index("idx_recon_adjustment_snapshot", "reconciliation_snapshot_id"),
    )

    reconciliation_snapshot_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ttb_reconciliation_snapshots.id"),
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    volume_before_liters: Mapped[Decimal] = _amount()
    volume_after_liters: Mapped[Decimal] = _amount()
    adjustment_liters: Mapped[Decimal] = _amount()
    batch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    batch_adjustment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    adjusted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
