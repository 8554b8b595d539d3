"""
cidery_engines.ttb.reconciliation -- TTB book balance vs. physical inventory.

Responsibility:
    Compute a reconciliation snapshot: opening balance carried from the
    previous snapshot, calculated ending balance, physical count,
    variance, whether the variance is reconciled, and the inventory
    audit cross-check.  Also validates the snapshot chain.

Architecture position:
    Engines > TTB -- pure calculation layer, zero I/O.  The persistence
    services read counts, adjustments and the previous snapshot, call
    ``ReconciliationEngine.build_snapshot``, and store the result.

Invariants enforced:
    - calculated_ending = opening + production - tax_paid - other
      (all rounded to three places before the arithmetic, so the
      identity holds exactly on the stored values).
    - variance = physical - calculated_ending.
    - is_reconciled when |variance| <= tolerance, or an explanation is
      given, or adjustments close the gap to within tolerance.
    - inventory_difference = ttb_balance - inventory_accounted_for, and
      is reported even when zero.
    - Chain: snapshot N starts the day after snapshot N-1 ends; links
      never form a cycle.

Failure modes:
    - SnapshotChainCycleError, SnapshotChainGapError,
      SnapshotChainOverlapError from ``validate_chain``.
    - VolumeValidationError for an adjustment with invalid volumes or a
      correction whose direction contradicts its reason.

Audit relevance:
    A finalized snapshot's ending balance is the next snapshot's opening
    balance; that carry-forward is what prevents retroactive drift.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from cidery_engines.guards.volume_quantity import validate_non_negative_volume
from cidery_engines.tracer import traced_engine
from cidery_engines.ttb.units import WINE_GALLONS_PER_LITER, liters_to_wine_gallons, round_gallons
from cidery_kernel.domain.entities import AdjustmentReason, MeasurementMethod, SnapshotStatus
from cidery_kernel.domain.values import ZERO, NumberLike, to_decimal, to_optional_decimal
from cidery_kernel.exceptions import (
    SnapshotChainCycleError,
    SnapshotChainGapError,
    SnapshotChainOverlapError,
    VolumeValidationError,
)
from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.ttb.reconciliation")

DEFAULT_VARIANCE_TOLERANCE_GALLONS = Decimal("0.5")
PERCENT_QUANTUM = Decimal("0.01")

OPENING_FROM_PHYSICAL = "previous_physical"
OPENING_FROM_CALCULATED = "previous_calculated"
OPENING_FROM_CONFIG = "configured"
OPENING_NONE = "none"


@dataclass(frozen=True)
class SnapshotLink:
    """The parts of a stored reconciliation snapshot the engine reads."""

    id: str
    period_start_date: date
    period_end_date: date
    calculated_ending_gallons: Decimal
    physical_count_gallons: Decimal | None = None
    previous_reconciliation_id: str | None = None
    status: SnapshotStatus = SnapshotStatus.FINALIZED

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "calculated_ending_gallons", to_decimal(self.calculated_ending_gallons)
        )
        object.__setattr__(
            self, "physical_count_gallons", to_optional_decimal(self.physical_count_gallons)
        )

    @property
    def ending_gallons(self) -> Decimal:
        """Physical count when one was taken, else the calculated ending."""
        if self.physical_count_gallons is not None:
            return self.physical_count_gallons
        return self.calculated_ending_gallons


@dataclass(frozen=True)
class OpeningBalance:
    gallons: Decimal
    source: str


@dataclass(frozen=True)
class PhysicalCount:
    vessel_id: str
    book_volume_liters: Decimal
    physical_volume_liters: Decimal
    batch_id: str | None = None
    measurement_method: MeasurementMethod = MeasurementMethod.DIPSTICK

    def __post_init__(self) -> None:
        object.__setattr__(self, "book_volume_liters", to_decimal(self.book_volume_liters))
        object.__setattr__(self, "physical_volume_liters", to_decimal(self.physical_volume_liters))
        object.__setattr__(self, "measurement_method", MeasurementMethod(self.measurement_method))


@dataclass(frozen=True)
class CountLine:
    """Variance of one vessel count; percentage is None when the book volume is zero."""

    variance_liters: Decimal
    variance_percentage: Decimal | None


@dataclass(frozen=True)
class ReconciliationAdjustmentSpec:
    """
    A discrete correction explaining part of a variance.

    ``batch_adjustment_id`` links the correction to the batch volume
    adjustment that absorbed it, when there is one.
    """

    reason: AdjustmentReason
    volume_before_liters: Decimal
    volume_after_liters: Decimal
    batch_id: str | None = None
    batch_adjustment_id: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "reason", AdjustmentReason(self.reason))
        object.__setattr__(self, "volume_before_liters", to_decimal(self.volume_before_liters))
        object.__setattr__(self, "volume_after_liters", to_decimal(self.volume_after_liters))

    @property
    def delta_liters(self) -> Decimal:
        return self.volume_after_liters - self.volume_before_liters


@dataclass(frozen=True)
class VarianceResult:
    variance_gallons: Decimal | None
    tolerance_gallons: Decimal
    within_tolerance: bool
    explained: bool
    adjustment_net_gallons: Decimal
    closed_by_adjustments: bool
    is_reconciled: bool


@dataclass(frozen=True)
class InventoryAudit:
    ttb_balance: Decimal
    inventory_bulk: Decimal
    inventory_packaged: Decimal
    inventory_on_hand: Decimal
    inventory_removals: Decimal
    inventory_legacy: Decimal
    inventory_accounted_for: Decimal
    inventory_difference: Decimal


@dataclass(frozen=True)
class ReconciliationInput:
    """Aggregated period figures, volumes in wine gallons unless named liters."""

    reconciliation_date: date
    period_start_date: date
    period_end_date: date
    previous: SnapshotLink | None = None
    configured_opening_gallons: Decimal | None = None
    production_press_runs_gallons: Decimal = ZERO
    production_juice_purchases_gallons: Decimal = ZERO
    tax_paid_removals_gallons: Decimal = ZERO
    other_removals_gallons: Decimal = ZERO
    counts: tuple[PhysicalCount, ...] = field(default_factory=tuple)
    adjustments: tuple[ReconciliationAdjustmentSpec, ...] = field(default_factory=tuple)
    discrepancy_explanation: str | None = None
    ttb_balance: Decimal | None = None
    ttb_source_type: str = "calculated"
    inventory_bulk: Decimal = ZERO
    inventory_packaged: Decimal = ZERO
    inventory_removals: Decimal = ZERO
    inventory_legacy: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in (
            "production_press_runs_gallons",
            "production_juice_purchases_gallons",
            "tax_paid_removals_gallons",
            "other_removals_gallons",
            "inventory_bulk",
            "inventory_packaged",
            "inventory_removals",
            "inventory_legacy",
        ):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))
        object.__setattr__(
            self, "configured_opening_gallons", to_optional_decimal(self.configured_opening_gallons)
        )
        object.__setattr__(self, "ttb_balance", to_optional_decimal(self.ttb_balance))
        object.__setattr__(self, "counts", tuple(self.counts))
        object.__setattr__(self, "adjustments", tuple(self.adjustments))


@dataclass(frozen=True)
class ReconciliationResult:
    reconciliation_date: date
    period_start_date: date
    period_end_date: date
    previous_reconciliation_id: str | None
    opening_balance_gallons: Decimal
    opening_balance_source: str
    production_press_runs_gallons: Decimal
    production_juice_purchases_gallons: Decimal
    production_total_gallons: Decimal
    tax_paid_removals_gallons: Decimal
    other_removals_gallons: Decimal
    calculated_ending_gallons: Decimal
    physical_count_gallons: Decimal | None
    variance_gallons: Decimal | None
    is_reconciled: bool
    variance: VarianceResult
    audit: InventoryAudit
    ttb_source_type: str
    count_lines: tuple[CountLine, ...] = field(default_factory=tuple)


def physical_count_line(book_liters: NumberLike, physical_liters: NumberLike) -> CountLine:
    book = to_decimal(book_liters)
    variance = to_decimal(physical_liters) - book
    if book == 0:
        return CountLine(variance, None)
    pct = (variance / book * 100).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)
    return CountLine(variance, pct)


def adjustment_net_effect(adjustments: Iterable[ReconciliationAdjustmentSpec]) -> Decimal:
    """Sum of adjustment deltas, in liters."""
    return sum((a.delta_liters for a in adjustments), ZERO)


def validate_adjustment(adjustment: ReconciliationAdjustmentSpec) -> None:
    """Volumes must be valid and corrections must move in their stated direction."""
    validate_non_negative_volume(adjustment.volume_before_liters, "Volume before", "adjustment")
    validate_non_negative_volume(adjustment.volume_after_liters, "Volume after", "adjustment")

    delta = adjustment.delta_liters
    reason = adjustment.reason
    if reason == AdjustmentReason.CORRECTION_UP and delta <= 0:
        wrong_way = "increase"
    elif reason == AdjustmentReason.CORRECTION_DOWN and delta >= 0:
        wrong_way = "decrease"
    else:
        return
    raise VolumeValidationError(
        f"{reason.value} adjustment has delta {delta}L",
        f"A {reason.value.replace('_', ' ')} adjustment must {wrong_way} the volume. "
        "Please check the before and after volumes or choose another reason.",
        {
            "reason": reason.value,
            "volume_before_liters": adjustment.volume_before_liters,
            "volume_after_liters": adjustment.volume_after_liters,
            "delta_liters": delta,
        },
    )


def validate_link(previous: SnapshotLink, current_start: date) -> None:
    """``current_start`` must be the day after ``previous`` ends."""
    expected = previous.period_end_date + timedelta(days=1)
    if current_start > expected:
        raise SnapshotChainGapError(
            previous.period_end_date.isoformat(), current_start.isoformat()
        )
    if current_start < expected:
        raise SnapshotChainOverlapError(
            previous.period_end_date.isoformat(), current_start.isoformat()
        )


def validate_chain(snapshots: Sequence[SnapshotLink]) -> tuple[SnapshotLink, ...]:
    """
    Order snapshots along their ``previous_reconciliation_id`` links and
    check that consecutive periods abut.

    Returns the snapshots oldest first.  A link to an id outside
    ``snapshots`` is treated as the start of the chain.
    """
    if not snapshots:
        return ()
    by_id = {s.id: s for s in snapshots}

    for snapshot in snapshots:
        seen = {snapshot.id}
        link = snapshot.previous_reconciliation_id
        while link is not None and link in by_id:
            if link in seen:
                raise SnapshotChainCycleError(link)
            seen.add(link)
            link = by_id[link].previous_reconciliation_id

    roots = sorted(
        (s for s in snapshots if s.previous_reconciliation_id not in by_id),
        key=lambda s: s.period_start_date,
    )
    if len(roots) > 1:
        raise SnapshotChainGapError(
            roots[0].period_end_date.isoformat(), roots[1].period_start_date.isoformat()
        )

    children: dict[str, list[SnapshotLink]] = {}
    for snapshot in snapshots:
        if snapshot.previous_reconciliation_id in by_id:
            children.setdefault(snapshot.previous_reconciliation_id, []).append(snapshot)

    ordered = [roots[0]]
    while True:
        following = children.get(ordered[-1].id, [])
        if not following:
            break
        if len(following) > 1:
            first, second = sorted(following, key=lambda s: s.period_start_date)[:2]
            raise SnapshotChainOverlapError(
                first.period_end_date.isoformat(), second.period_start_date.isoformat()
            )
        nxt = following[0]
        validate_link(ordered[-1], nxt.period_start_date)
        ordered.append(nxt)
    return tuple(ordered)


class ReconciliationEngine:
    """
    Builds reconciliation snapshots.

    Contract:
        Pure; no clock, no I/O.  ``tolerance_gallons`` is the variance a
        snapshot may carry and still be reconciled without explanation.

    Guarantees:
        - Never raises for an unreconciled variance; that is a result.
        - Identical inputs give identical results.

    Non-goals:
        - Does not aggregate ledger rows into period totals.
        - Does not persist or lock anything.
    """

    def __init__(self, tolerance_gallons: NumberLike = DEFAULT_VARIANCE_TOLERANCE_GALLONS):
        self.tolerance_gallons = to_decimal(tolerance_gallons)

    def opening_balance(
        self,
        previous: SnapshotLink | None,
        configured: NumberLike | None = None,
    ) -> OpeningBalance:
        """Previous ending, else the configured organization balance, else zero."""
        if previous is not None:
            source = (
                OPENING_FROM_PHYSICAL
                if previous.physical_count_gallons is not None
                else OPENING_FROM_CALCULATED
            )
            return OpeningBalance(round_gallons(previous.ending_gallons), source)
        if configured is not None:
            return OpeningBalance(round_gallons(configured), OPENING_FROM_CONFIG)
        return OpeningBalance(round_gallons(ZERO), OPENING_NONE)

    def calculate_ending(
        self,
        opening: NumberLike,
        production: NumberLike,
        tax_paid_removals: NumberLike,
        other_removals: NumberLike,
    ) -> Decimal:
        return (
            round_gallons(opening)
            + round_gallons(production)
            - round_gallons(tax_paid_removals)
            - round_gallons(other_removals)
        )

    def physical_count_gallons(self, counts: Iterable[PhysicalCount]) -> Decimal | None:
        """Sum of counted liters in wine gallons; None when nothing was counted."""
        counts = list(counts)
        if not counts:
            return None
        liters = sum((c.physical_volume_liters for c in counts), ZERO)
        return round_gallons(liters_to_wine_gallons(liters))

    def compute_variance(
        self,
        physical_gallons: NumberLike | None,
        calculated_gallons: NumberLike,
        explanation: str | None = None,
        adjustments: Sequence[ReconciliationAdjustmentSpec] = (),
    ) -> VarianceResult:
        """
        Variance and whether it is reconciled.

        Adjustments close the gap when the book balance moved by their
        net effect lands within tolerance of the physical count.
        """
        tolerance = self.tolerance_gallons
        explained = bool(explanation and explanation.strip())
        net_gallons = round_gallons(adjustment_net_effect(adjustments) * WINE_GALLONS_PER_LITER)

        if physical_gallons is None:
            return VarianceResult(
                variance_gallons=None,
                tolerance_gallons=tolerance,
                within_tolerance=False,
                explained=explained,
                adjustment_net_gallons=net_gallons,
                closed_by_adjustments=False,
                is_reconciled=explained,
            )

        variance = to_decimal(physical_gallons) - to_decimal(calculated_gallons)
        within = abs(variance) <= tolerance
        closed = bool(adjustments) and abs(variance - net_gallons) <= tolerance
        return VarianceResult(
            variance_gallons=variance,
            tolerance_gallons=tolerance,
            within_tolerance=within,
            explained=explained,
            adjustment_net_gallons=net_gallons,
            closed_by_adjustments=closed,
            is_reconciled=within or explained or closed,
        )

    def inventory_audit(
        self,
        ttb_balance: NumberLike,
        bulk: NumberLike,
        packaged: NumberLike,
        removals: NumberLike,
        legacy: NumberLike,
    ) -> InventoryAudit:
        balance = round_gallons(ttb_balance)
        bulk_g = round_gallons(bulk)
        packaged_g = round_gallons(packaged)
        removals_g = round_gallons(removals)
        legacy_g = round_gallons(legacy)
        on_hand = bulk_g + packaged_g
        accounted = on_hand + removals_g + legacy_g
        return InventoryAudit(
            ttb_balance=balance,
            inventory_bulk=bulk_g,
            inventory_packaged=packaged_g,
            inventory_on_hand=on_hand,
            inventory_removals=removals_g,
            inventory_legacy=legacy_g,
            inventory_accounted_for=accounted,
            inventory_difference=balance - accounted,
        )

    @traced_engine(
        "ttb_reconciliation",
        "1.0",
        fingerprint_fields=("data",),
    )
    def build_snapshot(self, data: ReconciliationInput) -> ReconciliationResult:
        """Run every reconciliation step over one period's figures."""
        for adjustment in data.adjustments:
            validate_adjustment(adjustment)

        opening = self.opening_balance(data.previous, data.configured_opening_gallons)
        press = round_gallons(data.production_press_runs_gallons)
        juice = round_gallons(data.production_juice_purchases_gallons)
        production = press + juice
        tax_paid = round_gallons(data.tax_paid_removals_gallons)
        other = round_gallons(data.other_removals_gallons)

        calculated = self.calculate_ending(opening.gallons, production, tax_paid, other)
        physical = self.physical_count_gallons(data.counts)
        variance = self.compute_variance(
            physical, calculated, data.discrepancy_explanation, data.adjustments
        )

        ttb_balance = data.ttb_balance if data.ttb_balance is not None else calculated
        audit = self.inventory_audit(
            ttb_balance,
            data.inventory_bulk,
            data.inventory_packaged,
            data.inventory_removals,
            data.inventory_legacy,
        )

        lines = tuple(
            physical_count_line(c.book_volume_liters, c.physical_volume_liters)
            for c in data.counts
        )

        logger.info(
            "reconciliation_computed",
            extra={
                "period_start": data.period_start_date.isoformat(),
                "period_end": data.period_end_date.isoformat(),
                "opening_gallons": str(opening.gallons),
                "opening_source": opening.source,
                "calculated_ending_gallons": str(calculated),
                "physical_count_gallons": str(physical) if physical is not None else None,
                "variance_gallons": (
                    str(variance.variance_gallons)
                    if variance.variance_gallons is not None
                    else None
                ),
                "is_reconciled": variance.is_reconciled,
                "inventory_difference": str(audit.inventory_difference),
            },
        )

        return ReconciliationResult(
            reconciliation_date=data.reconciliation_date,
            period_start_date=data.period_start_date,
            period_end_date=data.period_end_date,
            previous_reconciliation_id=data.previous.id if data.previous else None,
            opening_balance_gallons=opening.gallons,
            opening_balance_source=opening.source,
            production_press_runs_gallons=press,
            production_juice_purchases_gallons=juice,
            production_total_gallons=production,
            tax_paid_removals_gallons=tax_paid,
            other_removals_gallons=other,
            calculated_ending_gallons=calculated,
            physical_count_gallons=physical,
            variance_gallons=variance.variance_gallons,
            is_reconciled=variance.is_reconciled,
            variance=variance,
            audit=audit,
            ttb_source_type=data.ttb_source_type,
            count_lines=lines,
        )
