"""
Domain records consumed by the guards and engines.

Responsibility:
    Plain, immutable data shapes for vessels, batches, transfers,
    packaging runs, and measurements, plus the status enums that the
    vessel state machine and the batch lifecycle are expressed in.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  Persistence (ORM rows,
    API payloads) is mapped into these records by the caller before
    any guard is invoked.

Invariants enforced:
    - Numeric fields are coerced to ``Decimal`` at construction.
    - Records are frozen; "applying" a transfer returns new records.

    Physical invariants (``current_volume_l <= capacity_l`` etc.) are NOT
    enforced here.  A record may describe an invalid state so that the
    guards can reject it with a typed, user-facing error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from cidery_kernel.domain.values import (
    ZERO,
    NumberLike,
    to_decimal,
    to_optional_decimal,
)


class VesselStatus(str, Enum):
    """Operational status of a vessel."""

    AVAILABLE = "available"
    IN_USE = "in_use"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"


class VesselType(str, Enum):
    FERMENTER = "fermenter"
    CONDITIONING_TANK = "conditioning_tank"
    BRIGHT_TANK = "bright_tank"
    STORAGE = "storage"


class VesselOperation(str, Enum):
    """Operations gated by vessel usability."""

    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    MEASUREMENT = "measurement"
    PACKAGING = "packaging"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"


class VesselPurpose(str, Enum):
    """Production purposes a vessel type may be suited to."""

    FERMENTATION = "fermentation"
    CONDITIONING = "conditioning"
    PACKAGING = "packaging"
    STORAGE = "storage"


class BatchStatus(str, Enum):
    FERMENTATION = "fermentation"
    AGING = "aging"
    CONDITIONING = "conditioning"
    COMPLETED = "completed"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class Vessel:
    """A tank, barrel, or other container that holds liquid."""

    id: str
    name: str
    capacity_l: Decimal
    status: VesselStatus = VesselStatus.AVAILABLE
    current_volume_l: Decimal = ZERO
    vessel_type: VesselType = VesselType.FERMENTER

    def __post_init__(self) -> None:
        object.__setattr__(self, "capacity_l", to_decimal(self.capacity_l))
        object.__setattr__(self, "current_volume_l", to_decimal(self.current_volume_l))
        object.__setattr__(self, "status", VesselStatus(self.status))
        object.__setattr__(self, "vessel_type", VesselType(self.vessel_type))

    @property
    def headroom_l(self) -> Decimal:
        return self.capacity_l - self.current_volume_l

    def with_volume(self, volume_l: NumberLike) -> Vessel:
        return Vessel(
            id=self.id,
            name=self.name,
            capacity_l=self.capacity_l,
            status=self.status,
            current_volume_l=to_decimal(volume_l),
            vessel_type=self.vessel_type,
        )


@dataclass(frozen=True)
class Batch:
    """
    A lot of cider tracked from pressing through packaging.

    ``start_date``, ``created_at`` and ``origin_transfer_date`` feed the
    earliest-valid-date floor; ``origin_transfer_date`` is set only for
    batches created by a transfer split.
    """

    id: str
    batch_number: str
    current_volume_l: Decimal
    status: BatchStatus = BatchStatus.FERMENTATION
    vessel_id: str | None = None
    start_date: date | datetime | None = None
    created_at: date | datetime | None = None
    origin_transfer_date: date | datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "current_volume_l", to_decimal(self.current_volume_l))
        object.__setattr__(self, "status", BatchStatus(self.status))

    @property
    def is_closed(self) -> bool:
        """Completed and discarded batches cannot be transferred or packaged."""
        return self.status in (BatchStatus.COMPLETED, BatchStatus.DISCARDED)

    def with_volume(self, volume_l: NumberLike) -> Batch:
        return Batch(
            id=self.id,
            batch_number=self.batch_number,
            current_volume_l=to_decimal(volume_l),
            status=self.status,
            vessel_id=self.vessel_id,
            start_date=self.start_date,
            created_at=self.created_at,
            origin_transfer_date=self.origin_transfer_date,
        )


@dataclass(frozen=True)
class Transfer:
    """One-time, atomic movement of liquid between vessels."""

    batch_id: str
    to_vessel_id: str
    volume_transferred_l: Decimal
    transfer_date: date | datetime
    from_vessel_id: str | None = None
    reason: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "volume_transferred_l", to_decimal(self.volume_transferred_l)
        )


@dataclass(frozen=True)
class PackagingRun:
    """A bottling/canning run consuming volume from a batch."""

    batch_id: str
    package_date: date | datetime
    volume_packaged_l: Decimal
    bottle_size: str
    bottle_count: int
    abv_at_packaging: Decimal | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "volume_packaged_l", to_decimal(self.volume_packaged_l))
        object.__setattr__(self, "abv_at_packaging", to_optional_decimal(self.abv_at_packaging))


@dataclass(frozen=True)
class PriorPackagingRun:
    id: str
    volume_packaged_l: Decimal
    package_date: date | datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "volume_packaged_l", to_decimal(self.volume_packaged_l))


@dataclass(frozen=True)
class ExistingPackaging:
    """Volume already packaged from a batch by earlier runs."""

    total_volume_packaged_l: Decimal = ZERO
    runs: tuple[PriorPackagingRun, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "total_volume_packaged_l", to_decimal(self.total_volume_packaged_l)
        )
        object.__setattr__(self, "runs", tuple(self.runs))

    @classmethod
    def from_runs(cls, runs: list[PriorPackagingRun]) -> ExistingPackaging:
        total = sum((r.volume_packaged_l for r in runs), ZERO)
        return cls(total_volume_packaged_l=total, runs=tuple(runs))


@dataclass(frozen=True)
class Measurement:
    """A set of readings taken from a batch at one moment; every reading is optional."""

    batch_id: str
    measurement_date: date | datetime
    specific_gravity: Decimal | None = None
    abv: Decimal | None = None
    ph: Decimal | None = None
    total_acidity: Decimal | None = None
    temperature: Decimal | None = None
    volume_l: Decimal | None = None
    notes: str | None = None
    taken_by: str | None = None

    def __post_init__(self) -> None:
        for name in ("specific_gravity", "abv", "ph", "total_acidity", "temperature", "volume_l"):
            object.__setattr__(self, name, to_optional_decimal(getattr(self, name)))


# TTB reporting vocabulary


class TaxClass(str, Enum):
    """TTB tax classes for fermented beverages, in Form 5120.17 column order."""

    HARD_CIDER = "hard_cider"
    WINE_UNDER_16 = "wine_under_16"
    WINE_16_TO_21 = "wine_16_to_21"
    WINE_21_TO_24 = "wine_21_to_24"
    SPARKLING_WINE = "sparkling_wine"
    CARBONATED_WINE = "carbonated_wine"


class PeriodType(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class SnapshotStatus(str, Enum):
    """Snapshot lifecycle; finalization is one-way."""

    DRAFT = "draft"
    REVIEW = "review"
    FINALIZED = "finalized"


class MeasurementMethod(str, Enum):
    DIPSTICK = "dipstick"
    SIGHT_GLASS = "sight_glass"
    FLOWMETER = "flowmeter"
    ESTIMATED = "estimated"
    WEIGHED = "weighed"


class AdjustmentReason(str, Enum):
    EVAPORATION = "evaporation"
    MEASUREMENT_ERROR = "measurement_error"
    SAMPLING = "sampling"
    CONTAMINATION = "contamination"
    SPILLAGE = "spillage"
    THEFT = "theft"
    CORRECTION_UP = "correction_up"
    CORRECTION_DOWN = "correction_down"
    OTHER = "other"
