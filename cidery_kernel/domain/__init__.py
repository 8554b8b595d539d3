"""
Pure domain layer.

Immutable records, enums, and value helpers with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time is read only through an injected Clock.
"""

from cidery_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from cidery_kernel.domain.entities import (
    AdjustmentReason,
    Batch,
    BatchStatus,
    ExistingPackaging,
    Measurement,
    MeasurementMethod,
    PackagingRun,
    PeriodType,
    PriorPackagingRun,
    SnapshotStatus,
    TaxClass,
    Transfer,
    Vessel,
    VesselOperation,
    VesselPurpose,
    VesselStatus,
    VesselType,
)
from cidery_kernel.domain.opening_balances import OpeningBalances
from cidery_kernel.domain.values import to_decimal

__all__ = [
    "AdjustmentReason",
    "Batch",
    "BatchStatus",
    "Clock",
    "DeterministicClock",
    "ExistingPackaging",
    "Measurement",
    "MeasurementMethod",
    "OpeningBalances",
    "PackagingRun",
    "PeriodType",
    "PriorPackagingRun",
    "SnapshotStatus",
    "SystemClock",
    "TaxClass",
    "Transfer",
    "Vessel",
    "VesselOperation",
    "VesselPurpose",
    "VesselStatus",
    "VesselType",
    "to_decimal",
]
