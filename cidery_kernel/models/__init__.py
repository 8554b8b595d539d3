"""ORM models for the cidery compliance kernel."""

from cidery_kernel.models.ttb import (
    PERIOD_VALUE_FIELDS,
    PhysicalInventoryCount,
    ReconciliationAdjustment,
    TTBPeriodSnapshot,
    TTBReconciliationSnapshot,
)

__all__ = [
    "PERIOD_VALUE_FIELDS",
    "PhysicalInventoryCount",
    "ReconciliationAdjustment",
    "TTBPeriodSnapshot",
    "TTBReconciliationSnapshot",
]
