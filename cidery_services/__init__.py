"""
cidery_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure TTB engines
    (cidery_engines/) with database sessions, the active configuration
    and wall-clock time.  This is the **only** layer that may hold a
    session and a config together.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        cidery_services/ -> cidery_engines/  (allowed)
        cidery_services/ -> cidery_kernel/   (allowed)
        cidery_services/ -> cidery_config/   (allowed)
        cidery_engines/  -> cidery_services/ (FORBIDDEN)
        cidery_kernel/   -> cidery_services/ (FORBIDDEN)

Invariants enforced:
    - Layer isolation: cidery_kernel and cidery_engines must never import
      from this package.
    - Services flush; callers own the transaction.

Failure modes:
    - ImportError at startup if a service's dependency graph is broken.
"""

from cidery_kernel.logging_config import get_logger

logger = get_logger("services")

from cidery_services.period_snapshot_service import (
    BeginningInventory,
    PeriodSnapshotService,
    period_form_values,
)
from cidery_services.reconciliation_service import (
    ReconciliationService,
    snapshot_link,
)

__all__ = [
    "BeginningInventory",
    "PeriodSnapshotService",
    "ReconciliationService",
    "period_form_values",
    "snapshot_link",
]
