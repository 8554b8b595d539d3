"""
Module: cidery_engines
Responsibility:
    Pure calculation and validation layer: the production guards that
    decide whether a mutation may be written, and the TTB engines that
    turn aggregated ledger figures into period forms and reconciliation
    snapshots.

Architecture position:
    Engines -- pure, zero I/O.
    May only import cidery_kernel.domain, cidery_kernel.exceptions and
    cidery_kernel.logging_config (and sibling engine modules).
    MUST NOT import cidery_kernel.services or cidery_kernel.models.

Invariants enforced:
    - Purity: engines never call ``datetime.now()`` or ``date.today()``;
      time comes from an injected Clock.
    - Decimal-only arithmetic for volumes, gallons, and money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Guard and engine entrypoints are traced via ``@traced_engine`` (see
    ``cidery_engines.tracer``), emitting CIDERY_ENGINE_TRACE records with
    engine name, version, input fingerprint, outcome and duration.

Usage:
    from cidery_engines.guards import validate_transfer, validate_packaging
    from cidery_engines.ttb import ReconciliationEngine, calculate_hard_cider_tax
"""

from cidery_kernel.logging_config import get_logger

logger = get_logger("engines")
