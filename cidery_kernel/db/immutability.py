"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A finalized TTB snapshot is what the cidery reported to the government, and
its ending balance is the next period's opening balance.  Counts and
adjustments are the audit trail behind a reconciliation.  None of them may
change after the fact: corrections are made by recording a NEW adjustment.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that check these rules:

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                     | When Immutable               | Allowed changes
---------------------------|------------------------------|---------------------------
TTBPeriodSnapshot          | After status = finalized     | updated_at, updated_by_id
TTBReconciliationSnapshot  | After status = finalized     | updated_at, updated_by_id
PhysicalInventoryCount     | ALWAYS (from creation)       | none
ReconciliationAdjustment   | ALWAYS (from creation)       | none

The finalize transition itself (draft/review -> finalized) is allowed; any
change AFTER that transition is blocked.  "Was finalized" is read from
SQLAlchemy's attribute history.

===============================================================================
USAGE
===============================================================================

    from cidery_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from cidery_kernel.domain.entities import SnapshotStatus
from cidery_kernel.exceptions import ImmutabilityViolationError
from cidery_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _is_finalized(value) -> bool:
    if value is None:
        return False
    return SnapshotStatus(value) == SnapshotStatus.FINALIZED


def _first_changed_field(target, allowed: frozenset[str] = frozenset()) -> str | None:
    """Name of the first column attribute with pending changes, skipping ``allowed``."""
    insp = inspect(target)
    for attr in insp.mapper.column_attrs:
        if attr.key in allowed:
            continue
        if insp.attrs[attr.key].history.has_changes():
            return attr.key
    return None


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _was_finalized_before(target) -> bool:
    """
    True when the row was already finalized before this flush.

        1. status changing FROM finalized -> anything: was finalized
        2. status unchanged and finalized: was finalized
        3. status changing TO finalized: this IS the finalization
    """
    status_history = get_history(target, "status")
    if status_history.deleted:
        return _is_finalized(status_history.deleted[0])
    if not status_history.added:
        return _is_finalized(target.status)
    return False


def _check_snapshot_immutability(mapper, connection, target):
    """Block changes to a finalized period or reconciliation snapshot."""
    if not _was_finalized_before(target):
        return

    field = _first_changed_field(target, AUDIT_METADATA_FIELDS)
    if field is not None:
        entity_type = type(target).__name__
        _block(
            entity_type,
            target,
            "UPDATE",
            f"Cannot modify field '{field}' on finalized {entity_type}",
            field,
        )


def _check_snapshot_delete(mapper, connection, target):
    if _is_finalized(target.status):
        entity_type = type(target).__name__
        _block(entity_type, target, "DELETE", f"Finalized {entity_type} cannot be deleted")


def _check_append_only_update(mapper, connection, target):
    """Counts and adjustments never change once written."""
    field = _first_changed_field(target)
    if field is not None:
        entity_type = type(target).__name__
        _block(
            entity_type,
            target,
            "UPDATE",
            f"{entity_type} records are append-only; record a new adjustment instead",
            field,
        )


def _check_append_only_delete(mapper, connection, target):
    entity_type = type(target).__name__
    _block(entity_type, target, "DELETE", f"{entity_type} records cannot be deleted")


def _listeners():
    from cidery_kernel.models.ttb import (
        PhysicalInventoryCount,
        ReconciliationAdjustment,
        TTBPeriodSnapshot,
        TTBReconciliationSnapshot,
    )

    return [
        (TTBPeriodSnapshot, "before_update", _check_snapshot_immutability),
        (TTBPeriodSnapshot, "before_delete", _check_snapshot_delete),
        (TTBReconciliationSnapshot, "before_update", _check_snapshot_immutability),
        (TTBReconciliationSnapshot, "before_delete", _check_snapshot_delete),
        (PhysicalInventoryCount, "before_update", _check_append_only_update),
        (PhysicalInventoryCount, "before_delete", _check_append_only_delete),
        (ReconciliationAdjustment, "before_update", _check_append_only_update),
        (ReconciliationAdjustment, "before_delete", _check_append_only_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; a listener already registered is skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring one that is not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate immutability on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
