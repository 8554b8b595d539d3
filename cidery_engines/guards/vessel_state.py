"""
Vessel state machine and usability gate.

Responsibility:
    Enforce the legal status transitions for vessels, the content rules
    that accompany them, which operations each status blocks, and which
    production purposes each vessel type suits.

Architecture position:
    Engines > Guards -- pure functions over ``Vessel`` records.

Invariants enforced:
    - Only transitions listed in ``VALID_TRANSITIONS`` are accepted;
      self-transitions are rejected.
    - A vessel holding liquid cannot enter cleaning or maintenance.
    - An in-use vessel with active batches cannot become available.
    - Maintenance blocks every operation except starting maintenance;
      cleaning blocks filling, measuring, and packaging.

Failure modes:
    - VesselStateValidationError for every violation.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from cidery_engines.guards._messages import fmt
from cidery_engines.tracer import traced_engine
from cidery_kernel.domain.entities import (
    Vessel,
    VesselOperation,
    VesselPurpose,
    VesselStatus,
    VesselType,
)
from cidery_kernel.exceptions import VesselStateValidationError
from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.guards.vessel_state")

_S = VesselStatus

VALID_TRANSITIONS: Mapping[VesselStatus, frozenset[VesselStatus]] = MappingProxyType({
    _S.AVAILABLE: frozenset({_S.IN_USE, _S.CLEANING, _S.MAINTENANCE}),
    _S.IN_USE: frozenset({_S.AVAILABLE, _S.CLEANING, _S.MAINTENANCE}),
    _S.CLEANING: frozenset({_S.AVAILABLE, _S.MAINTENANCE}),
    _S.MAINTENANCE: frozenset({_S.AVAILABLE, _S.CLEANING}),
})

# Statuses that block each operation, with the phrase used in user messages.
_BLOCKING: Mapping[VesselOperation, tuple[VesselStatus, ...]] = MappingProxyType({
    VesselOperation.TRANSFER_IN: (_S.MAINTENANCE, _S.CLEANING),
    VesselOperation.TRANSFER_OUT: (_S.MAINTENANCE,),
    VesselOperation.MEASUREMENT: (_S.MAINTENANCE, _S.CLEANING),
    VesselOperation.PACKAGING: (_S.MAINTENANCE, _S.CLEANING),
    VesselOperation.CLEANING: (_S.MAINTENANCE,),
    VesselOperation.MAINTENANCE: (),
})

_ACTION_PHRASE: Mapping[VesselOperation, str] = MappingProxyType({
    VesselOperation.TRANSFER_IN: "transfer product into",
    VesselOperation.TRANSFER_OUT: "transfer product from",
    VesselOperation.MEASUREMENT: "take measurements from",
    VesselOperation.PACKAGING: "package product from",
    VesselOperation.CLEANING: "start cleaning",
})

_STATUS_PHRASE: Mapping[VesselStatus, str] = MappingProxyType({
    _S.MAINTENANCE: "under maintenance",
    _S.CLEANING: "being cleaned",
})

TYPE_PURPOSES: Mapping[VesselType, tuple[VesselPurpose, ...]] = MappingProxyType({
    VesselType.FERMENTER: (VesselPurpose.FERMENTATION, VesselPurpose.STORAGE),
    VesselType.CONDITIONING_TANK: (VesselPurpose.CONDITIONING, VesselPurpose.STORAGE),
    VesselType.BRIGHT_TANK: (VesselPurpose.PACKAGING, VesselPurpose.STORAGE),
    VesselType.STORAGE: (VesselPurpose.STORAGE,),
})


def allowed_transitions(status: VesselStatus | str) -> tuple[VesselStatus, ...]:
    """Legal next statuses, in declaration order."""
    allowed = VALID_TRANSITIONS[VesselStatus(status)]
    return tuple(s for s in VesselStatus if s in allowed)


def _vessel_details(vessel: Vessel, **extra) -> dict:
    return {"vessel_id": vessel.id, "vessel_name": vessel.name, **extra}


def validate_state_transition(
    vessel: Vessel,
    new_status: VesselStatus | str,
    reason: str | None = None,
) -> None:
    current = vessel.status
    target = VesselStatus(new_status)

    if current == target:
        raise VesselStateValidationError(
            f"Vessel {vessel.name} is already in {target.value} status",
            f'Vessel "{vessel.name}" is already in "{target.value}" status. No change needed.',
            _vessel_details(vessel, current_status=current.value, new_status=target.value),
        )

    if target not in VALID_TRANSITIONS[current]:
        allowed = [s.value for s in allowed_transitions(current)]
        raise VesselStateValidationError(
            f"Invalid state transition from {current.value} to {target.value}",
            f'Cannot change vessel "{vessel.name}" from "{current.value}" to '
            f'"{target.value}". Valid transitions from "{current.value}" are: '
            f"{', '.join(allowed)}.",
            _vessel_details(
                vessel,
                current_status=current.value,
                new_status=target.value,
                allowed_transitions=allowed,
                reason=reason,
            ),
        )


def validate_transition_with_content(
    vessel: Vessel,
    new_status: VesselStatus | str,
    has_batches: bool = False,
) -> None:
    target = VesselStatus(new_status)
    volume = vessel.current_volume_l

    if target in (_S.CLEANING, _S.MAINTENANCE) and volume > 0:
        noun = "clean" if target == _S.CLEANING else "perform maintenance on"
        raise VesselStateValidationError(
            f"Cannot {noun} vessel with {fmt(volume)}L content",
            f'Cannot set vessel "{vessel.name}" to {target.value} status - it contains '
            f"{fmt(volume)}L of product. Please empty the vessel first or transfer the "
            "contents to another vessel.",
            _vessel_details(
                vessel,
                current_status=vessel.status.value,
                new_status=target.value,
                current_volume_l=volume,
            ),
        )

    if target == _S.AVAILABLE and vessel.status == _S.IN_USE and has_batches:
        raise VesselStateValidationError(
            "Cannot set vessel to available while batches are active",
            f'Cannot set vessel "{vessel.name}" to available status - it has active '
            "batches. Please complete or transfer the batches first.",
            _vessel_details(
                vessel,
                current_status=vessel.status.value,
                new_status=target.value,
                has_batches=has_batches,
            ),
        )


def validate_vessel_usability(vessel: Vessel, operation: VesselOperation | str) -> None:
    """Reject an operation the vessel's current status does not permit."""
    try:
        op = VesselOperation(operation)
    except ValueError:
        raise VesselStateValidationError(
            f"Unknown operation: {operation}",
            f"Unknown vessel operation requested: {operation}",
            _vessel_details(vessel, status=vessel.status.value, operation=str(operation)),
        ) from None

    if vessel.status not in _BLOCKING[op]:
        return

    state = _STATUS_PHRASE[vessel.status]
    action = _ACTION_PHRASE[op]
    target = f'"{vessel.name}"'
    if op == VesselOperation.CLEANING:
        user_message = (
            f"Cannot start cleaning vessel {target} - it's currently {state}. "
            "Complete maintenance first."
        )
    else:
        user_message = f"Cannot {action} vessel {target} - it's currently {state}."
        if op == VesselOperation.TRANSFER_IN:
            user_message += " Please select a different vessel."

    raise VesselStateValidationError(
        f"Cannot {op.value.replace('_', ' ')} vessel {vessel.name}: {state}",
        user_message,
        _vessel_details(vessel, status=vessel.status.value, operation=op.value),
    )


def validate_vessel_type_for_operation(
    vessel: Vessel,
    purpose: VesselPurpose | str,
    strict: bool = True,
) -> bool:
    """
    Check that the vessel type suits a production purpose.

    Returns True when suitable.  On mismatch raises when ``strict``;
    otherwise logs ``vessel_type_mismatch`` and returns False so the
    caller can allow an operator override.
    """
    wanted = VesselPurpose(purpose)
    allowed = TYPE_PURPOSES[vessel.vessel_type]
    if wanted in allowed:
        return True

    type_label = vessel.vessel_type.value.replace("_", " ")
    details = _vessel_details(
        vessel,
        vessel_type=vessel.vessel_type.value,
        operation=wanted.value,
        allowed_operations=[p.value for p in allowed],
    )
    if not strict:
        logger.warning("vessel_type_mismatch", extra=details)
        return False

    raise VesselStateValidationError(
        f"Vessel type {vessel.vessel_type.value} not suitable for {wanted.value}",
        f'Vessel "{vessel.name}" is a {type_label} and is not typically used for '
        f"{wanted.value}. Consider using a more appropriate vessel type for optimal results.",
        details,
    )


def validate_vessel_shape(vessel: Vessel) -> None:
    """Capacity must be positive and the current volume within 0..capacity."""
    capacity = vessel.capacity_l
    volume = vessel.current_volume_l
    if not capacity.is_finite() or capacity <= 0:
        raise VesselStateValidationError(
            f"Vessel {vessel.name} capacity must be positive: {capacity}",
            f'Vessel "{vessel.name}" must have a capacity greater than 0L.',
            _vessel_details(vessel, capacity_l=capacity),
        )
    if not volume.is_finite() or volume < 0:
        raise VesselStateValidationError(
            f"Vessel {vessel.name} current volume cannot be negative: {volume}",
            f'Vessel "{vessel.name}" cannot hold a negative volume.',
            _vessel_details(vessel, current_volume_l=volume),
        )
    if volume > capacity:
        raise VesselStateValidationError(
            f"Vessel {vessel.name} volume {fmt(volume)}L exceeds capacity {fmt(capacity)}L",
            f'Current volume ({fmt(volume)}L) of vessel "{vessel.name}" cannot exceed '
            f"its capacity ({fmt(capacity)}L).",
            _vessel_details(vessel, current_volume_l=volume, capacity_l=capacity),
        )


@traced_engine("vessel_state_guard", "1.0", fingerprint_fields=("vessel", "new_status", "operation"))
def validate_vessel_state(
    vessel: Vessel,
    new_status: VesselStatus | str | None = None,
    operation: VesselOperation | str | None = None,
    has_batches: bool = False,
    reason: str | None = None,
) -> None:
    """
    Combined vessel check used by status-change and operation handlers.

    Transition and content rules run when ``new_status`` differs from the
    current status; the usability gate runs when ``operation`` is given.
    """
    if new_status is not None and VesselStatus(new_status) != vessel.status:
        validate_state_transition(vessel, new_status, reason)
        validate_transition_with_content(vessel, new_status, has_batches)
    if operation is not None:
        validate_vessel_usability(vessel, operation)
