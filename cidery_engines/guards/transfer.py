"""
Transfer guard -- volume conservation across vessel-to-vessel moves.

Responsibility:
    Decide whether a transfer of liquid from a batch into a destination
    vessel may be committed, given a consistent read of current state.

Architecture position:
    Engines > Guards -- pure functions.  The caller owns the
    validate-then-write critical section (row lock on the vessel and
    batch rows); this module only decides accept/reject.

Invariants enforced:
    - ``0 < volume_transferred_l <= GuardLimits.max_volume_l``.
    - Source batch holds at least the transferred volume and is not
      completed or discarded.
    - Destination is usable for ``transfer_in`` and has headroom:
      ``current + transferred <= capacity``.
    - Source and destination vessels differ.
    - Source vessel, when given, is not under maintenance.
    - Transfer date is not in the future.
    - Reason and notes fit their length limits.

    Checks run in that order and the first failure is raised.
    ``apply_transfer`` additionally refuses to drain a source vessel
    below zero.

Failure modes:
    - TransferValidationError: volume, batch, capacity, self-transfer,
      date, text.
    - VesselStateValidationError: destination or source vessel unusable.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from cidery_engines.guards._messages import fmt
from cidery_engines.guards.limits import DEFAULT_LIMITS, GuardLimits
from cidery_engines.guards.volume_quantity import validate_positive_volume
from cidery_engines.tracer import traced_engine
from cidery_kernel.domain.clock import Clock, SystemClock
from cidery_kernel.domain.entities import Batch, BatchStatus, Transfer, Vessel, VesselStatus
from cidery_kernel.domain.values import NumberLike, as_utc, is_after, iso, to_decimal
from cidery_kernel.exceptions import (
    TransferValidationError,
    ValidationError,
    VesselStateValidationError,
    VolumeValidationError,
)
from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.guards.transfer")


def validate_vessel_availability(vessel: Vessel) -> None:
    """Destination must not be under maintenance or being cleaned."""
    details = {"vessel_id": vessel.id, "vessel_name": vessel.name, "status": vessel.status.value}
    if vessel.status == VesselStatus.MAINTENANCE:
        raise VesselStateValidationError(
            f"Vessel {vessel.name} is under maintenance",
            f'Cannot transfer to vessel "{vessel.name}" - it\'s currently under maintenance. '
            "Please select a different vessel or wait until maintenance is complete.",
            details,
        )
    if vessel.status == VesselStatus.CLEANING:
        raise VesselStateValidationError(
            f"Vessel {vessel.name} is being cleaned",
            f'Cannot transfer to vessel "{vessel.name}" - it\'s currently being cleaned. '
            "Please wait until cleaning is complete or select another vessel.",
            details,
        )


def validate_vessel_capacity(
    vessel: Vessel,
    transfer_volume: NumberLike,
    current_volume_l: NumberLike = 0,
) -> None:
    volume = to_decimal(transfer_volume)
    current = to_decimal(current_volume_l)
    total_after = current + volume
    if total_after > vessel.capacity_l:
        available = vessel.capacity_l - current
        raise TransferValidationError(
            f"Transfer volume {fmt(volume)}L exceeds vessel capacity",
            f'Cannot transfer {fmt(volume)}L to vessel "{vessel.name}". The vessel can only '
            f"hold {fmt(available)}L more (current: {fmt(current)}L, capacity: "
            f"{fmt(vessel.capacity_l)}L). Please reduce the transfer volume or select a "
            "larger vessel.",
            {
                "vessel_id": vessel.id,
                "vessel_name": vessel.name,
                "vessel_capacity_l": vessel.capacity_l,
                "current_volume_l": current,
                "transfer_volume_l": volume,
                "available_capacity_l": available,
                "excess_volume_l": total_after - vessel.capacity_l,
            },
        )


def validate_batch_volume(batch: Batch, transfer_volume: NumberLike) -> None:
    """Batch must hold the volume and still be open."""
    volume = to_decimal(transfer_volume)
    if volume > batch.current_volume_l:
        raise TransferValidationError(
            f"Transfer volume {fmt(volume)}L exceeds batch volume {fmt(batch.current_volume_l)}L",
            f'Cannot transfer {fmt(volume)}L from batch "{batch.batch_number}" - it only '
            f"contains {fmt(batch.current_volume_l)}L. Please reduce the transfer volume to "
            f"{fmt(batch.current_volume_l)}L or less.",
            {
                "batch_id": batch.id,
                "batch_number": batch.batch_number,
                "batch_volume_l": batch.current_volume_l,
                "transfer_volume_l": volume,
                "shortfall_l": volume - batch.current_volume_l,
            },
        )

    details = {"batch_id": batch.id, "batch_number": batch.batch_number, "status": batch.status.value}
    if batch.status == BatchStatus.COMPLETED:
        raise TransferValidationError(
            "Cannot transfer from completed batch",
            f'Batch "{batch.batch_number}" is marked as completed and cannot be transferred. '
            "If you need to make changes, please update the batch status first.",
            details,
        )
    if batch.status == BatchStatus.DISCARDED:
        raise TransferValidationError(
            "Cannot transfer from discarded batch",
            f'Batch "{batch.batch_number}" is discarded and cannot be transferred.',
            details,
        )


def validate_not_self_transfer(from_vessel_id: str | None, to_vessel_id: str) -> None:
    if from_vessel_id and from_vessel_id == to_vessel_id:
        raise TransferValidationError(
            "Cannot transfer to same vessel",
            "Source and destination vessels cannot be the same. "
            "Please select a different destination vessel.",
            {"from_vessel_id": from_vessel_id, "to_vessel_id": to_vessel_id},
        )


def validate_transfer_date(
    transfer_date: date | datetime,
    clock: Clock | None = None,
) -> None:
    now = (clock or SystemClock()).now()
    if is_after(transfer_date, now):
        raise TransferValidationError(
            f"Transfer date cannot be in the future: {iso(transfer_date)}",
            "Transfer date cannot be in the future. "
            "Please select today's date or an earlier date.",
            {"transfer_date": iso(transfer_date), "current_date": as_utc(now).isoformat()},
        )


def validate_transfer_volume(volume: NumberLike, limits: GuardLimits = DEFAULT_LIMITS) -> None:
    """Volume must be finite, > 0 and within ``limits.max_volume_l``; reported as a transfer error."""
    try:
        validate_positive_volume(volume, "Transfer volume", "transfer", limits)
    except VolumeValidationError as exc:
        raise TransferValidationError(exc.message, exc.user_message, exc.details) from exc


def _validate_text_length(value: str | None, label: str, key: str, max_length: int) -> None:
    if value is not None and len(value) > max_length:
        raise TransferValidationError(
            f"{label} exceeds {max_length} characters: {len(value)}",
            f"{label} cannot exceed {max_length} characters. Please shorten your entry.",
            {key: len(value), "max_length": max_length},
        )


def validate_source_volume(from_vessel: Vessel, transfer_volume: NumberLike) -> None:
    """Source vessel must physically hold the volume being drawn from it."""
    volume = to_decimal(transfer_volume)
    if volume > from_vessel.current_volume_l:
        raise TransferValidationError(
            f"Transfer volume {fmt(volume)}L exceeds source vessel volume "
            f"{fmt(from_vessel.current_volume_l)}L",
            f'Cannot transfer {fmt(volume)}L out of vessel "{from_vessel.name}" - it only '
            f"holds {fmt(from_vessel.current_volume_l)}L. Please check the vessel's recorded "
            "volume before transferring.",
            {
                "vessel_id": from_vessel.id,
                "vessel_name": from_vessel.name,
                "vessel_volume_l": from_vessel.current_volume_l,
                "transfer_volume_l": volume,
                "shortfall_l": volume - from_vessel.current_volume_l,
            },
        )


@traced_engine(
    "transfer_guard",
    "1.0",
    fingerprint_fields=("transfer", "batch", "to_vessel", "from_vessel", "to_vessel_current_volume"),
)
def validate_transfer(
    transfer: Transfer,
    batch: Batch,
    to_vessel: Vessel,
    from_vessel: Vessel | None = None,
    to_vessel_current_volume: NumberLike = 0,
    clock: Clock | None = None,
    limits: GuardLimits = DEFAULT_LIMITS,
) -> None:
    """
    Run every transfer check in order; raise on the first violation.

    The transfer date is compared with ``clock`` (system clock when omitted).
    """
    volume = transfer.volume_transferred_l
    try:
        validate_transfer_volume(volume, limits)
        validate_batch_volume(batch, volume)
        validate_vessel_availability(to_vessel)
        validate_vessel_capacity(to_vessel, volume, to_vessel_current_volume)
        validate_not_self_transfer(transfer.from_vessel_id, transfer.to_vessel_id)

        if from_vessel is not None and from_vessel.status == VesselStatus.MAINTENANCE:
            raise VesselStateValidationError(
                f"Source vessel {from_vessel.name} is under maintenance",
                f'Cannot transfer from vessel "{from_vessel.name}" - it\'s currently under '
                "maintenance.",
                {
                    "vessel_id": from_vessel.id,
                    "vessel_name": from_vessel.name,
                    "status": from_vessel.status.value,
                },
            )

        validate_transfer_date(transfer.transfer_date, clock)
        _validate_text_length(transfer.reason, "Reason", "reason", limits.reason_max_length)
        _validate_text_length(transfer.notes, "Notes", "notes", limits.notes_max_length)
    except ValidationError as exc:
        logger.info(
            "transfer_rejected",
            extra={
                "batch_id": batch.id,
                "to_vessel_id": transfer.to_vessel_id,
                "volume_l": str(volume),
                "error_code": exc.code,
            },
        )
        raise


def apply_transfer(
    transfer: Transfer,
    batch: Batch,
    to_vessel: Vessel,
    from_vessel: Vessel | None = None,
    clock: Clock | None = None,
    limits: GuardLimits = DEFAULT_LIMITS,
) -> tuple[Batch, Vessel, Vessel | None]:
    """
    Validate a transfer and return the post-transfer records.

    The destination's current volume is read from ``to_vessel``.  A
    source vessel holding less than the transferred volume is rejected
    rather than clamped.  Inputs are not mutated; the caller persists the
    returned records inside the same locked section it validated in.
    """
    validate_transfer(
        transfer=transfer,
        batch=batch,
        to_vessel=to_vessel,
        from_vessel=from_vessel,
        to_vessel_current_volume=to_vessel.current_volume_l,
        clock=clock,
        limits=limits,
    )
    volume: Decimal = transfer.volume_transferred_l
    if from_vessel is not None:
        validate_source_volume(from_vessel, volume)
    new_batch = batch.with_volume(batch.current_volume_l - volume)
    new_to = to_vessel.with_volume(to_vessel.current_volume_l + volume)
    new_from = None
    if from_vessel is not None:
        new_from = from_vessel.with_volume(from_vessel.current_volume_l - volume)

    logger.info(
        "transfer_applied",
        extra={
            "batch_id": batch.id,
            "to_vessel_id": to_vessel.id,
            "from_vessel_id": from_vessel.id if from_vessel else None,
            "volume_l": str(volume),
            "batch_volume_after_l": str(new_batch.current_volume_l),
            "to_vessel_volume_after_l": str(new_to.current_volume_l),
        },
    )
    return new_batch, new_to, new_from
