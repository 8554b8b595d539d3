"""
Typed Exception Hierarchy for the Cidery Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Production records move real liquid through real vessels. When an operation
is rejected, the caller needs three things without parsing strings:

  1. A machine-readable ``code`` to branch on (API responses, UI field errors)
  2. A ``user_message`` that can be shown verbatim to the operator
  3. A structured ``details`` dict naming the offending values and bounds

Example - WRONG way to handle errors:
    try:
        validate_transfer(...)
    except Exception as e:
        if "capacity" in str(e):  # FRAGILE - message might change
            highlight_capacity_field()

Example - RIGHT way (what this module enables):
    try:
        validate_transfer(...)
    except TransferValidationError as e:
        return {"code": e.code, "message": e.user_message, **e.details}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from CideryKernelError:

    CideryKernelError (base)
    |
    +-- ValidationError
    |   +-- TransferValidationError
    |   +-- VolumeValidationError
    |   +-- QuantityValidationError
    |   +-- PackagingValidationError
    |   +-- MeasurementValidationError
    |   +-- VesselStateValidationError
    |   +-- PermissionValidationError
    |   +-- DateSequenceValidationError
    |
    +-- SnapshotError
    |   +-- SnapshotNotFoundError
    |   +-- SnapshotAlreadyFinalizedError
    |   +-- SnapshotImmutableError
    |   +-- InvalidSnapshotTransitionError
    |   +-- UnexplainedVarianceError
    |   +-- SnapshotChainError
    |       +-- SnapshotChainGapError
    |       +-- SnapshotChainOverlapError
    |       +-- SnapshotChainCycleError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- TaxRateError
    |   +-- TaxRateNotFoundError
    |   +-- TaxClassNotRatedError
    |
    +-- InvalidPeriodError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                            | When Raised
-------------|---------------------------------|-------------------------------------
Validation   | TRANSFER_VALIDATION_ERROR       | Transfer volume/capacity/self-transfer
             | VOLUME_VALIDATION_ERROR         | Volume not finite, <= 0, or too large
             | QUANTITY_VALIDATION_ERROR       | Quantity/count/price/percentage bounds
             | PACKAGING_VALIDATION_ERROR      | Batch not ready, overrun, bottle math
             | MEASUREMENT_VALIDATION_ERROR    | Reading out of range, future date
             | VESSEL_STATE_VALIDATION_ERROR   | Illegal transition, vessel unusable
             | PERMISSION_VALIDATION_ERROR     | Reserved for caller-side RBAC
             | DATE_SEQUENCE_VALIDATION_ERROR  | Activity before batch start, phases
-------------|---------------------------------|-------------------------------------
Snapshot     | SNAPSHOT_NOT_FOUND              | No snapshot with that id
             | SNAPSHOT_ALREADY_FINALIZED      | Second finalize attempt
             | SNAPSHOT_IMMUTABLE              | Saving over a finalized snapshot
             | INVALID_SNAPSHOT_TRANSITION     | e.g. finalized -> draft
             | UNEXPLAINED_VARIANCE            | Finalize with unexplained variance
             | SNAPSHOT_CHAIN_GAP              | Days missing between snapshots
             | SNAPSHOT_CHAIN_OVERLAP          | Snapshot periods overlap
             | SNAPSHOT_CHAIN_CYCLE            | previous_reconciliation_id loops
-------------|---------------------------------|-------------------------------------
Immutability | IMMUTABILITY_VIOLATION          | Modifying an append-only record
-------------|---------------------------------|-------------------------------------
Tax          | TAX_RATE_NOT_FOUND              | No rate table effective on date
             | TAX_CLASS_NOT_RATED             | Rate table lacks a tax class
-------------|---------------------------------|-------------------------------------
Period       | INVALID_PERIOD                  | Month/quarter number out of range

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ``code`` is a CLASS attribute. ``TransferValidationError.code`` is usable
   without instantiation (API docs, static analysis).

2. ``str(exc)`` is the technical message; ``exc.user_message`` is the
   operator-facing sentence. They differ on purpose: the technical message
   is terse for logs, the user message restates the value, the bound, and
   the corrective action.

3. A "not balanced" reconciliation is NOT an exception. Engines return it
   as data (``balanced=False``). Only malformed input raises.

===============================================================================
"""

from __future__ import annotations

from typing import Any


class CideryKernelError(Exception):
    """
    Base exception for all cidery kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CIDERY_KERNEL_ERROR"


# Validation exceptions


class ValidationError(CideryKernelError):
    """
    Business-rule violation detected by a guard.

    Carries the ``{code, message, user_message, details}`` quadruple. The
    generic form accepts an explicit code; subclasses fix their own.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        code: str | None,
        message: str,
        user_message: str,
        details: dict[str, Any] | None = None,
    ):
        if code is not None:
            self.code = code
        self.message = message
        self.user_message = user_message
        self.details = dict(details or {})
        super().__init__(message)


class _KindValidationError(ValidationError):
    """Validation error whose code is fixed by its class."""

    def __init__(
        self,
        message: str,
        user_message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(None, message, user_message, details)


class TransferValidationError(_KindValidationError):
    """Transfer volume, capacity, or self-transfer violation."""

    code: str = "TRANSFER_VALIDATION_ERROR"


class VolumeValidationError(_KindValidationError):
    """Volume is not finite, not positive, or exceeds the facility maximum."""

    code: str = "VOLUME_VALIDATION_ERROR"


class QuantityValidationError(_KindValidationError):
    """Quantity, count, price, or percentage out of bounds."""

    code: str = "QUANTITY_VALIDATION_ERROR"


class PackagingValidationError(_KindValidationError):
    """Batch not ready, packaging overrun, or bottle math mismatch."""

    code: str = "PACKAGING_VALIDATION_ERROR"


class MeasurementValidationError(_KindValidationError):
    """Physical reading out of range or future-dated."""

    code: str = "MEASUREMENT_VALIDATION_ERROR"


class VesselStateValidationError(_KindValidationError):
    """Illegal status transition or vessel unusable for an operation."""

    code: str = "VESSEL_STATE_VALIDATION_ERROR"


class PermissionValidationError(_KindValidationError):
    """
    Caller-side authorization failure.

    Part of the shared taxonomy so API layers can map it uniformly. The
    kernel itself never raises it.
    """

    code: str = "PERMISSION_VALIDATION_ERROR"


class DateSequenceValidationError(_KindValidationError):
    """Activity dated before the batch's floor, or packaging phases out of order."""

    code: str = "DATE_SEQUENCE_VALIDATION_ERROR"


_KIND_TO_CLASS: dict[str, type[_KindValidationError]] = {
    "transfer": TransferValidationError,
    "volume": VolumeValidationError,
    "quantity": QuantityValidationError,
    "packaging": PackagingValidationError,
    "measurement": MeasurementValidationError,
    "vessel_state": VesselStateValidationError,
    "permission": PermissionValidationError,
    "date_sequence": DateSequenceValidationError,
}

DEFAULT_USER_MESSAGE = "An unexpected error occurred"


def create_validation_error(
    kind: str,
    message: str,
    user_message: str,
    details: dict[str, Any] | None = None,
) -> ValidationError:
    """Build the validation error subclass for ``kind``.

    Unknown kinds produce a generic ``ValidationError`` with code
    ``VALIDATION_ERROR``.
    """
    cls = _KIND_TO_CLASS.get(kind)
    if cls is None:
        return ValidationError(ValidationError.code, message, user_message, details)
    return cls(message, user_message, details)


def is_validation_error(value: Any) -> bool:
    """True if ``value`` is any ValidationError instance."""
    return isinstance(value, ValidationError)


def extract_user_message(value: Any) -> str:
    """Return the text to show an operator for an arbitrary failure value."""
    if isinstance(value, ValidationError):
        return value.user_message
    if isinstance(value, BaseException):
        return str(value)
    return DEFAULT_USER_MESSAGE


# Snapshot-related exceptions


class SnapshotError(CideryKernelError):
    """Base exception for TTB snapshot errors."""

    code: str = "SNAPSHOT_ERROR"


class SnapshotNotFoundError(SnapshotError):
    """Snapshot with given ID was not found."""

    code: str = "SNAPSHOT_NOT_FOUND"

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot not found: {snapshot_id}")


class SnapshotAlreadyFinalizedError(SnapshotError):
    """Snapshot was already finalized; finalization is one-way and happens once."""

    code: str = "SNAPSHOT_ALREADY_FINALIZED"

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot {snapshot_id} is already finalized")


class SnapshotImmutableError(SnapshotError):
    """Attempted to save new values over a finalized snapshot."""

    code: str = "SNAPSHOT_IMMUTABLE"

    def __init__(self, snapshot_id: str, operation: str):
        self.snapshot_id = snapshot_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} finalized snapshot {snapshot_id}"
        )


class InvalidSnapshotTransitionError(SnapshotError):
    """Requested lifecycle transition is not draft -> review -> finalized."""

    code: str = "INVALID_SNAPSHOT_TRANSITION"

    def __init__(self, snapshot_id: str, from_status: str, to_status: str):
        self.snapshot_id = snapshot_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid snapshot transition for {snapshot_id}: "
            f"{from_status} -> {to_status}"
        )


class UnexplainedVarianceError(SnapshotError):
    """
    Reconciliation variance exceeds tolerance with no explanation.

    Finalizing requires either a discrepancy explanation or adjustments
    whose net effect closes the gap.
    """

    code: str = "UNEXPLAINED_VARIANCE"

    def __init__(self, snapshot_id: str, variance_gallons: str, tolerance_gallons: str):
        self.snapshot_id = snapshot_id
        self.variance_gallons = variance_gallons
        self.tolerance_gallons = tolerance_gallons
        super().__init__(
            f"Snapshot {snapshot_id} has unexplained variance of "
            f"{variance_gallons} gal (tolerance {tolerance_gallons} gal)"
        )


class SnapshotChainError(SnapshotError):
    """Base exception for broken reconciliation snapshot chains."""

    code: str = "SNAPSHOT_CHAIN_ERROR"


class SnapshotChainGapError(SnapshotChainError):
    """Days are missing between consecutive snapshots."""

    code: str = "SNAPSHOT_CHAIN_GAP"

    def __init__(self, previous_end: str, next_start: str):
        self.previous_end = previous_end
        self.next_start = next_start
        super().__init__(
            f"Snapshot chain gap: previous period ends {previous_end}, "
            f"next period starts {next_start}"
        )


class SnapshotChainOverlapError(SnapshotChainError):
    """Consecutive snapshot periods overlap."""

    code: str = "SNAPSHOT_CHAIN_OVERLAP"

    def __init__(self, previous_end: str, next_start: str):
        self.previous_end = previous_end
        self.next_start = next_start
        super().__init__(
            f"Snapshot chain overlap: previous period ends {previous_end}, "
            f"next period starts {next_start}"
        )


class SnapshotChainCycleError(SnapshotChainError):
    """previous_reconciliation_id links form a cycle."""

    code: str = "SNAPSHOT_CHAIN_CYCLE"

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot chain cycle detected at {snapshot_id}")


# Immutability exceptions


class ImmutabilityError(CideryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Finalized snapshots, physical counts, and reconciliation adjustments
    are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Tax exceptions


class TaxRateError(CideryKernelError):
    """Base exception for tax rate table errors."""

    code: str = "TAX_RATE_ERROR"


class TaxRateNotFoundError(TaxRateError):
    """No rate table version is effective on the requested date."""

    code: str = "TAX_RATE_NOT_FOUND"

    def __init__(self, as_of: str):
        self.as_of = as_of
        super().__init__(f"No tax rate table effective on {as_of}")


class TaxClassNotRatedError(TaxRateError):
    """The selected rate table has no rate for a tax class."""

    code: str = "TAX_CLASS_NOT_RATED"

    def __init__(self, version: str, tax_class: str):
        self.version = version
        self.tax_class = tax_class
        super().__init__(f"Rate table {version} has no rate for {tax_class}")


# Period exceptions


class InvalidPeriodError(CideryKernelError):
    """Reporting period number is out of range for its period type."""

    code: str = "INVALID_PERIOD"

    def __init__(self, period_type: str, period_number: int | None):
        self.period_type = period_type
        self.period_number = period_number
        super().__init__(
            f"Invalid period number {period_number} for {period_type} period"
        )
