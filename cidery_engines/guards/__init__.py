"""
Guards - Pure accept/reject checks run before any production write.

Every guard returns None on success and raises a typed
``ValidationError`` subclass on the first violated rule.  The batch
audit is the exception: it grades a batch and never raises.
"""

from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.guards")

from cidery_engines.guards.batch_audit import (
    AuditCheck,
    BatchAuditReport,
    BatchAuditSubject,
    BatchVolumeLedger,
    CheckStatus,
    VolumeBalance,
    audit_batch_volume,
    check_active_volume,
    check_classification_data,
    check_date_sanity,
    check_required_fields,
    effective_bottling_loss,
    validate_batch,
)
from cidery_engines.guards.date_sequence import (
    EarliestValidDate,
    calculate_earliest_valid_date,
    extract_date_from_batch_name,
    validate_activity_date,
    validate_date_input,
    validate_packaging_phase_sequence,
)
from cidery_engines.guards.limits import DEFAULT_LIMITS, GuardLimits
from cidery_engines.guards.measurements import (
    validate_abv,
    validate_measurement,
    validate_measurement_date,
    validate_measurement_volume,
    validate_ph,
    validate_specific_gravity,
    validate_temperature,
    validate_total_acidity,
)
from cidery_engines.guards.packaging import (
    BottleSize,
    parse_bottle_size,
    validate_batch_ready_for_packaging,
    validate_bottle_consistency,
    validate_packaging,
    validate_packaging_abv,
    validate_packaging_date,
    validate_packaging_volume,
)
from cidery_engines.guards.transfer import (
    apply_transfer,
    validate_batch_volume,
    validate_not_self_transfer,
    validate_source_volume,
    validate_transfer,
    validate_transfer_date,
    validate_transfer_volume,
    validate_vessel_availability,
    validate_vessel_capacity,
)
from cidery_engines.guards.vessel_state import (
    TYPE_PURPOSES,
    VALID_TRANSITIONS,
    allowed_transitions,
    validate_state_transition,
    validate_transition_with_content,
    validate_vessel_shape,
    validate_vessel_state,
    validate_vessel_type_for_operation,
    validate_vessel_usability,
)
from cidery_engines.guards.volume_quantity import (
    validate_non_negative_volume,
    validate_percentage,
    validate_positive_count,
    validate_positive_price,
    validate_positive_quantity,
    validate_positive_volume,
)

__all__ = [
    "AuditCheck",
    "BatchAuditReport",
    "BatchAuditSubject",
    "BatchVolumeLedger",
    "BottleSize",
    "CheckStatus",
    "DEFAULT_LIMITS",
    "EarliestValidDate",
    "GuardLimits",
    "TYPE_PURPOSES",
    "VALID_TRANSITIONS",
    "VolumeBalance",
    "allowed_transitions",
    "apply_transfer",
    "audit_batch_volume",
    "calculate_earliest_valid_date",
    "check_active_volume",
    "check_classification_data",
    "check_date_sanity",
    "check_required_fields",
    "effective_bottling_loss",
    "extract_date_from_batch_name",
    "parse_bottle_size",
    "validate_abv",
    "validate_activity_date",
    "validate_batch",
    "validate_batch_ready_for_packaging",
    "validate_batch_volume",
    "validate_bottle_consistency",
    "validate_date_input",
    "validate_measurement",
    "validate_measurement_date",
    "validate_measurement_volume",
    "validate_non_negative_volume",
    "validate_not_self_transfer",
    "validate_packaging",
    "validate_packaging_abv",
    "validate_packaging_date",
    "validate_packaging_phase_sequence",
    "validate_packaging_volume",
    "validate_percentage",
    "validate_ph",
    "validate_positive_count",
    "validate_positive_price",
    "validate_positive_quantity",
    "validate_positive_volume",
    "validate_source_volume",
    "validate_specific_gravity",
    "validate_state_transition",
    "validate_temperature",
    "validate_total_acidity",
    "validate_transfer",
    "validate_transfer_date",
    "validate_transfer_volume",
    "validate_transition_with_content",
    "validate_vessel_availability",
    "validate_vessel_capacity",
    "validate_vessel_shape",
    "validate_vessel_state",
    "validate_vessel_type_for_operation",
    "validate_vessel_usability",
]
