"""
Tests for the vessel state machine.

Covers:
- Transition table
- Content rules for cleaning and maintenance
- Operation usability gates
- Vessel type suitability (strict and override)
- Shape invariants
"""

import pytest

from cidery_engines.guards.vessel_state import (
    VALID_TRANSITIONS,
    allowed_transitions,
    validate_state_transition,
    validate_transition_with_content,
    validate_vessel_shape,
    validate_vessel_state,
    validate_vessel_type_for_operation,
    validate_vessel_usability,
)
from cidery_kernel.domain.entities import (
    VesselOperation,
    VesselPurpose,
    VesselStatus,
    VesselType,
)
from cidery_kernel.exceptions import VesselStateValidationError


class TestTransitionTable:
    def test_every_status_has_transitions(self):
        assert set(VALID_TRANSITIONS) == set(VesselStatus)

    def test_cleaning_cannot_go_straight_to_in_use(self, make_vessel):
        vessel = make_vessel(status=VesselStatus.CLEANING)
        with pytest.raises(VesselStateValidationError) as exc_info:
            validate_state_transition(vessel, VesselStatus.IN_USE)

        assert exc_info.value.details["allowed_transitions"] == ["available", "maintenance"]

    def test_same_status_rejected(self, make_vessel):
        vessel = make_vessel(status=VesselStatus.AVAILABLE)
        with pytest.raises(VesselStateValidationError, match="already"):
            validate_state_transition(vessel, "available")

    def test_allowed_transitions_in_declaration_order(self):
        assert allowed_transitions("available") == (
            VesselStatus.IN_USE,
            VesselStatus.CLEANING,
            VesselStatus.MAINTENANCE,
        )


class TestCleaningScenario:
    """A clean, empty vessel becomes available; a vessel with product cannot be cleaned."""

    def test_empty_cleaning_vessel_becomes_available(self, make_vessel):
        vessel = make_vessel(status=VesselStatus.CLEANING, current_volume_l="0")
        validate_vessel_state(vessel, new_status=VesselStatus.AVAILABLE)

    def test_vessel_with_content_cannot_start_cleaning(self, make_vessel):
        vessel = make_vessel(status=VesselStatus.IN_USE, current_volume_l="5")
        with pytest.raises(VesselStateValidationError) as exc_info:
            validate_vessel_state(vessel, new_status=VesselStatus.CLEANING)

        assert "contains 5L" in exc_info.value.user_message

    def test_vessel_with_content_cannot_enter_maintenance(self, make_vessel):
        vessel = make_vessel(status=VesselStatus.AVAILABLE, current_volume_l="5")
        with pytest.raises(VesselStateValidationError, match="perform maintenance"):
            validate_transition_with_content(vessel, VesselStatus.MAINTENANCE)

    def test_in_use_with_batches_cannot_become_available(self, make_vessel):
        vessel = make_vessel(status=VesselStatus.IN_USE)
        with pytest.raises(VesselStateValidationError, match="active"):
            validate_transition_with_content(vessel, VesselStatus.AVAILABLE, has_batches=True)

    def test_unchanged_status_skips_transition_rules(self, make_vessel):
        vessel = make_vessel(status=VesselStatus.IN_USE, current_volume_l="5")
        validate_vessel_state(vessel, new_status=VesselStatus.IN_USE)


class TestUsability:
    @pytest.mark.parametrize(
        "status,operation",
        [
            (VesselStatus.MAINTENANCE, VesselOperation.TRANSFER_IN),
            (VesselStatus.CLEANING, VesselOperation.TRANSFER_IN),
            (VesselStatus.MAINTENANCE, VesselOperation.TRANSFER_OUT),
            (VesselStatus.CLEANING, VesselOperation.MEASUREMENT),
            (VesselStatus.CLEANING, VesselOperation.PACKAGING),
            (VesselStatus.MAINTENANCE, VesselOperation.CLEANING),
        ],
    )
    def test_blocked(self, make_vessel, status, operation):
        with pytest.raises(VesselStateValidationError):
            validate_vessel_usability(make_vessel(status=status), operation)

    @pytest.mark.parametrize(
        "status,operation",
        [
            (VesselStatus.CLEANING, VesselOperation.TRANSFER_OUT),
            (VesselStatus.MAINTENANCE, VesselOperation.MAINTENANCE),
            (VesselStatus.IN_USE, VesselOperation.PACKAGING),
        ],
    )
    def test_allowed(self, make_vessel, status, operation):
        validate_vessel_usability(make_vessel(status=status), operation)

    def test_unknown_operation(self, make_vessel):
        with pytest.raises(VesselStateValidationError, match="Unknown"):
            validate_vessel_usability(make_vessel(), "launch")


class TestVesselType:
    def test_fermenter_suits_fermentation(self, make_vessel):
        assert validate_vessel_type_for_operation(make_vessel(), VesselPurpose.FERMENTATION) is True

    def test_mismatch_raises_when_strict(self, make_vessel):
        vessel = make_vessel(vessel_type=VesselType.STORAGE)
        with pytest.raises(VesselStateValidationError) as exc_info:
            validate_vessel_type_for_operation(vessel, VesselPurpose.FERMENTATION)
        assert exc_info.value.details["allowed_operations"] == ["storage"]

    def test_mismatch_warns_when_overridden(self, make_vessel, captured_logs):
        vessel = make_vessel(vessel_type=VesselType.STORAGE)

        assert validate_vessel_type_for_operation(vessel, "packaging", strict=False) is False
        assert any(r["message"] == "vessel_type_mismatch" for r in captured_logs())


class TestVesselShape:
    def test_zero_capacity(self, make_vessel):
        with pytest.raises(VesselStateValidationError, match="capacity"):
            validate_vessel_shape(make_vessel(capacity_l="0"))

    def test_negative_volume(self, make_vessel):
        with pytest.raises(VesselStateValidationError, match="negative"):
            validate_vessel_shape(make_vessel(current_volume_l="-1"))

    def test_overfull(self, make_vessel):
        with pytest.raises(VesselStateValidationError, match="exceeds capacity"):
            validate_vessel_shape(make_vessel(capacity_l="100", current_volume_l="100.5"))

    def test_full_is_valid(self, make_vessel):
        validate_vessel_shape(make_vessel(capacity_l="100", current_volume_l="100"))
