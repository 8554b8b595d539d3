"""
Tests for the validation error taxonomy helpers.

These tests verify:
- create_validation_error maps each kind to its subclass and code
- Unknown kinds fall back to the generic VALIDATION_ERROR
- is_validation_error / extract_user_message handle arbitrary values
"""

from decimal import Decimal

import pytest

from cidery_kernel.exceptions import (
    DEFAULT_USER_MESSAGE,
    DateSequenceValidationError,
    MeasurementValidationError,
    PackagingValidationError,
    PermissionValidationError,
    QuantityValidationError,
    TransferValidationError,
    ValidationError,
    VesselStateValidationError,
    VolumeValidationError,
    create_validation_error,
    extract_user_message,
    is_validation_error,
)


class TestCreateValidationError:
    @pytest.mark.parametrize(
        "kind, cls, code",
        [
            ("transfer", TransferValidationError, "TRANSFER_VALIDATION_ERROR"),
            ("volume", VolumeValidationError, "VOLUME_VALIDATION_ERROR"),
            ("quantity", QuantityValidationError, "QUANTITY_VALIDATION_ERROR"),
            ("packaging", PackagingValidationError, "PACKAGING_VALIDATION_ERROR"),
            ("measurement", MeasurementValidationError, "MEASUREMENT_VALIDATION_ERROR"),
            ("vessel_state", VesselStateValidationError, "VESSEL_STATE_VALIDATION_ERROR"),
            ("permission", PermissionValidationError, "PERMISSION_VALIDATION_ERROR"),
            ("date_sequence", DateSequenceValidationError, "DATE_SEQUENCE_VALIDATION_ERROR"),
        ],
    )
    def test_kind_maps_to_subclass(self, kind, cls, code):
        exc = create_validation_error(kind, "dev message", "Operator message.", {"volume_l": Decimal("5")})

        assert type(exc) is cls
        assert exc.code == code
        assert exc.message == "dev message"
        assert exc.user_message == "Operator message."
        assert exc.details == {"volume_l": Decimal("5")}

    def test_unknown_kind_is_generic(self):
        exc = create_validation_error("keg", "dev", "Operator.")

        assert type(exc) is ValidationError
        assert exc.code == "VALIDATION_ERROR"
        assert exc.details == {}

    def test_created_error_is_raisable(self):
        with pytest.raises(TransferValidationError) as exc_info:
            raise create_validation_error("transfer", "too much", "Too much.")
        assert str(exc_info.value) == "too much"


class TestIsValidationError:
    def test_subclass_instance(self):
        assert is_validation_error(VolumeValidationError("m", "u")) is True

    @pytest.mark.parametrize("value", [ValueError("x"), "VOLUME_VALIDATION_ERROR", None])
    def test_other_values(self, value):
        assert is_validation_error(value) is False


class TestExtractUserMessage:
    def test_validation_error_uses_user_message(self):
        exc = PackagingValidationError("dev detail", "Please shorten your entry.")
        assert extract_user_message(exc) == "Please shorten your entry."

    def test_plain_exception_uses_str(self):
        assert extract_user_message(RuntimeError("disk full")) == "disk full"

    @pytest.mark.parametrize("value", [None, 42, {"error": "x"}])
    def test_non_exception_falls_back(self, value):
        assert extract_user_message(value) == DEFAULT_USER_MESSAGE
