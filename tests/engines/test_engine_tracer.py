"""Tests for the engine trace decorator."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pytest

from cidery_engines.tracer import compute_input_fingerprint, traced_engine
from cidery_kernel.exceptions import VolumeValidationError


@dataclass(frozen=True)
class _Reading:
    volume_l: Decimal
    taken_on: date


@traced_engine("test_engine", "2.1", fingerprint_fields=("reading",))
def _measure(reading, strict=False):
    if reading.volume_l < 0:
        raise VolumeValidationError("negative", "Volume cannot be negative.")
    return reading.volume_l


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "CIDERY_ENGINE_TRACE"]


class TestTracedEngine:
    def test_ok_trace(self, captured_logs):
        assert _measure(_Reading(Decimal("5"), date(2025, 1, 1))) == Decimal("5")

        trace = _traces(captured_logs)[0]
        assert trace["engine_name"] == "test_engine"
        assert trace["engine_version"] == "2.1"
        assert trace["outcome"] == "ok"
        assert trace["error_code"] is None
        assert len(trace["input_fingerprint"]) == 16

    def test_rejected_trace_and_exception_propagates(self, captured_logs):
        with pytest.raises(VolumeValidationError):
            _measure(_Reading(Decimal("-1"), date(2025, 1, 1)))

        trace = _traces(captured_logs)[0]
        assert trace["outcome"] == "rejected"
        assert trace["error_code"] == "VOLUME_VALIDATION_ERROR"

    def test_positional_and_keyword_fingerprints_match(self, captured_logs):
        reading = _Reading(Decimal("5"), date(2025, 1, 1))
        _measure(reading)
        _measure(reading=reading)

        first, second = _traces(captured_logs)
        assert first["input_fingerprint"] == second["input_fingerprint"]


class TestFingerprint:
    def test_deterministic(self):
        kwargs = {"volume": Decimal("1.5"), "when": date(2025, 1, 1)}
        assert compute_input_fingerprint(("volume", "when"), kwargs) == compute_input_fingerprint(
            ("volume", "when"), dict(kwargs)
        )

    def test_only_listed_fields_count(self):
        a = compute_input_fingerprint(("volume",), {"volume": 1, "note": "a"})
        b = compute_input_fingerprint(("volume",), {"volume": 1, "note": "b"})
        assert a == b

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("volume",), {}) == compute_input_fingerprint(
            ("volume",), {"volume": None}
        )
