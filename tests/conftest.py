"""
Pytest fixtures for the cidery compliance test suite.

Provides:
- Structured logging configured for every test, with a capture fixture
- A deterministic clock
- In-memory SQLite sessions with immutability listeners registered
- Small factories for vessels, batches and reconciliation inputs
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from uuid import uuid4

import pytest

from cidery_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from cidery_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from cidery_kernel.domain.clock import DeterministicClock
from cidery_kernel.domain.entities import Batch, BatchStatus, Vessel, VesselStatus, VesselType
from cidery_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

SQLITE_MEMORY_URL = "sqlite://"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture cidery_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            validate_transfer(...)
            logs = captured_logs()
            assert any(r["message"] == "CIDERY_ENGINE_TRACE" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("cidery_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2025-01-15 12:00 UTC."""
    return DeterministicClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """A fresh in-memory SQLite database per test."""
    eng = init_engine_from_url(SQLITE_MEMORY_URL)
    create_tables()
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    drop_tables()
    reset_engine()


@pytest.fixture
def session(engine):
    """
    Session bound to the in-memory database.

    Services flush; tests that need a commit call it themselves.
    """
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Domain factories
# =============================================================================


@pytest.fixture
def make_vessel():
    def _make(
        vessel_id="tank-1",
        capacity_l="1000",
        current_volume_l="0",
        status=VesselStatus.AVAILABLE,
        vessel_type=VesselType.FERMENTER,
        name=None,
    ) -> Vessel:
        return Vessel(
            id=vessel_id,
            name=name or vessel_id.upper(),
            capacity_l=capacity_l,
            status=status,
            current_volume_l=current_volume_l,
            vessel_type=vessel_type,
        )

    return _make


@pytest.fixture
def make_batch():
    def _make(
        batch_id="batch-1",
        current_volume_l="500",
        status=BatchStatus.FERMENTATION,
        vessel_id="tank-1",
        batch_number="B-001",
        **kwargs,
    ) -> Batch:
        return Batch(
            id=batch_id,
            batch_number=batch_number,
            current_volume_l=current_volume_l,
            status=status,
            vessel_id=vessel_id,
            **kwargs,
        )

    return _make
