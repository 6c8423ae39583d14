"""
Tests for the structlog configuration helper.
"""

from __future__ import annotations

import pytest
import structlog
from structlog.testing import capture_logs

from tasktrack.core.logging_setup import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def test_events_below_level_are_dropped():
    configure_logging("warning", "console")
    with capture_logs() as logs:
        log = structlog.get_logger()
        log.info("status.unblocked", task_id=1)
        log.warning("store.transient_error", operation="lock_tasks")
    assert [e["event"] for e in logs] == ["store.transient_error"]


def test_level_name_is_case_insensitive():
    configure_logging("DEBUG", "json")
    with capture_logs() as logs:
        structlog.get_logger().debug("rbac.denied", user_id=3)
    assert logs[0]["user_id"] == 3


def test_rejects_unknown_settings():
    with pytest.raises(ValueError):
        configure_logging("loud")
    with pytest.raises(ValueError):
        configure_logging("info", "xml")
