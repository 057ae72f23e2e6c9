"""Unit tests for logging setup."""

import json
import logging

import pytest
import structlog

from fleetsync.common.config import LoggingSettings
from fleetsync.common.logging import bind_context, clear_context, get_logger, setup_logging


@pytest.fixture
def json_logging():
    setup_logging(LoggingSettings(format="json", include_timestamp=False))
    yield
    clear_context()
    structlog.reset_defaults()


@pytest.mark.unit
class TestSetupLogging:
    """Test cases for structured log output."""

    def test_json_entries_carry_service_context(self, json_logging, caplog):
        with caplog.at_level(logging.INFO):
            get_logger("fleetsync.test").info("Sync started", namespace="prod")

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["event"] == "Sync started"
        assert entry["namespace"] == "prod"
        assert entry["level"] == "info"
        assert entry["service"] == "FleetSync"
        assert "timestamp" not in entry

    def test_bound_context_is_merged(self, json_logging, caplog):
        bind_context(provider="p1")
        with caplog.at_level(logging.INFO):
            get_logger("fleetsync.test", run=1).info("Nodes listed")
        clear_context()
        with caplog.at_level(logging.INFO):
            get_logger("fleetsync.test").info("Done")

        first, second = (json.loads(r.getMessage()) for r in caplog.records[-2:])
        assert (first["provider"], first["run"]) == ("p1", 1)
        assert "provider" not in second
