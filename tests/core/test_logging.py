"""Tests for structured logging setup."""

import json

import pytest
import structlog

from operator_plane.core.logging import (
    LogContext,
    clear_context,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()
    clear_context()


class TestConfigureLogging:
    """structlog configuration."""

    def test_json_output(self, capsys):
        configure_logging(level="INFO", json_format=True, service="operator-test")
        get_logger("tests.logging").info("invoker.invoke", provider="slack", success=True)
        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "invoker.invoke"
        assert record["provider"] == "slack"
        assert record["logger"] == "tests.logging"
        assert record["service"] == "operator-test"
        assert record["level"] == "info"

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        get_logger("tests.logging").info("quiet.event")
        assert "quiet.event" not in capsys.readouterr().err


class TestLogContext:
    """Scoped context binding."""

    def setup_method(self):
        clear_context()

    def test_binds_and_unbinds(self):
        with LogContext(tenant="acme", team=None, correlation_id="c-1"):
            bound = structlog.contextvars.get_contextvars()
            assert bound == {"tenant": "acme", "correlation_id": "c-1"}
        assert structlog.contextvars.get_contextvars() == {}
