"""Unit tests for callguard.logging structured logging module."""

import json
import logging
import os
from io import StringIO
from unittest.mock import patch

import pytest
import structlog

import callguard.logging


class TestConfigure:
    """Tests for callguard.logging.configure()."""

    def setup_method(self):
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()
        logging.getLogger().handlers.clear()

    def teardown_method(self):
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()
        logging.getLogger().handlers.clear()
        os.environ.pop("CALLGUARD_LOG_LEVEL", None)
        os.environ.pop("CALLGUARD_LOG_FORMAT", None)

    def _capture(self, emit) -> str:
        buf = StringIO()
        with patch("sys.stdout", buf):
            emit()
        return buf.getvalue().strip()

    def test_json_by_default(self):
        callguard.logging.configure("gateway")

        line = self._capture(lambda: structlog.get_logger().info("hello", call_id="c1"))

        parsed = json.loads(line)
        assert parsed["event"] == "hello"
        assert parsed["level"] == "info"
        assert parsed["service"] == "gateway"
        assert parsed["call_id"] == "c1"
        assert "timestamp" in parsed

    def test_console_format(self):
        os.environ["CALLGUARD_LOG_FORMAT"] = "console"
        callguard.logging.configure("cli")

        line = self._capture(lambda: structlog.get_logger().info("dev_event"))

        assert "dev_event" in line
        with pytest.raises(json.JSONDecodeError):
            json.loads(line)

    def test_level_filtering(self):
        os.environ["CALLGUARD_LOG_LEVEL"] = "WARNING"
        callguard.logging.configure("gateway")

        assert self._capture(lambda: structlog.get_logger().info("quiet")) == ""
        assert "loud" in self._capture(lambda: structlog.get_logger().warning("loud"))

    def test_contextvars_merged(self):
        callguard.logging.configure("gateway")
        structlog.contextvars.bind_contextvars(request_id="req_abc")

        parsed = json.loads(self._capture(lambda: structlog.get_logger().info("event")))

        assert parsed["request_id"] == "req_abc"

    def test_asyncssh_logger_quieted(self):
        callguard.logging.configure("gateway")

        assert logging.getLogger("asyncssh").level >= logging.WARNING


class TestResetContext:
    """Tests for callguard.logging.reset_context()."""

    def setup_method(self):
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()

    def teardown_method(self):
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()
        logging.getLogger().handlers.clear()

    def test_keeps_service_name_and_drops_the_rest(self):
        callguard.logging.configure("gateway")
        structlog.contextvars.bind_contextvars(call_id="stale")

        callguard.logging.reset_context(request_id="req_1")

        ctx = structlog.contextvars.get_contextvars()
        assert ctx["_service_name"] == "gateway"
        assert ctx["request_id"] == "req_1"
        assert "call_id" not in ctx
