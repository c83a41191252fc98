"""Tests for the structured logging system (distribution_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from distribution_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "distribution_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("transition_applied", extra={"seq": 4, "to_status": "sent"})

        record = _parse_log(stream)
        assert record["seq"] == 4
        assert record["to_status"] == "sent"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", operation="send")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["operation"] == "send"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(operation="complete")
        get_logger("test").warning("authorization_denied", extra={"operation": "force_complete"})

        assert _parse_log(stream)["operation"] == "complete"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_fields_extracted(self):
        """Kernel exceptions carry a .code and their constructor fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from distribution_kernel.exceptions import InvalidTransitionError

        try:
            raise InvalidTransitionError("d-1", "send", "draft", "verified_sender")
        except InvalidTransitionError:
            get_logger("test").error("transition_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INVALID_TRANSITION"
        assert record["exc_type"] == "InvalidTransitionError"
        assert record["exc_action"] == "send"
        assert record["exc_current_status"] == "draft"
        assert record["exc_expected_status"] == "verified_sender"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "distribution_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"archive_id": uid})

        assert _parse_log(stream)["archive_id"] == str(uid)

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped.
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="x", distribution_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "distribution_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "actor_id" not in LogContext.get_all()
        with LogContext.bind(actor_id=uuid4()):
            assert "actor_id" in LogContext.get_all()
        assert "actor_id" not in LogContext.get_all()

    def test_bind_stringifies_values(self):
        uid = uuid4()
        with LogContext.bind(distribution_id=uid):
            assert LogContext.get_all()["distribution_id"] == str(uid)

    def test_all_fields(self):
        LogContext.set(correlation_id="c", actor_id="a", distribution_id="d", operation="o")
        assert LogContext.get_all() == {
            "correlation_id": "c",
            "actor_id": "a",
            "distribution_id": "d",
            "operation": "o",
        }


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        h1, s1 = _make_handler()
        configure_logging(handler=h1)
        h2, s2 = _make_handler()
        configure_logging(handler=h2, level=logging.DEBUG)  # second call is no-op

        handlers = logging.getLogger("distribution_kernel").handlers
        assert handlers.count(h1) == 1
        assert h2 not in handlers

        get_logger("test").debug("dropped")
        get_logger("test").info("kept")
        assert [r["message"] for r in _parse_all_logs(s1)] == ["kept"]
        assert s2.getvalue() == ""

    def test_reset_allows_reconfiguration(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        reset_logging()
        h2, stream = _make_handler()
        configure_logging(handler=h2)

        handlers = logging.getLogger("distribution_kernel").handlers
        assert h1 not in handlers
        assert h2 in handlers
        get_logger("test").info("after_reset")
        assert _parse_log(stream)["message"] == "after_reset"

    def test_get_logger_returns_child(self):
        assert get_logger("services.portal").name == "distribution_kernel.services.portal"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "distribution_kernel.deep.nested.module"
