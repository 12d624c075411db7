"""Tests for the structured logging system (rollstock_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from rollstock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


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
    """Parse all JSON log lines from a stream."""
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
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "rollstock.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("issue_recorded", extra={"line_count": 2, "issue_id": "MI00001/25-26"})

        record = _parse_log(stream)
        assert record["line_count"] == 2
        assert record["issue_id"] == "MI00001/25-26"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(correlation_id="abc-123", consumer_ref="JOB-J1")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["consumer_ref"] == "JOB-J1"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        with LogContext.bind(batch_id="b-context"):
            logger.info("test_msg", extra={"batch_id": "b-extra"})

        assert _parse_log(stream)["batch_id"] == "b-context"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_ledger_exception_code_extracted(self):
        """Ledger exceptions carry .code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from rollstock_kernel.exceptions import ConservationError

        try:
            raise ConservationError("b1", "300", "290", "9.98", "0.01")
        except ConservationError:
            logger.error("slit_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "CONSERVATION_VIOLATION"
        assert record["exc_type"] == "ConservationError"
        assert record["exc_batch_id"] == "b1"
        assert record["exc_wastage"] == "9.98"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "batch_id" not in record

    def test_date_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info(
            "with_values",
            extra={"expiry_date": date(2026, 3, 31), "quantity": Decimal("333.334")},
        )

        record = _parse_log(stream)
        assert record["expiry_date"] == "2026-03-31"
        assert record["quantity"] == "333.334"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert "ts" in record
            assert "level" in record
            assert "logger" in record
            assert "message" in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", document_id="GRN00001/25-26")
        ctx = LogContext.get_all()
        assert ctx == {"correlation_id": "x", "document_id": "GRN00001/25-26"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(consumer_ref="outer")
        with LogContext.bind(consumer_ref="inner"):
            assert LogContext.get_all()["consumer_ref"] == "inner"
        assert LogContext.get_all()["consumer_ref"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "batch_id" not in LogContext.get_all()
        with LogContext.bind(batch_id="temp"):
            assert LogContext.get_all()["batch_id"] == "temp"
        assert "batch_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(batch_id="b1", shift="night"):
            assert LogContext.get_all() == {"batch_id": "b1"}

    def test_set_rejects_unknown_fields(self):
        with pytest.raises(TypeError):
            LogContext.set(shift="night")

    def test_additive_set(self):
        LogContext.set(correlation_id="a")
        LogContext.set(actor_id="b")
        ctx = LogContext.get_all()
        assert ctx["correlation_id"] == "a"
        assert ctx["actor_id"] == "b"

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            document_id="d",
            consumer_ref="j",
            batch_id="b",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["document_id"] == "d"
        assert ctx["batch_id"] == "b"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        root = logging.getLogger("rollstock")
        assert len(root.handlers) == 1

    def test_does_not_propagate_to_root(self):
        configure_logging(handler=logging.NullHandler())
        assert logging.getLogger("rollstock").propagate is False

    def test_level_by_name(self):
        configure_logging(handler=logging.NullHandler(), level="WARNING")
        assert logging.getLogger("rollstock").level == logging.WARNING

    def test_get_logger_returns_child(self):
        logger = get_logger("services.allocation")
        assert logger.name == "rollstock.services.allocation"

    def test_logger_hierarchy(self):
        """Child loggers inherit the rollstock root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("deep.nested.module")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "rollstock.deep.nested.module"
