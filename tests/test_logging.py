"""Tests for the structured logging system (quote_kernel/logging_config.py)."""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from uuid import uuid4

import pytest

from quote_kernel.domain.approval import ApprovalStatus
from quote_kernel.exceptions import AlreadyDecidedError
from quote_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from quote_kernel.services.log_capture import LogCapture


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
        assert record["logger"] == "quote_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("approval_completed", extra={"status": "APPROVED", "steps": 2})

        record = _parse_log(stream)
        assert record["status"] == "APPROVED"
        assert record["steps"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="corr-1", approval_id="appr-1", actor_id="alice")
        get_logger("test").info("decided")

        record = _parse_log(stream)
        assert record["correlation_id"] == "corr-1"
        assert record["approval_id"] == "appr-1"
        assert record["actor_id"] == "alice"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "approval_id" not in record

    def test_domain_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise AlreadyDecidedError("appr-1", "step-1", "APPROVED")
        except AlreadyDecidedError:
            get_logger("test").exception("decision_failed")

        record = _parse_log(stream)
        assert record["exc_type"] == "AlreadyDecidedError"
        assert record["exc_code"] == "ALREADY_DECIDED"
        assert record["exc_step_id"] == "step-1"
        assert "traceback" in record

    def test_uuid_datetime_and_enum_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        approval_id = uuid4()
        at = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        get_logger("test").info(
            "typed", extra={"ref": approval_id, "at": at, "status": ApprovalStatus.REJECTED},
        )

        record = _parse_log(stream)
        assert record["ref"] == str(approval_id)
        assert record["at"] == at.isoformat()
        assert record["status"] == "REJECTED"


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_bind_restores_previous_values(self):
        LogContext.set(approval_id="outer")
        with LogContext.bind(approval_id="inner", quotation_id="Q-1"):
            assert LogContext.get_all() == {"approval_id": "inner", "quotation_id": "Q-1"}
        assert LogContext.get_all() == {"approval_id": "outer"}

    def test_bind_ignores_none_and_unknown_fields(self):
        with LogContext.bind(actor_id=None, workflow_id="wf-1", unknown="x"):
            assert LogContext.get_all() == {"workflow_id": "wf-1"}

    def test_bind_stringifies_values(self):
        approval_id = uuid4()
        with LogContext.bind(approval_id=approval_id):
            assert LogContext.get_all()["approval_id"] == str(approval_id)

    def test_clear(self):
        LogContext.set(correlation_id="c")
        LogContext.clear()
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging / LogCapture tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)

        assert len(logging.getLogger("quote_kernel").handlers) == 1

    def test_child_loggers_share_handler(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("services.approval_service").info("child")

        assert _parse_log(stream)["logger"] == "quote_kernel.services.approval_service"


class TestLogCapture:

    def test_captures_and_queries(self):
        with LogCapture() as capture:
            with LogContext.bind(correlation_id="c-1", approval_id="a-1"):
                get_logger("test").info("first")
            get_logger("test").info("second")

        assert capture.messages() == ["first", "second"]
        assert [r["message"] for r in capture.query_by_correlation_id("c-1")] == ["first"]
        assert len(capture.query_by_approval_id("a-1")) == 1
        assert len(capture) == 2

    def test_uninstall_restores_level(self):
        logger = logging.getLogger("quote_kernel")
        logger.setLevel(logging.WARNING)

        capture = LogCapture().install()
        assert logger.level == logging.DEBUG
        capture.uninstall()

        assert logger.level == logging.WARNING
        assert capture not in logger.handlers
