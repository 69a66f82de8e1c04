"""Tests for the structured logging system (coop_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from coop_kernel.logging_config import (
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
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "coop_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("posted", extra={"line_count": 4, "reference_type": "Payment"})

        record = _parse_log(stream)
        assert record["line_count"] == 4
        assert record["reference_type"] == "Payment"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(correlation_id="abc-123", loan_id="loan-456")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["loan_id"] == "loan-456"

    def test_money_and_dates_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("amounts", extra={"amount": Decimal("98.63"), "as_of": date(2025, 1, 31)})

        record = _parse_log(stream)
        assert record["amount"] == "98.63"
        assert record["as_of"] == "2025-01-31"

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        logger.info("with_uuid", extra={"payment_id": uid})

        record = _parse_log(stream)
        assert record["payment_id"] == str(uid)

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
        """Ledger exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from coop_kernel.exceptions import PeriodAlreadyClosedError

        try:
            raise PeriodAlreadyClosedError("loan-1", date(2025, 1, 31))
        except PeriodAlreadyClosedError:
            logger.error("void_refused", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "PERIOD_ALREADY_CLOSED"
        assert record["exc_type"] == "PeriodAlreadyClosedError"
        assert record["exc_loan_id"] == "loan-1"
        assert record["exc_balance_date"] == "2025-01-31"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "loan_id" not in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", operation="close_month"):
            assert LogContext.get_all() == {"actor_id": "inner", "operation": "close_month"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_ignores_none(self):
        with LogContext.bind(loan_id=None):
            assert "loan_id" not in LogContext.get_all()

    def test_clear(self):
        LogContext.set(correlation_id="x", loan_id="y")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(trace_id="y")
        with pytest.raises(TypeError):
            LogContext.bind(member_id="m")


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        get_logger("test").info("once")

        assert len(_parse_all_logs(stream)) == 1

    def test_level_filters(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        messages = [r["message"] for r in _parse_all_logs(stream)]
        assert messages == ["kept"]

    def test_does_not_propagate_to_root(self):
        configure_logging(handler=logging.NullHandler())
        assert logging.getLogger("coop_kernel").propagate is False
