"""
Tests for structured logging (billing_kernel/logging_config.py).

Covers:
- One JSON object per record, with context and extra fields merged
- Decimal, Enum, date and UUID serialization
- Billing exception fields in error records
- LogContext set / bind / clear semantics
- configure_logging idempotence and level handling
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from billing_engines.settlement import InvoiceStatus
from billing_kernel.exceptions import ConversionFailureError, LineNotFoundError
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def log_stream():
    """Configure logging at DEBUG into a StringIO and return a reader."""
    stream = StringIO()
    configure_logging(stream=stream, level="DEBUG")

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _records


# =============================================================================
# Record shape
# =============================================================================


class TestRecordShape:
    """Tests for the JSON layout of a record."""

    def test_base_fields(self, log_stream):
        get_logger("engines.totals").info("totals_computed")

        (record,) = log_stream()
        assert record["message"] == "totals_computed"
        assert record["level"] == "INFO"
        assert record["logger"] == "billing_kernel.engines.totals"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_top_level(self, log_stream):
        get_logger("test").info("line_repriced", extra={"line_total": "690.00", "uom": "BOX"})

        (record,) = log_stream()
        assert record["line_total"] == "690.00"
        assert record["uom"] == "BOX"

    def test_context_merged(self, log_stream):
        LogContext.set(document_id="doc-1", operation="save")
        get_logger("test").info("document_saved")

        (record,) = log_stream()
        assert record["document_id"] == "doc-1"
        assert record["operation"] == "save"
        assert "correlation_id" not in record

    def test_context_wins_over_extra(self, log_stream):
        LogContext.set(document_id="bound")
        get_logger("test").info("clash", extra={"document_id": "extra"})

        (record,) = log_stream()
        assert record["document_id"] == "bound"

    def test_every_line_is_json(self, log_stream):
        logger = get_logger("test")
        logger.debug("first")
        logger.warning("second", extra={"k": "v"})

        assert [r["message"] for r in log_stream()] == ["first", "second"]


# =============================================================================
# Serialization
# =============================================================================


class TestSerialization:
    """Tests for non-JSON types in extra payloads."""

    def test_decimal_keeps_scale(self, log_stream):
        get_logger("test").info("amount", extra={"amount": Decimal("1150.00")})

        assert log_stream()[0]["amount"] == "1150.00"

    def test_enum_written_as_value(self, log_stream):
        get_logger("test").info("status", extra={"status": InvoiceStatus.PARTIALLY_PAID})

        assert log_stream()[0]["status"] == "PARTIALLY_PAID"

    def test_date_and_uuid(self, log_stream):
        uid = uuid4()
        get_logger("test").info("dated", extra={"invoice_id": uid, "due": date(2024, 2, 1)})

        record = log_stream()[0]
        assert record["invoice_id"] == str(uid)
        assert record["due"] == "2024-02-01"


# =============================================================================
# Exceptions
# =============================================================================


class TestExceptionRecords:
    """Tests for exc_info handling."""

    def test_plain_exception(self, log_stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = log_stream()[0]
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "traceback" in record

    def test_billing_error_fields(self, log_stream):
        try:
            raise LineNotFoundError("doc-1", "line-9")
        except LineNotFoundError:
            get_logger("test").error("line_error", exc_info=True)

        record = log_stream()[0]
        assert record["exc_code"] == "LINE_NOT_FOUND"
        assert record["exc_document_id"] == "doc-1"
        assert record["exc_line_id"] == "line-9"

    def test_conversion_failure_reason_code(self, log_stream):
        try:
            raise ConversionFailureError("q-1", "ALREADY_CONVERTED", "already converted")
        except ConversionFailureError:
            get_logger("test").error("conversion_error", exc_info=True)

        record = log_stream()[0]
        assert record["exc_code"] == "ALREADY_CONVERTED"
        assert record["exc_quotation_id"] == "q-1"


# =============================================================================
# LogContext
# =============================================================================


class TestLogContext:
    """Tests for context binding."""

    def test_set_is_additive(self):
        LogContext.set(correlation_id="a")
        LogContext.set(document_id="b")

        assert LogContext.get_all() == {"correlation_id": "a", "document_id": "b"}

    def test_none_leaves_field(self):
        LogContext.set(actor_id="u-1")
        LogContext.set(actor_id=None, operation="convert")

        assert LogContext.get_all() == {"actor_id": "u-1", "operation": "convert"}

    def test_values_stringified(self):
        uid = uuid4()
        LogContext.set(document_id=uid)

        assert LogContext.get_all()["document_id"] == str(uid)

    def test_bind_restores_previous(self):
        LogContext.set(operation="save")
        with LogContext.bind(operation="convert", document_id="q-1"):
            assert LogContext.get_all() == {"document_id": "q-1", "operation": "convert"}

        assert LogContext.get_all() == {"operation": "save"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(document_id="q-1"):
                raise RuntimeError("fail")

        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="event_id"):
            LogContext.set(event_id="e-1")

    def test_clear(self):
        LogContext.set(correlation_id="c", trace_id="t")
        LogContext.clear()

        assert LogContext.get_all() == {}

    def test_all_fields_in_order(self):
        LogContext.set(trace_id="t", operation="save", actor_id="a", document_id="d", correlation_id="c")

        assert list(LogContext.get_all()) == list(LogContext.FIELDS)


# =============================================================================
# configure_logging
# =============================================================================


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO())

        assert len(logging.getLogger("billing_kernel").handlers) == 1

    def test_default_level_drops_debug(self):
        stream = StringIO()
        configure_logging(stream=stream)
        get_logger("test").debug("hidden")

        assert stream.getvalue() == ""

    def test_explicit_handler_gets_formatter(self):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)

        assert isinstance(handler.formatter, StructuredFormatter)

    def test_reset_allows_reconfigure(self):
        configure_logging(stream=StringIO())
        reset_logging()

        root = logging.getLogger("billing_kernel")
        assert root.handlers == []
        assert root.level == logging.WARNING
