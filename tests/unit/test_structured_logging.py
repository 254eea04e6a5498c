"""Tests for the structured logging system (taxbook_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from taxbook_kernel.exceptions import UnbalancedEntryError
from taxbook_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from taxbook_kernel.models.transaction import TransactionStatus


@pytest.fixture(autouse=True)
def _clean_logging():
    """Start every test unconfigured; the suite-wide handler is dropped."""
    reset_logging()
    yield
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "taxbook.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("posted", extra={"line_count": 2, "status": "draft"})

        record = _parse_log(stream)
        assert record["line_count"] == 2
        assert record["status"] == "draft"

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        txn_id = uuid4()
        get_logger("test").info(
            "values",
            extra={
                "transaction_uuid": txn_id,
                "amount": Decimal("100000.50"),
                "as_of": date(2024, 6, 30),
                "txn_status": TransactionStatus.POSTED,
            },
        )

        record = _parse_log(stream)
        assert record["transaction_uuid"] == str(txn_id)
        assert record["amount"] == "100000.50"
        assert record["as_of"] == "2024-06-30"
        assert record["txn_status"] == "posted"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(organization_id="org-1", return_id="r-1")
        get_logger("test").info("with context")

        record = _parse_log(stream)
        assert record["organization_id"] == "org-1"
        assert record["return_id"] == "r-1"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "organization_id" not in record
        assert "correlation_id" not in record

    def test_taxbook_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise UnbalancedEntryError(Decimal("100000"), Decimal("90000"), Decimal("0.01"))
        except UnbalancedEntryError:
            get_logger("test").exception("post_failed")

        record = _parse_log(stream)
        assert record["exc_type"] == "UnbalancedEntryError"
        assert record["exc_code"] == "UNBALANCED_ENTRY"
        assert record["exc_debits"] == "100000"
        assert record["exc_credits"] == "90000"
        assert "traceback" in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        for i in range(5):
            logger.info("line", extra={"i": i})

        records = _parse_all_logs(stream)
        assert [r["i"] for r in records] == list(range(5))


class TestLogContext:

    def setup_method(self):
        LogContext.clear()

    def test_set_and_get(self):
        LogContext.set(actor_id="u-1")
        assert LogContext.get_all() == {"actor_id": "u-1"}

    def test_none_values_ignored(self):
        LogContext.set(actor_id=None, receipt_id="rc-1")
        assert LogContext.get_all() == {"receipt_id": "rc-1"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(not_a_field="x")

    def test_clear(self):
        LogContext.set(correlation_id="c-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(organization_id="outer")
        with LogContext.bind(organization_id="inner", transaction_id="t-1"):
            assert LogContext.get_all()["organization_id"] == "inner"
            assert LogContext.get_all()["transaction_id"] == "t-1"
        assert LogContext.get_all() == {"organization_id": "outer"}

    def test_bind_skips_none(self):
        with LogContext.bind(organization_id=None, actor_id="u-2"):
            assert LogContext.get_all() == {"actor_id": "u-2"}
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        handler, _ = _make_handler()
        second = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)
        configure_logging(handler=second)

        # pytest may attach its own capture handlers; only ours matter here
        handlers = logging.getLogger("taxbook").handlers
        assert handler in handlers
        assert second not in handlers
        assert sum(isinstance(h.formatter, StructuredFormatter) for h in handlers) == 1

    def test_does_not_propagate(self):
        configure_logging(handler=_make_handler()[0])
        assert logging.getLogger("taxbook").propagate is False

    def test_level_applied(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("hidden")
        logger.warning("shown")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["shown"]

    def test_logger_hierarchy(self):
        assert get_logger("engines.tracer").parent.name in {"taxbook.engines", "taxbook"}
        assert get_logger("ledger").name == "taxbook.ledger"
