"""
Tests for settlement_kernel.logging_config.

- Records render as one JSON object with context, extras and exception fields.
- LogContext.bind restores the previous context, including unset fields.
- configure_logging attaches exactly one handler.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from settlement_kernel.domain.workflow import PayApplicationStatus
from settlement_kernel.exceptions import OverScheduleError
from settlement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted():
    """Configure the kernel logger onto a buffer; returns a reader of parsed records."""
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)

    def configure(level=logging.INFO):
        configure_logging(handler=handler, level=level)
        return lambda: [json.loads(line) for line in buffer.getvalue().splitlines() if line]

    return configure


class TestRecordShape:

    def test_envelope(self, emitted):
        records = emitted()
        get_logger("ledger").info("line_item_created")
        (record,) = records()
        assert record["logger"] == "settlement_kernel.ledger"
        assert record["level"] == "INFO"
        assert record["message"] == "line_item_created"
        assert record["ts"].endswith("+00:00")

    @pytest.mark.parametrize(
        "value, rendered",
        [
            (Decimal("12.50"), "12.50"),
            (PayApplicationStatus.UNDER_REVIEW, "under_review"),
            (7, 7),
        ],
    )
    def test_extra_values(self, emitted, value, rendered):
        records = emitted()
        get_logger("ledger").info("expense_approved", extra={"amount": value})
        assert records()[0]["amount"] == rendered

    def test_uuid_extra(self, emitted):
        records = emitted()
        line_item_id = uuid4()
        get_logger("ledger").info("materials_updated", extra={"line_item_id": line_item_id})
        assert records()[0]["line_item_id"] == str(line_item_id)

    def test_context_merged(self, emitted):
        records = emitted()
        LogContext.set(correlation_id="req-9", operation="finalize")
        get_logger("workflow").info("pay_application_finalized")
        record = records()[0]
        assert (record["correlation_id"], record["operation"]) == ("req-9", "finalize")
        assert "actor_id" not in record

    def test_plain_exception(self, emitted):
        records = emitted()
        try:
            {}["missing"]
        except KeyError:
            get_logger("ledger").exception("lookup_failed")
        record = records()[0]
        assert record["level"] == "ERROR"
        assert record["exc_type"] == "KeyError"
        assert "Traceback" in record["traceback"]
        assert "exc_code" not in record

    def test_kernel_exception_attributes(self, emitted):
        records = emitted()
        try:
            raise OverScheduleError("line-7", "25000", "30000")
        except OverScheduleError:
            get_logger("ledger").error("approval_failed", exc_info=True)
        record = records()[0]
        assert record["exc_code"] == "OVER_SCHEDULE"
        assert record["exc_line_item_id"] == "line-7"
        assert record["exc_scheduled_value"] == "25000"
        assert record["exc_attempted_total"] == "30000"

    def test_level_threshold(self, emitted):
        records = emitted(level=logging.WARNING)
        log = get_logger("ledger")
        log.info("quiet")
        log.warning("loud")
        assert [r["message"] for r in records()] == ["loud"]


class TestLogContext:

    def test_set_ignores_none(self):
        LogContext.set(actor_id="a", project_id=None)
        assert LogContext.get_all() == {"actor_id": "a"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="x")

    def test_nested_bind_restores_each_level(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="mid", pay_application_id="pa-1"):
            with LogContext.bind(operation="approve"):
                assert LogContext.get_all() == {
                    "correlation_id": "mid",
                    "pay_application_id": "pa-1",
                    "operation": "approve",
                }
            assert "operation" not in LogContext.get_all()
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor_id="a"):
                raise RuntimeError
        assert LogContext.get_all() == {}

    def test_clear(self):
        LogContext.set(correlation_id="c", actor_id="a", project_id="p", pay_application_id="n", operation="o")
        assert len(LogContext.get_all()) == len(LogContext.FIELDS)
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestEngineContext:

    def test_operation_log_carries_request_fields(self, settlement_engine, contractor, project, captured_logs):
        configure_logging(level=logging.DEBUG)
        settlement_engine.create_draft(contractor, project.id)
        completed = [r for r in captured_logs() if r["message"] == "operation_completed"]
        assert completed[-1]["operation"] == "create_draft"
        assert completed[-1]["actor_id"] == str(contractor.id)
        assert completed[-1]["project_id"] == str(project.id)
        assert "correlation_id" in completed[-1]
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_second_call_is_ignored(self):
        first, second = logging.NullHandler(), logging.NullHandler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        kernel = logging.getLogger("settlement_kernel")
        assert kernel.handlers == [first]
        assert isinstance(first.formatter, StructuredFormatter)
        assert kernel.propagate is False

    def test_reset_allows_reconfigure(self):
        configure_logging(handler=logging.NullHandler())
        reset_logging()
        assert logging.getLogger("settlement_kernel").handlers == []
        configure_logging(level=logging.ERROR, handler=logging.NullHandler())
        assert logging.getLogger("settlement_kernel").level == logging.ERROR

    def test_child_loggers_share_handler(self, emitted):
        records = emitted(level=logging.DEBUG)
        get_logger("services.review_workflow").debug("cursor_moved")
        assert records()[0]["logger"] == "settlement_kernel.services.review_workflow"
