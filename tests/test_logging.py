"""
Structured logging: JSON formatting, context propagation and the fields
posting logs carry.
"""

import json
import logging
import sys
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import MissingRateError
from ledger_kernel.logging_config import LogContext, StructuredFormatter, get_logger


def _format(record: logging.LogRecord) -> dict:
    return json.loads(StructuredFormatter().format(record))


def _record(msg="event", exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "ledger_kernel.test", logging.INFO, __file__, 1, msg, (), exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_base_fields(self):
        payload = _format(_record("posting_completed"))
        assert payload["message"] == "posting_completed"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "ledger_kernel.test"
        assert "ts" in payload

    def test_extras_are_serialized(self):
        entry_id = uuid4()
        payload = _format(
            _record(rate=Decimal("109.876543"), entry_id=entry_id, as_of=date(2024, 6, 1))
        )
        assert payload["rate"] == "109.876543"
        assert payload["entry_id"] == str(entry_id)
        assert payload["as_of"] == "2024-06-01"

    def test_kernel_error_fields(self):
        try:
            raise MissingRateError("USD", "BDT", date(2024, 6, 1))
        except MissingRateError:
            payload = _format(_record("posting_failed", exc_info=sys.exc_info()))

        assert payload["exc_type"] == "MissingRateError"
        assert payload["exc_code"] == "MISSING_RATE"
        assert payload["exc_from_currency"] == "USD"
        assert payload["exc_to_currency"] == "BDT"
        assert "traceback" in payload


class TestLogContext:
    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", transaction_id="t-1"):
            assert LogContext.get_all() == {"actor_id": "inner", "transaction_id": "t-1"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_context_lands_in_payload(self):
        with LogContext.bind(correlation_id="req-42"):
            payload = _format(_record())
        assert payload["correlation_id"] == "req-42"

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            LogContext.set(invoice_id="INV-001")

    def test_get_logger_namespaces(self):
        assert get_logger("posting").name == "ledger_kernel.posting"


class TestPostingLogs:
    def test_posting_log_carries_transaction_context(
        self, seed_rate, make_expense, test_actor_id, captured_logs,
    ):
        seed_rate("USD", "110", date(2024, 6, 1))
        change = make_expense(status="paid")

        completed = [r for r in captured_logs() if r["message"] == "posting_completed"]
        assert len(completed) == 1
        record = completed[0]
        assert record["transaction_id"] == str(change.state.id)
        assert record["actor_id"] == str(test_actor_id)
        assert record["source_table"] == "expenses"
        assert record["entry_number"] == "JE-2024-0001"
        assert Decimal(record["rate"]) == Decimal("110")
        assert record["rate_source"] == "fx_rate_store"
