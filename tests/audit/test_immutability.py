"""
Append-only enforcement through ORM listeners.

Posted journal entries and their lines, audit records and journal links can
never be modified or deleted; FX rates are never hard-deleted.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidExchangeRateError,
)
from ledger_kernel.models.audit_record import AuditRecord
from ledger_kernel.models.auto_journal_link import AutoJournalLink
from ledger_kernel.models.fx_rate import FxRate
from ledger_kernel.models.journal import JournalEntry


@pytest.fixture
def posted_entry(make_expense, session) -> JournalEntry:
    change = make_expense(currency="BDT", status="paid")
    return session.get(JournalEntry, change.outcome.posted_entry_id)


class TestPostedEntries:
    def test_header_cannot_be_modified(self, session, posted_entry):
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            with session.begin_nested():
                posted_entry.description = "Rewritten history"
                session.flush()
        assert exc_info.value.entity_type == "JournalEntry"
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_cannot_be_deleted(self, session, posted_entry):
        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                session.delete(posted_entry)
                session.flush()

    def test_lines_cannot_be_modified(self, session, posted_entry):
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            with session.begin_nested():
                posted_entry.lines[0].debit_amount = Decimal("1.00")
                session.flush()
        assert exc_info.value.entity_type == "JournalEntryLine"


class TestAppendOnlyTables:
    def test_audit_records_cannot_change(self, session, posted_entry):
        record = session.execute(select(AuditRecord).limit(1)).scalar_one()
        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                record.description = "tampered"
                session.flush()
        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                session.delete(record)
                session.flush()

    def test_links_cannot_be_deleted(self, session, posted_entry):
        link = session.execute(
            select(AutoJournalLink).where(AutoJournalLink.journal_entry_id == posted_entry.id)
        ).scalar_one()
        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                session.delete(link)
                session.flush()


class TestFxRates:
    def test_rates_are_never_deleted(self, session, seed_rate):
        result = seed_rate("USD", "110", date(2024, 6, 1))
        rate = session.get(FxRate, result.rate_id)
        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                session.delete(rate)
                session.flush()

    def test_rate_value_checked_on_write(self, session, seed_rate):
        result = seed_rate("USD", "110", date(2024, 6, 1))
        rate = session.get(FxRate, result.rate_id)
        with pytest.raises(InvalidExchangeRateError):
            with session.begin_nested():
                rate.rate = Decimal("0")
                session.flush()
