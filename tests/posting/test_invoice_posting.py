"""
Invoice postings: receivable against local or export revenue.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger_kernel.domain.dtos import LineSide
from ledger_kernel.exceptions import InvalidTransactionError, MissingRateError
from ledger_kernel.models.fx_rate import FxRate
from ledger_kernel.models.fx_snapshot import FxRateSnapshot


def _layout(record):
    return [(line.account_code, line.side, line.amount) for line in record.lines]


class TestInvoiceLayout:
    def test_export_invoice_posts_at_stored_rate(
        self, seed_rate, make_invoice, journal_selector, session,
    ):
        seed_rate("USD", "110", date(2024, 6, 1))
        change = make_invoice(status="paid")

        entry = journal_selector.by_id(change.outcome.posted_entry_id)
        assert _layout(entry) == [
            ("1400", LineSide.DEBIT, Decimal("110000.00")),
            ("4100", LineSide.CREDIT, Decimal("110000.00")),
        ]
        assert entry.description == "Auto: Invoice INV-2024-001 - Acme Corp"
        assert entry.reference == "INV-2024-001"
        assert entry.source_document_type == "invoice"
        assert all(line.original_amount == Decimal("1000.00") for line in entry.lines)
        assert all(line.original_currency == "USD" for line in entry.lines)
        assert [line.description for line in entry.lines] == [
            "Invoice INV-2024-001", "Revenue for INV-2024-001",
        ]

        snapshot = session.execute(
            select(FxRateSnapshot).where(FxRateSnapshot.transaction_id == change.state.id)
        ).scalar_one()
        assert snapshot.transaction_table == "invoices"
        assert snapshot.rate == Decimal("110")

    def test_local_invoice_posts_local_revenue(self, make_invoice, journal_selector):
        change = make_invoice(status="paid", currency="BDT", amount=Decimal("172500.00"))

        entry = journal_selector.by_id(change.outcome.posted_entry_id)
        assert _layout(entry) == [
            ("1300", LineSide.DEBIT, Decimal("172500.00")),
            ("4000", LineSide.CREDIT, Decimal("172500.00")),
        ]
        assert all(line.fx_rate_used == Decimal("1") for line in entry.lines)

    def test_manual_rate_seeds_store_as_invoice(self, make_invoice, session):
        make_invoice(status="paid", exchange_rate=Decimal("117.25"))

        stored = session.execute(
            select(FxRate).where(
                FxRate.from_currency == "USD",
                FxRate.effective_date == date(2024, 6, 1),
            )
        ).scalar_one()
        assert stored.rate == Decimal("117.25")
        assert stored.source == "Invoice"
        assert stored.notes == "From invoice: INV-2024-001"

    def test_missing_rate_leaves_invoice_unposted(
        self, make_invoice, transaction_service, test_actor_id, journal_selector,
    ):
        change = make_invoice()
        with pytest.raises(MissingRateError):
            transaction_service.update(change.state.id, test_actor_id, status="paid")

        assert transaction_service.get(change.state.id).status == "pending"
        assert journal_selector.entries_for_source("invoices", change.state.id) == []

    def test_invoice_rejects_deductions(self, make_invoice):
        with pytest.raises(InvalidTransactionError) as exc_info:
            make_invoice(swift_fee=Decimal("10.00"))
        assert exc_info.value.field == "swift_fee"


class TestInvoiceLifecycle:
    def test_amount_change_reposts_with_reversal(
        self, seed_rate, make_invoice, transaction_service, test_actor_id, journal_selector,
    ):
        seed_rate("USD", "110", date(2024, 6, 1))
        change = make_invoice(status="paid")

        updated = transaction_service.update(
            change.state.id, test_actor_id, amount=Decimal("1200.00"),
        )

        reversal = journal_selector.by_id(updated.outcome.reversal_entry_id)
        assert reversal.reversal_of_id == change.outcome.posted_entry_id
        assert _layout(reversal) == [
            ("1400", LineSide.CREDIT, Decimal("110000.00")),
            ("4100", LineSide.DEBIT, Decimal("110000.00")),
        ]
        repost = journal_selector.by_id(updated.outcome.posted_entry_id)
        assert repost.total_debit == Decimal("132000.00")
        assert journal_selector.active_entry("invoices", change.state.id).id == repost.id

    def test_delete_reverses_once(
        self, seed_rate, make_invoice, transaction_service, test_actor_id, journal_selector,
    ):
        seed_rate("USD", "110", date(2024, 6, 1))
        change = make_invoice(status="paid")

        deleted = transaction_service.delete(change.state.id, test_actor_id)
        again = transaction_service.delete(change.state.id, test_actor_id)

        assert deleted.outcome.reversal_entry_id is not None
        assert again.outcome.is_noop
        entries = journal_selector.entries_for_source("invoices", change.state.id)
        assert len(entries) == 2
        assert journal_selector.check_all_balanced(Decimal("0"))

    def test_invoice_then_payment_clears_receivable(
        self, seed_rate, make_invoice, make_payment, journal_selector,
    ):
        seed_rate("USD", "110", date(2024, 6, 1))
        invoice = make_invoice(status="paid")
        payment = make_payment(status="paid")

        receivable = Decimal("0")
        for change, table in ((invoice, "invoices"), (payment, "payments")):
            entry = journal_selector.active_entry(table, change.state.id)
            for line in entry.lines:
                if line.account_code == "1400":
                    receivable += line.debit_amount - line.credit_amount
        assert receivable == Decimal("0")
