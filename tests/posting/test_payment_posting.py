"""
Payment postings: gross receivable, net cash receipt and fee deductions.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import LineSide


def _by_code(record):
    return {line.account_code: line for line in record.lines}


class TestPaymentLayout:
    def test_foreign_payment_with_deductions(
        self, make_payment, journal_selector, transaction_service,
    ):
        change = make_payment(
            status="paid",
            amount=Decimal("1000.00"),
            swift_fee=Decimal("12.35"),
            bank_charges=Decimal("7.77"),
            exchange_rate=Decimal("109.876543"),
        )

        entry = journal_selector.by_id(change.outcome.posted_entry_id)
        lines = _by_code(entry)

        assert set(lines) == {"1200", "5400", "5500", "1400"}
        assert lines["1400"].side == LineSide.CREDIT
        assert lines["1400"].amount == Decimal("109876.54")
        assert lines["1400"].original_amount == Decimal("1000.00")
        assert lines["1200"].original_amount == Decimal("979.88")
        assert lines["5400"].amount == Decimal("1356.98")
        assert lines["5500"].amount == Decimal("853.74")
        assert lines["1200"].amount == Decimal("107665.82")
        assert lines["1200"].is_rounding is True
        assert [line.is_rounding for line in entry.lines].count(True) == 1

        assert entry.total_debit == entry.total_credit == Decimal("109876.54")
        assert entry.description == "Auto: Payment PAY-2024-001 from Acme Corp"

        state = transaction_service.get(change.state.id)
        assert state.functional_amount == Decimal("109876.54")
        assert state.rate_source == "manual"

    def test_local_payment_uses_local_accounts(
        self, make_payment, create_bank_account, journal_selector,
    ):
        bdt_account = create_bank_account("BDT", name="Dhaka Main")
        change = make_payment(
            status="paid",
            currency="BDT",
            amount=Decimal("50000.00"),
            bank_account_id=bdt_account.id,
        )
        entry = journal_selector.by_id(change.outcome.posted_entry_id)
        assert [(line.account_code, line.side) for line in entry.lines] == [
            ("1100", LineSide.DEBIT),
            ("1300", LineSide.CREDIT),
        ]
        assert entry.total_debit == Decimal("50000.00")

    def test_fee_change_while_paid_reposts(
        self, make_payment, transaction_service, test_actor_id, journal_selector,
    ):
        change = make_payment(status="paid", exchange_rate=Decimal("110"))
        updated = transaction_service.update(
            change.state.id, test_actor_id, swift_fee=Decimal("20.00"),
        )
        assert updated.outcome.reversal_entry_id is not None
        repost = journal_selector.by_id(updated.outcome.posted_entry_id)
        lines = _by_code(repost)
        assert lines["5400"].amount == Decimal("2200.00")
        assert lines["1200"].amount == Decimal("107800.00")
        assert lines["1400"].amount == Decimal("110000.00")


class TestBalanceInvariant:
    @pytest.mark.parametrize(
        "amount, swift_fee, bank_charges, rate",
        [
            ("1000.00", "0", "0", "110"),
            ("1234.57", "15.00", "3.33", "109.123457"),
            ("0.01", "0", "0", "117.555555"),
            ("999999.99", "25.50", "10.01", "0.007919"),
            ("333.33", "33.33", "33.33", "121.111111"),
        ],
    )
    def test_every_payment_entry_balances(
        self, make_payment, journal_selector, policy, amount, swift_fee, bank_charges, rate,
    ):
        make_payment(
            status="paid",
            amount=Decimal(amount),
            swift_fee=Decimal(swift_fee),
            bank_charges=Decimal(bank_charges),
            exchange_rate=Decimal(rate),
        )
        assert journal_selector.check_all_balanced(Decimal("0"))
        assert journal_selector.unbalanced_entries(policy.balance_tolerance) == []

    @pytest.mark.parametrize(
        "amount, functional_amount, swift_fee",
        [
            ("1000000.00", "123456789.12", "0"),
            ("2500000.00", "274999999.99", "45.00"),
            ("987654.32", "1.00", "0"),
        ],
    )
    def test_large_functional_drives_rate_payment_posts(
        self, make_payment, journal_selector, transaction_service,
        amount, functional_amount, swift_fee,
    ):
        change = make_payment(
            status="paid",
            amount=Decimal(amount),
            swift_fee=Decimal(swift_fee),
            calculation_method="functional_drives_rate",
            functional_amount=Decimal(functional_amount),
        )

        entry = journal_selector.by_id(change.outcome.posted_entry_id)
        lines = _by_code(entry)
        assert lines["1400"].amount == Decimal(functional_amount)
        assert entry.total_debit == entry.total_credit == Decimal(functional_amount)
        assert journal_selector.check_all_balanced(Decimal("0"))

        state = transaction_service.get(change.state.id)
        assert state.functional_amount == Decimal(functional_amount)
        assert state.rate_source == "derived"
