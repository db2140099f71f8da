"""
Unit tests for the journal entry builder.

Verifies:
- Expense and payment layouts
- Rounding residue lands on one flagged, unpinned line
- Pinned legs keep the authoritative functional amount
- Reversals are mirrored from persisted entries, never rebuilt
- Derived rates on large inverse-mode payments still balance
- Every built entry balances exactly (property test)
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.account_resolver import (
    resolve_expense_accounts,
    resolve_payment_accounts,
)
from ledger_kernel.domain.dtos import (
    JournalEntryRecord,
    JournalLineRecord,
    LineSide,
    RateResolution,
    TransactionState,
)
from ledger_kernel.domain.entry_builder import (
    LegSpec,
    build_entry,
    build_expense_entry,
    build_payment_entry,
    mirror_entry,
)
from ledger_kernel.domain.fx import derive_rate
from ledger_kernel.exceptions import ImbalancedEntryError


def _state(**overrides) -> TransactionState:
    values = dict(
        id=uuid4(),
        kind="expense",
        number="EXP-2024-001",
        transaction_date=date(2024, 6, 1),
        description="June office rent",
        amount=Decimal("100.00"),
        currency="USD",
        status="paid",
        payment_method="bank_transfer",
        calculation_method="amount_drives_functional",
        category="Office Rent",
        counterparty="Landlord Ltd",
    )
    values.update(overrides)
    return TransactionState(**values)


def _resolution(rate: str, amount: Decimal) -> RateResolution:
    rate_value = Decimal(rate)
    return RateResolution(
        rate=rate_value,
        functional_amount=round_money(amount * rate_value),
        rate_source="fx_rate_store",
    )


class TestExpenseEntry:
    def test_scenario_layout(self, policy):
        state = _state()
        accounts = resolve_expense_accounts(
            state.category, state.payment_method, "BDT", policy.accounts, "BDT",
        )
        draft = build_expense_entry(state, _resolution("110.0", state.amount), accounts, policy)

        assert draft.description == "Auto: Office Rent - June office rent"
        assert draft.reference == "EXP-2024-001"
        assert draft.source_document_type == "expense"
        assert draft.source_document_id == state.id
        assert draft.entry_date == date(2024, 6, 1)

        debit, credit = draft.lines
        assert (debit.account.code, debit.side, debit.functional_amount) == (
            "5000", LineSide.DEBIT, Decimal("11000.00"),
        )
        assert (credit.account.code, credit.side, credit.functional_amount) == (
            "1100", LineSide.CREDIT, Decimal("11000.00"),
        )
        assert credit.description == "Payment for June office rent"
        assert all(line.original_amount == Decimal("100.00") for line in draft.lines)
        assert all(line.fx_rate == Decimal("110.0") for line in draft.lines)
        assert not any(line.is_rounding for line in draft.lines)

    def test_uncategorized_description(self, policy):
        state = _state(category=None)
        accounts = resolve_expense_accounts(None, "cash", None, policy.accounts, "BDT")
        draft = build_expense_entry(state, _resolution("110", state.amount), accounts, policy)
        assert draft.description == "Auto: Uncategorized - June office rent"
        assert draft.lines[0].account.code == "5999"

    def test_functional_currency_uses_rate_one(self, policy):
        state = _state(currency="BDT", amount=Decimal("5000.00"))
        accounts = resolve_expense_accounts(
            state.category, "cash", None, policy.accounts, "BDT",
        )
        resolution = RateResolution(
            rate=Decimal("1"), functional_amount=Decimal("5000.00"), rate_source=None,
        )
        draft = build_expense_entry(state, resolution, accounts, policy)
        assert all(line.fx_rate == Decimal("1") for line in draft.lines)
        assert draft.total_debit == Decimal("5000.00")


class TestPaymentEntry:
    def test_rounding_residue_lands_on_cash_leg(self, policy):
        state = _state(
            kind="payment",
            number="PAY-2024-001",
            amount=Decimal("1000.00"),
            swift_fee=Decimal("12.35"),
            bank_charges=Decimal("7.77"),
            category=None,
            counterparty="Acme Corp",
        )
        accounts = resolve_payment_accounts(
            "USD", "bank_transfer", "USD", policy.accounts, "BDT",
        )
        draft = build_payment_entry(
            state, _resolution("109.876543", state.amount), accounts, policy,
        )

        by_code = {line.account.code: line for line in draft.lines}
        assert by_code["1400"].functional_amount == Decimal("109876.54")
        assert by_code["1400"].side == LineSide.CREDIT
        assert by_code["5400"].functional_amount == Decimal("1356.98")
        assert by_code["5500"].functional_amount == Decimal("853.74")
        # 979.88 * 109.876543 = 107665.83 before absorbing the 0.01 residue
        assert by_code["1200"].functional_amount == Decimal("107665.82")
        assert by_code["1200"].is_rounding is True
        assert [line.is_rounding for line in draft.lines].count(True) == 1

        assert draft.total_debit == draft.total_credit == Decimal("109876.54")
        assert draft.description == "Auto: Payment PAY-2024-001 from Acme Corp"

    def test_zero_fees_are_omitted(self, policy):
        state = _state(kind="payment", number="PAY-2024-002", category=None)
        accounts = resolve_payment_accounts(
            "USD", "bank_transfer", "USD", policy.accounts, "BDT",
        )
        draft = build_payment_entry(state, _resolution("110", state.amount), accounts, policy)
        assert [line.account.code for line in draft.lines] == ["1200", "1400"]
        assert [line.line_seq for line in draft.lines] == [1, 2]

    def test_large_inverse_mode_payment_balances(self, policy):
        state = _state(
            kind="payment",
            number="PAY-2024-003",
            amount=Decimal("1000000.00"),
            calculation_method="functional_drives_rate",
            functional_amount=Decimal("123456789.12"),
            category=None,
        )
        accounts = resolve_payment_accounts(
            "USD", "bank_transfer", "USD", policy.accounts, "BDT",
        )
        resolution = RateResolution(
            rate=derive_rate(Decimal("123456789.12"), state.amount),
            functional_amount=Decimal("123456789.12"),
            rate_source="derived",
        )
        assert resolution.rate == Decimal("123.456789")

        draft = build_payment_entry(state, resolution, accounts, policy)

        by_code = {line.account.code: line for line in draft.lines}
        assert by_code["1400"].functional_amount == Decimal("123456789.12")
        assert by_code["1200"].functional_amount == Decimal("123456789.12")
        assert by_code["1200"].is_rounding is True
        assert draft.total_debit == draft.total_credit == Decimal("123456789.12")

    def test_store_rate_keeps_strict_residue_limit(self, policy):
        state = _state(kind="payment", amount=Decimal("1000000.00"), category=None)
        accounts = resolve_payment_accounts(
            "USD", "bank_transfer", "USD", policy.accounts, "BDT",
        )
        resolution = RateResolution(
            rate=Decimal("123.456789"),
            functional_amount=Decimal("123456789.12"),
            rate_source="fx_rate_store",
        )
        with pytest.raises(ImbalancedEntryError):
            build_payment_entry(state, resolution, accounts, policy)

    @settings(max_examples=200, deadline=None)
    @given(
        amount_cents=st.integers(min_value=1, max_value=10**11),
        fee_cents=st.integers(min_value=0, max_value=10**6),
        charge_cents=st.integers(min_value=0, max_value=10**6),
        rate_micros=st.integers(min_value=10**4, max_value=10**9),
        skew_cents=st.integers(min_value=-10**6, max_value=10**6),
    )
    def test_derived_rate_payments_always_balance(
        self, policy, amount_cents, fee_cents, charge_cents, rate_micros, skew_cents,
    ):
        amount = Decimal(amount_cents + fee_cents + charge_cents).scaleb(-2)
        functional = round_money(amount * Decimal(rate_micros).scaleb(-6))
        functional += Decimal(skew_cents).scaleb(-2)
        assume(functional > 0)
        rate = derive_rate(functional, amount)
        assume(rate > 0)

        state = _state(
            kind="payment",
            amount=amount,
            swift_fee=Decimal(fee_cents).scaleb(-2),
            bank_charges=Decimal(charge_cents).scaleb(-2),
            calculation_method="functional_drives_rate",
            functional_amount=functional,
            category=None,
        )
        accounts = resolve_payment_accounts(
            "USD", "bank_transfer", "USD", policy.accounts, "BDT",
        )
        resolution = RateResolution(
            rate=rate, functional_amount=functional, rate_source="derived",
        )
        draft = build_payment_entry(state, resolution, accounts, policy)

        assert draft.total_debit == draft.total_credit == functional
        receivable = [line for line in draft.lines if line.account.code == "1400"]
        assert receivable[0].functional_amount == functional
        assert sum(1 for line in draft.lines if line.is_rounding) <= 1


class TestBuildEntry:
    def _legs(self, policy, debit: str, credit: str):
        catalog = policy.accounts
        return [
            LegSpec(catalog.default_expense, LineSide.DEBIT, Decimal(debit)),
            LegSpec(catalog.cash, LineSide.CREDIT, Decimal(credit)),
        ]

    def _build(self, policy, legs, **overrides):
        values = dict(
            entry_date=date(2024, 6, 1),
            description="Manual",
            reference=None,
            source_document_type=None,
            source_document_id=None,
            original_currency="USD",
            rate=Decimal("110"),
            legs=legs,
            policy=policy,
        )
        values.update(overrides)
        return build_entry(**values)

    def test_unbalanced_original_legs_rejected(self, policy):
        with pytest.raises(ImbalancedEntryError):
            self._build(policy, self._legs(policy, "100.00", "99.99"))

    def test_residue_beyond_rounding_rejected(self, policy):
        catalog = policy.accounts
        legs = [
            LegSpec(catalog.default_expense, LineSide.DEBIT, Decimal("100"),
                    functional_amount=Decimal("11000.00")),
            LegSpec(catalog.cash, LineSide.CREDIT, Decimal("100"),
                    functional_amount=Decimal("10000.00")),
        ]
        with pytest.raises(ImbalancedEntryError):
            self._build(policy, legs)

    def test_fully_pinned_residue_rejected(self, policy):
        catalog = policy.accounts
        legs = [
            LegSpec(catalog.default_expense, LineSide.DEBIT, Decimal("100"),
                    functional_amount=Decimal("11000.01")),
            LegSpec(catalog.cash, LineSide.CREDIT, Decimal("100"),
                    functional_amount=Decimal("11000.00")),
        ]
        with pytest.raises(ImbalancedEntryError):
            self._build(policy, legs)

    def test_reversal_flag_not_accepted(self, policy):
        state = _state()
        accounts = resolve_expense_accounts(
            state.category, state.payment_method, "BDT", policy.accounts, "BDT",
        )
        with pytest.raises(TypeError):
            build_expense_entry(
                state, _resolution("110", state.amount), accounts, policy, is_reversal=True,
            )
        with pytest.raises(TypeError):
            self._build(policy, self._legs(policy, "100", "100"), is_reversal=True)

    def test_reversal_link_keeps_sides(self, policy):
        original_id = uuid4()
        draft = self._build(
            policy, self._legs(policy, "100", "100"), reversal_of_id=original_id,
        )
        assert draft.is_reversal
        assert draft.reversal_of_id == original_id
        assert draft.description == "Manual"
        assert [line.side for line in draft.lines] == [LineSide.DEBIT, LineSide.CREDIT]

    def test_rate_tolerance_widens_residue_limit(self, policy):
        catalog = policy.accounts
        legs = [
            LegSpec(catalog.default_expense, LineSide.DEBIT, Decimal("1000000.00")),
            LegSpec(catalog.cash, LineSide.CREDIT, Decimal("1000000.00"),
                    functional_amount=Decimal("123456789.12")),
        ]
        with pytest.raises(ImbalancedEntryError):
            self._build(policy, legs, rate=Decimal("123.456789"))

        draft = self._build(
            policy, legs, rate=Decimal("123.456789"), rate_tolerance=Decimal("0.0000005"),
        )
        assert draft.lines[0].functional_amount == Decimal("123456789.12")
        assert draft.lines[0].is_rounding is True

    @settings(max_examples=200, deadline=None)
    @given(
        amount_cents=st.integers(min_value=1, max_value=10**9),
        fee_cents=st.integers(min_value=0, max_value=10**6),
        charge_cents=st.integers(min_value=0, max_value=10**6),
        rate_micros=st.integers(min_value=1, max_value=10**9),
    )
    def test_payment_entries_always_balance(
        self, policy, amount_cents, fee_cents, charge_cents, rate_micros,
    ):
        amount = Decimal(amount_cents + fee_cents + charge_cents).scaleb(-2)
        rate = Decimal(rate_micros).scaleb(-6)
        state = _state(
            kind="payment",
            amount=amount,
            swift_fee=Decimal(fee_cents).scaleb(-2),
            bank_charges=Decimal(charge_cents).scaleb(-2),
            category=None,
        )
        accounts = resolve_payment_accounts(
            "USD", "bank_transfer", "USD", policy.accounts, "BDT",
        )
        resolution = RateResolution(
            rate=rate, functional_amount=round_money(amount * rate), rate_source=None,
        )
        draft = build_payment_entry(state, resolution, accounts, policy)
        assert draft.total_debit == draft.total_credit
        assert sum(1 for line in draft.lines if line.is_rounding) <= 1


class TestMirrorEntry:
    def test_mirror_swaps_sides_keeps_amounts(self):
        entry_id = uuid4()
        source_id = uuid4()
        original = JournalEntryRecord(
            id=entry_id,
            entry_number="JE-2024-0001",
            entry_date=date(2024, 6, 1),
            description="Auto: Office Rent - June office rent",
            reference="EXP-2024-001",
            total_debit=Decimal("11000.00"),
            total_credit=Decimal("11000.00"),
            functional_currency="BDT",
            status="posted",
            source_document_type="expense",
            source_document_id=source_id,
            is_auto_generated=True,
            reversal_of_id=None,
            posted_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
            created_by_id=uuid4(),
            lines=(
                JournalLineRecord(
                    1, "5000", "Office Rent", "expense",
                    Decimal("11000.00"), Decimal("0"), Decimal("11000.00"), Decimal("0"),
                    "USD", Decimal("100.00"), Decimal("110.000000"), "June office rent", False,
                ),
                JournalLineRecord(
                    2, "1100", "Bank - Local Currency", "asset",
                    Decimal("0"), Decimal("11000.00"), Decimal("0"), Decimal("11000.00"),
                    "USD", Decimal("100.00"), Decimal("110.000000"), None, False,
                ),
            ),
        )

        draft = mirror_entry(original)

        assert draft.reversal_of_id == entry_id
        assert draft.source_document_id == source_id
        assert draft.entry_date == date(2024, 6, 1)
        assert draft.description == "Reversal: Auto: Office Rent - June office rent"
        first, second = draft.lines
        assert (first.account.code, first.side, first.functional_amount) == (
            "5000", LineSide.CREDIT, Decimal("11000.00"),
        )
        assert (second.account.code, second.side, second.functional_amount) == (
            "1100", LineSide.DEBIT, Decimal("11000.00"),
        )
        assert first.description == "Reversal: June office rent"
        assert first.original_amount == Decimal("100.00")
        assert first.fx_rate == Decimal("110.000000")
        assert draft.total_debit == draft.total_credit
