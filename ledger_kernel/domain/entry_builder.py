"""
Journal entry builder -- pure assembly of balanced entries.

Responsibility:
    Turns a transaction, its resolved rate and its resolved accounts into a
    JournalEntryDraft whose functional debits equal its functional credits.
    Numbering and persistence happen later in JournalStore.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Original-currency legs must balance exactly before conversion.
    - Each leg converts independently (ROUND_HALF_UP to minor units) unless
      its functional amount is pinned to the transaction's authoritative
      functional amount.
    - Conversion residue is absorbed by the largest unpinned line, which is
      flagged ``is_rounding``.  A residue larger than rounding can explain is
      a programming fault and raises ImbalancedEntryError.
    - A reversal is a NEW entry with the same accounts and amounts and the
      sides swapped.

Failure modes:
    - ImbalancedEntryError when legs do not balance or the residue cannot
      be attributed to rounding.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.account_resolver import (
    ExpenseAccounts,
    InvoiceAccounts,
    PaymentAccounts,
)
from ledger_kernel.domain.dtos import (
    JournalEntryDraft,
    JournalEntryRecord,
    LineDraft,
    LineSide,
    RateResolution,
    TransactionState,
)
from ledger_kernel.domain.fx import RATE_SOURCE_DERIVED
from ledger_kernel.domain.policy import AccountRef, PostingPolicy
from ledger_kernel.exceptions import ImbalancedEntryError

REVERSAL_PREFIX = "Reversal: "

ZERO = Decimal("0")
ONE = Decimal("1")


@dataclass(frozen=True)
class LegSpec:
    """
    One line to be built, in original currency.

    ``functional_amount`` pins the converted value; pinned legs never absorb
    the rounding residue.
    """

    account: AccountRef
    side: LineSide
    original_amount: Decimal
    description: str | None = None
    functional_amount: Decimal | None = None


def _reversal_text(text: str | None) -> str | None:
    if text is None:
        return None
    return f"{REVERSAL_PREFIX}{text}"


def _side_total(lines, side: LineSide) -> Decimal:
    return sum((line[2] for line in lines if line[0].side == side), ZERO)


def _rate_tolerance(resolution: RateResolution, policy: PostingPolicy) -> Decimal:
    # Derived rates are rounded; caller and store rates are exact inputs
    if resolution.rate_source == RATE_SOURCE_DERIVED:
        return Decimal("0.5").scaleb(-policy.rate_places)
    return ZERO


def build_entry(
    *,
    entry_date: date,
    description: str,
    reference: str | None,
    source_document_type: str | None,
    source_document_id: UUID | None,
    original_currency: str,
    rate: Decimal,
    legs: list[LegSpec],
    policy: PostingPolicy,
    reversal_of_id: UUID | None = None,
    rate_tolerance: Decimal = ZERO,
) -> JournalEntryDraft:
    """
    Build a balanced entry from original-currency legs.

    When ``original_currency`` is the functional currency the rate is forced
    to 1 regardless of the value passed.

    ``rate_tolerance`` is how far ``rate`` may sit from the exact ratio it
    was rounded from (half a unit in the last rate place for a derived
    rate).  Unpinned legs may then drift from pinned ones by up to
    ``original_amount * rate_tolerance`` each, and the residue limit grows
    accordingly.

    Raises:
        ImbalancedEntryError: If legs do not balance in original currency or
            the functional residue exceeds what rounding can produce.
    """
    legs = [leg for leg in legs if leg.original_amount != ZERO]

    orig_debits = sum((leg.original_amount for leg in legs if leg.side == LineSide.DEBIT), ZERO)
    orig_credits = sum((leg.original_amount for leg in legs if leg.side == LineSide.CREDIT), ZERO)
    if orig_debits != orig_credits:
        raise ImbalancedEntryError(str(orig_debits), str(orig_credits), original_currency)

    rate_used = ONE if original_currency == policy.functional_currency else rate
    places = policy.minor_unit_places

    # (leg, pinned, functional_amount)
    converted = [
        (
            leg,
            leg.functional_amount is not None,
            leg.functional_amount
            if leg.functional_amount is not None
            else round_money(leg.original_amount * rate_used, places),
        )
        for leg in legs
    ]

    residue = _side_total(converted, LineSide.DEBIT) - _side_total(converted, LineSide.CREDIT)
    rounding_index: int | None = None
    if residue != ZERO:
        unit = ONE.scaleb(-places)
        drift = sum(
            (leg.original_amount for leg, pinned, _ in converted if not pinned), ZERO,
        ) * rate_tolerance
        if abs(residue) > unit * len(converted) + drift:
            raise ImbalancedEntryError(
                str(_side_total(converted, LineSide.DEBIT)),
                str(_side_total(converted, LineSide.CREDIT)),
                policy.functional_currency,
            )
        candidates = [i for i, (_, pinned, _) in enumerate(converted) if not pinned]
        if not candidates:
            raise ImbalancedEntryError(
                str(_side_total(converted, LineSide.DEBIT)),
                str(_side_total(converted, LineSide.CREDIT)),
                policy.functional_currency,
            )
        rounding_index = max(candidates, key=lambda i: converted[i][2])
        leg, pinned, amount = converted[rounding_index]
        adjusted = amount - residue if leg.side == LineSide.DEBIT else amount + residue
        converted[rounding_index] = (leg, pinned, adjusted)

    lines = tuple(
        LineDraft(
            line_seq=seq,
            account=leg.account,
            side=leg.side,
            functional_amount=amount,
            original_currency=original_currency,
            original_amount=leg.original_amount,
            fx_rate=rate_used,
            description=leg.description,
            is_rounding=(index == rounding_index),
        )
        for seq, (index, (leg, _, amount)) in enumerate(enumerate(converted), start=1)
    )

    draft = JournalEntryDraft(
        entry_date=entry_date,
        description=description,
        reference=reference,
        functional_currency=policy.functional_currency,
        source_document_type=source_document_type,
        source_document_id=source_document_id,
        lines=lines,
        reversal_of_id=reversal_of_id,
    )
    if draft.total_debit != draft.total_credit:
        raise ImbalancedEntryError(
            str(draft.total_debit), str(draft.total_credit), policy.functional_currency
        )
    return draft


def expense_description(state: TransactionState) -> str:
    return f"Auto: {state.category or 'Uncategorized'} - {state.description}"


def payment_description(state: TransactionState) -> str:
    if state.counterparty:
        return f"Auto: Payment {state.number} from {state.counterparty}"
    return f"Auto: Payment {state.number}"


def invoice_description(state: TransactionState) -> str:
    if state.counterparty:
        return f"Auto: Invoice {state.number} - {state.counterparty}"
    return f"Auto: Invoice {state.number}"


def build_expense_entry(
    state: TransactionState,
    resolution: RateResolution,
    accounts: ExpenseAccounts,
    policy: PostingPolicy,
) -> JournalEntryDraft:
    """Debit the expense account, credit cash/bank, both at the functional amount."""
    legs = [
        LegSpec(
            account=accounts.debit,
            side=LineSide.DEBIT,
            original_amount=state.amount,
            description=state.description,
            functional_amount=resolution.functional_amount,
        ),
        LegSpec(
            account=accounts.credit,
            side=LineSide.CREDIT,
            original_amount=state.amount,
            description=f"Payment for {state.description}",
            functional_amount=resolution.functional_amount,
        ),
    ]
    return build_entry(
        entry_date=state.transaction_date,
        description=expense_description(state),
        reference=state.number,
        source_document_type=state.kind,
        source_document_id=state.id,
        original_currency=state.currency,
        rate=resolution.rate,
        legs=legs,
        policy=policy,
    )


def build_payment_entry(
    state: TransactionState,
    resolution: RateResolution,
    accounts: PaymentAccounts,
    policy: PostingPolicy,
) -> JournalEntryDraft:
    """
    Debit cash/bank for the net receipt and the fee accounts for deductions;
    credit the receivable for the gross amount.

    The receivable leg is pinned to the transaction's functional amount, so
    conversion residue lands on the cash/bank leg.  With a derived rate the
    residue can exceed a few minor units on large amounts; it still lands
    there.
    """
    legs = [
        LegSpec(
            account=accounts.cash_leg,
            side=LineSide.DEBIT,
            original_amount=state.net_amount,
            description=f"Payment received {state.number}",
        ),
        LegSpec(
            account=accounts.swift_fee,
            side=LineSide.DEBIT,
            original_amount=state.swift_fee,
            description=f"SWIFT fee {state.number}",
        ),
        LegSpec(
            account=accounts.bank_charges,
            side=LineSide.DEBIT,
            original_amount=state.bank_charges,
            description=f"Bank charges {state.number}",
        ),
        LegSpec(
            account=accounts.receivable,
            side=LineSide.CREDIT,
            original_amount=state.amount,
            description=f"Payment allocation {state.number}",
            functional_amount=resolution.functional_amount,
        ),
    ]
    return build_entry(
        entry_date=state.transaction_date,
        description=payment_description(state),
        reference=state.number,
        source_document_type=state.kind,
        source_document_id=state.id,
        original_currency=state.currency,
        rate=resolution.rate,
        legs=legs,
        policy=policy,
        rate_tolerance=_rate_tolerance(resolution, policy),
    )


def build_invoice_entry(
    state: TransactionState,
    resolution: RateResolution,
    accounts: InvoiceAccounts,
    policy: PostingPolicy,
) -> JournalEntryDraft:
    """Debit the receivable, credit revenue, both at the functional amount."""
    legs = [
        LegSpec(
            account=accounts.receivable,
            side=LineSide.DEBIT,
            original_amount=state.amount,
            description=f"Invoice {state.number}",
            functional_amount=resolution.functional_amount,
        ),
        LegSpec(
            account=accounts.revenue,
            side=LineSide.CREDIT,
            original_amount=state.amount,
            description=f"Revenue for {state.number}",
            functional_amount=resolution.functional_amount,
        ),
    ]
    return build_entry(
        entry_date=state.transaction_date,
        description=invoice_description(state),
        reference=state.number,
        source_document_type=state.kind,
        source_document_id=state.id,
        original_currency=state.currency,
        rate=resolution.rate,
        legs=legs,
        policy=policy,
    )


def mirror_entry(original: JournalEntryRecord) -> JournalEntryDraft:
    """
    Build the reversal of a persisted entry.

    Same accounts, same functional and original amounts, same rate, sides
    swapped.  Dated on the original entry's date.
    """
    lines = tuple(
        LineDraft(
            line_seq=line.line_seq,
            account=line.to_account_ref(),
            side=line.side.opposite(),
            functional_amount=line.amount,
            original_currency=line.original_currency,
            original_amount=line.original_amount,
            fx_rate=line.fx_rate_used,
            description=_reversal_text(line.description),
            is_rounding=line.is_rounding,
        )
        for line in original.lines
    )
    return JournalEntryDraft(
        entry_date=original.entry_date,
        description=f"{REVERSAL_PREFIX}{original.description}",
        reference=original.reference,
        functional_currency=original.functional_currency,
        source_document_type=original.source_document_type,
        source_document_id=original.source_document_id,
        lines=lines,
        reversal_of_id=original.id,
    )
