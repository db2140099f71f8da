"""
PostingEngine -- the posting trigger / state-change handler.

Responsibility:
    Receives a TransactionEvent, asks the pure transition planner which
    journal effects it implies, and carries them out as one atomic
    pipeline:

        POST     resolve rate -> resolve accounts -> build entry -> append
                 -> link -> write back computed fields -> seed FX store
                 -> FX snapshot -> audit
        REVERSE  find active entry -> mirror -> append -> link(reversal)
                 -> clear back-reference -> audit

Architecture position:
    Kernel > Services -- imperative shell around the pure domain core
    (transitions, fx, account_resolver, entry_builder).

Invariants enforced:
    - All effects of one event run inside a single SAVEPOINT.  Any failure
      (MissingRateError included) leaves no journal rows, no links and no
      write-back behind.
    - The transaction row is locked (``SELECT ... FOR UPDATE``) before any
      effect runs, serializing postings per transaction.
    - A stale event (version older than the stored row) is rejected with
      ConcurrentPostingConflictError.
    - Idempotence: a POST for a transaction that already has an active
      entry, or a REVERSE for one that has none, is skipped and logged.
      One transition never yields two entries.
    - Rates resolved from the FX store are never written back to it.

Failure modes:
    - MissingRateError, InvalidTransactionError, ImbalancedEntryError,
      ConcurrentPostingConflictError.  Audit failures are NOT failures.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.account_resolver import (
    resolve_expense_accounts,
    resolve_invoice_accounts,
    resolve_payment_accounts,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    EffectType,
    FxRateUpsertResult,
    JournalEntryRecord,
    PostingEffect,
    RateResolution,
    TransactionEvent,
    TransactionState,
)
from ledger_kernel.domain.entry_builder import (
    build_expense_entry,
    build_invoice_entry,
    build_payment_entry,
    mirror_entry,
)
from ledger_kernel.domain.fx import resolve_posting_rate
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.transitions import plan_transition
from ledger_kernel.exceptions import ConcurrentPostingConflictError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_record import AuditOperation
from ledger_kernel.models.bank_account import BankAccount
from ledger_kernel.models.fx_snapshot import FxRateSnapshot
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.models.transaction import Transaction, TransactionKind
from ledger_kernel.services.audit_service import AuditService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.fx_rate_service import FxRateService
from ledger_kernel.services.journal_store import JournalStore

logger = get_logger("services.posting_engine")

# FX store source tags for rates seeded from source documents
_UPSERT_SOURCE = {
    TransactionKind.EXPENSE.value: "Expense",
    TransactionKind.PAYMENT.value: "Payment",
    TransactionKind.INVOICE.value: "Invoice",
}


@dataclass(frozen=True)
class PostingOutcome:
    """What one event did to the journal."""

    transaction_id: UUID
    effects: tuple[PostingEffect, ...] = ()
    posted_entry_id: UUID | None = None
    posted_entry_number: str | None = None
    reversal_entry_id: UUID | None = None
    reversal_entry_number: str | None = None
    resolution: RateResolution | None = None
    rate_upsert: FxRateUpsertResult | None = None

    @property
    def is_noop(self) -> bool:
        return self.posted_entry_id is None and self.reversal_entry_id is None


class PostingEngine(BaseService):
    """
    Turns transaction state changes into journal entries.

    Usage:
        engine = PostingEngine(session, policy, clock)
        outcome = engine.handle(event)

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT persist the transaction itself (TransactionService does).
    """

    def __init__(
        self,
        session: Session,
        policy: PostingPolicy,
        clock: Clock | None = None,
        audit: AuditService | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)
        self._fx = FxRateService(session, self._clock, self._audit)
        self._store = JournalStore(session, self._clock, policy.balance_tolerance)

    @property
    def policy(self) -> PostingPolicy:
        return self._policy

    def handle(self, event: TransactionEvent) -> PostingOutcome:
        effects = plan_transition(event.prior, event.new, event.operation)
        if not effects:
            logger.debug(
                "posting_not_required",
                extra={
                    "transaction_id": str(event.transaction_id),
                    "operation": event.operation.value,
                },
            )
            return PostingOutcome(transaction_id=event.transaction_id)

        with LogContext.bind(
            transaction_id=str(event.transaction_id),
            actor_id=str(event.actor_id),
            source_table=event.current.source_table,
        ):
            with self.session.begin_nested():
                txn = self._lock_transaction(event)
                result: dict = {}
                for effect in effects:
                    if effect.effect_type == EffectType.REVERSE:
                        result.update(self._reverse(event, effect, txn))
                    else:
                        result.update(self._post(event, effect, txn))

        return PostingOutcome(
            transaction_id=event.transaction_id,
            effects=tuple(effects),
            **result,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_transaction(self, event: TransactionEvent) -> Transaction | None:
        """Lock the row and reject events older than the stored version."""
        txn = self.session.execute(
            select(Transaction)
            .where(Transaction.id == event.transaction_id)
            .with_for_update()
        ).scalar_one_or_none()

        if txn is not None and event.new is not None and event.new.version is not None:
            if txn.version != event.new.version:
                logger.warning(
                    "posting_conflict_stale_event",
                    extra={
                        "expected_version": event.new.version,
                        "actual_version": txn.version,
                    },
                )
                raise ConcurrentPostingConflictError(
                    str(event.transaction_id),
                    expected_version=event.new.version,
                    actual_version=txn.version,
                )
        return txn

    def _bank_currency(self, bank_account_id: UUID | None) -> str | None:
        if bank_account_id is None:
            return None
        bank = self.session.get(BankAccount, bank_account_id)
        return bank.currency if bank is not None else None

    def _build_draft(self, state: TransactionState, resolution: RateResolution):
        policy = self._policy

        if state.kind == TransactionKind.INVOICE:
            accounts = resolve_invoice_accounts(
                state.currency, policy.accounts, policy.functional_currency,
            )
            return build_invoice_entry(state, resolution, accounts, policy)

        bank_currency = self._bank_currency(state.bank_account_id)

        if state.kind == TransactionKind.PAYMENT:
            accounts = resolve_payment_accounts(
                state.currency,
                state.payment_method,
                bank_currency,
                policy.accounts,
                policy.functional_currency,
            )
            return build_payment_entry(state, resolution, accounts, policy)

        accounts = resolve_expense_accounts(
            state.category,
            state.payment_method,
            bank_currency,
            policy.accounts,
            policy.functional_currency,
        )
        if accounts.defaulted:
            logger.warning(
                "account_mapping_defaulted",
                extra={
                    "category": state.category,
                    "account_code": accounts.debit.code,
                },
            )
        return build_expense_entry(state, resolution, accounts, policy)

    # ------------------------------------------------------------------
    # POST
    # ------------------------------------------------------------------

    def _post(
        self,
        event: TransactionEvent,
        effect: PostingEffect,
        txn: Transaction | None,
    ) -> dict:
        state = event.new
        policy = self._policy

        active = self._store.find_active_entry(state.source_table, state.id)
        if active is not None:
            logger.info(
                "posting_skipped_already_posted",
                extra={"entry_id": str(active.id), "entry_number": active.entry_number},
            )
            return {}

        resolution = resolve_posting_rate(
            state,
            policy.functional_currency,
            self._fx.lookup,
            policy.minor_unit_places,
            policy.rate_places,
        )
        draft = self._build_draft(state, resolution)

        entry = self._store.append(draft, event.actor_id, source_table=state.source_table)
        self._store.link(
            entry, state.source_table, state.id, effect.link_operation, event.actor_id,
        )

        if txn is not None:
            txn.exchange_rate = resolution.rate
            txn.functional_amount = resolution.functional_amount
            txn.rate_source = resolution.rate_source
            txn.linked_journal_entry_id = entry.id
            txn.updated_by_id = event.actor_id
            self.session.flush()

        rate_upsert = None
        if policy.is_foreign(state.currency):
            if not resolution.from_store:
                rate_upsert = self._fx.upsert(
                    state.currency,
                    policy.functional_currency,
                    state.transaction_date,
                    resolution.rate,
                    event.actor_id,
                    source=_UPSERT_SOURCE.get(state.kind, state.kind),
                    notes=f"From {state.kind}: {state.number}",
                )
            self.session.add(
                FxRateSnapshot(
                    transaction_table=state.source_table,
                    transaction_id=state.id,
                    currency=state.currency,
                    functional_currency=policy.functional_currency,
                    rate=resolution.rate,
                    rate_date=state.transaction_date,
                    journal_entry_id=entry.id,
                    created_by_id=event.actor_id,
                )
            )
            self.session.flush()

        self._audit_entry(entry, event.actor_id, f"Auto-posted for {state.number}")

        logger.info(
            "posting_completed",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "reason": effect.reason,
                "currency": state.currency,
                "rate": resolution.rate,
                "rate_source": resolution.rate_source,
                "functional_amount": resolution.functional_amount,
                "total_debit": entry.total_debit,
            },
        )
        return {
            "posted_entry_id": entry.id,
            "posted_entry_number": entry.entry_number,
            "resolution": resolution,
            "rate_upsert": rate_upsert,
        }

    # ------------------------------------------------------------------
    # REVERSE
    # ------------------------------------------------------------------

    def _reverse(
        self,
        event: TransactionEvent,
        effect: PostingEffect,
        txn: Transaction | None,
    ) -> dict:
        state = event.prior

        active = self._store.find_active_entry(state.source_table, state.id)
        if active is None:
            logger.info(
                "reversal_skipped_no_active_entry",
                extra={"reason": effect.reason},
            )
            return {}

        draft = mirror_entry(JournalEntryRecord.from_model(active))
        reversal = self._store.append(draft, event.actor_id)
        self._store.link(
            reversal,
            state.source_table,
            state.id,
            effect.link_operation,
            event.actor_id,
            is_reversal=True,
        )

        if txn is not None and txn.linked_journal_entry_id == active.id:
            txn.linked_journal_entry_id = None
            txn.updated_by_id = event.actor_id
            self.session.flush()

        self._audit_entry(reversal, event.actor_id, f"Reversal of {active.entry_number}")

        logger.info(
            "reversal_posted",
            extra={
                "entry_id": str(reversal.id),
                "entry_number": reversal.entry_number,
                "reversed_entry_number": active.entry_number,
                "reason": effect.reason,
            },
        )
        return {
            "reversal_entry_id": reversal.id,
            "reversal_entry_number": reversal.entry_number,
        }

    def _audit_entry(self, entry: JournalEntry, actor_id: UUID, description: str) -> None:
        self._audit.record(
            "journal_entries",
            entry.id,
            AuditOperation.CREATE,
            None,
            JournalEntryRecord.from_model(entry).to_audit_dict(),
            actor_id,
            description=description,
        )
