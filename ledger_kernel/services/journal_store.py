"""
JournalStore -- numbers, persists and links journal entries.

Responsibility:
    Turns a balanced JournalEntryDraft into a posted JournalEntry with its
    lines, allocating ``JE-<year>-<seq>`` from a per-year locked counter,
    and records the AutoJournalLink back to the source document.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by PostingEngine.

Invariants enforced:
    - Balance: a draft whose debits and credits differ by more than the
      policy tolerance is rejected before anything is written.
    - Numbering: the per-year SequenceCounter row is the only source of
      sequence numbers.  Counting existing entries is never used.
    - Reversals: the original must exist, be posted and not already be
      reversed.  The UNIQUE reversal_of_id constraint backs this check
      under concurrency.
    - A source document has at most one active (unreversed) entry.

Failure modes:
    - ImbalancedEntryError, EntryNotPostedError, EntryAlreadyReversedError,
      AlreadyPostedError.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import JournalEntryDraft
from ledger_kernel.exceptions import (
    AlreadyPostedError,
    EntryAlreadyReversedError,
    EntryNotPostedError,
    ImbalancedEntryError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.auto_journal_link import AutoJournalLink
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
)
from ledger_kernel.selectors.journal_selector import active_entry_query
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_store")


def format_entry_number(year: int, seq: int) -> str:
    return f"JE-{year}-{seq:04d}"


class JournalStore(BaseService):
    """
    Append-only writer for journal entries.

    Non-goals:
        - Does NOT decide WHAT to post (PostingEngine does).
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        balance_tolerance: Decimal = Decimal("0.01"),
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._tolerance = balance_tolerance
        self._sequences = SequenceService(session)

    def next_entry_number(self) -> str:
        year = self._clock.today().year
        seq = self._sequences.next_value(SequenceService.journal_entry_name(year))
        return format_entry_number(year, seq)

    def find_active_entry(self, source_table: str, source_id: UUID) -> JournalEntry | None:
        return self.session.execute(
            active_entry_query(source_table, source_id, lock=True)
        ).scalar_one_or_none()

    def _check_reversible(self, original_id: UUID) -> JournalEntry:
        original = self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == original_id)
            .with_for_update()
        ).scalar_one_or_none()

        if original is None:
            raise EntryNotPostedError(str(original_id), "missing")
        if not original.is_posted:
            raise EntryNotPostedError(str(original_id), original.status)

        already = self.session.execute(
            select(JournalEntry.id).where(JournalEntry.reversal_of_id == original_id)
        ).scalar_one_or_none()
        if already is not None:
            raise EntryAlreadyReversedError(str(original_id))
        return original

    def append(
        self,
        draft: JournalEntryDraft,
        actor_id: UUID,
        source_table: str | None = None,
    ) -> JournalEntry:
        """
        Number and persist a posted entry.

        ``source_table`` enables the one-active-entry guard for non-reversal
        entries.
        """
        if abs(draft.total_debit - draft.total_credit) > self._tolerance:
            raise ImbalancedEntryError(
                str(draft.total_debit), str(draft.total_credit), draft.functional_currency,
            )

        if draft.is_reversal:
            self._check_reversible(draft.reversal_of_id)
        elif source_table is not None and draft.source_document_id is not None:
            active = self.find_active_entry(source_table, draft.source_document_id)
            if active is not None:
                raise AlreadyPostedError(
                    source_table, str(draft.source_document_id), str(active.id),
                )

        entry = JournalEntry(
            entry_number=self.next_entry_number(),
            entry_date=draft.entry_date,
            description=draft.description,
            reference=draft.reference,
            total_debit=draft.total_debit,
            total_credit=draft.total_credit,
            functional_currency=draft.functional_currency,
            status=JournalEntryStatus.POSTED.value,
            source_document_type=draft.source_document_type,
            source_document_id=draft.source_document_id,
            is_auto_generated=True,
            reversal_of_id=draft.reversal_of_id,
            posted_at=self._clock.now(),
            created_by_id=actor_id,
        )
        for line in draft.lines:
            entry.lines.append(
                JournalEntryLine(
                    line_seq=line.line_seq,
                    account_code=line.account.code,
                    account_name=line.account.name,
                    account_type=line.account.account_type.value,
                    debit_amount=line.debit,
                    credit_amount=line.credit,
                    functional_debit=line.debit,
                    functional_credit=line.credit,
                    original_currency=line.original_currency,
                    original_amount=line.original_amount,
                    fx_rate_used=line.fx_rate,
                    description=line.description,
                    is_rounding=line.is_rounding,
                    created_by_id=actor_id,
                )
            )

        self.session.add(entry)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if draft.is_reversal:
                raise EntryAlreadyReversedError(str(draft.reversal_of_id)) from exc
            raise

        logger.info(
            "journal_entry_appended",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "total_debit": entry.total_debit,
                "total_credit": entry.total_credit,
                "line_count": len(draft.lines),
                "is_reversal": draft.is_reversal,
            },
        )
        return entry

    def link(
        self,
        entry: JournalEntry,
        source_table: str,
        source_id: UUID,
        operation_type: str,
        actor_id: UUID,
        is_reversal: bool = False,
    ) -> AutoJournalLink:
        link = AutoJournalLink(
            source_table=source_table,
            source_id=source_id,
            journal_entry_id=entry.id,
            operation_type=operation_type,
            is_reversal=is_reversal,
            created_by_id=actor_id,
        )
        self.session.add(link)
        self.session.flush()
        return link
