"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only access to journal entries and the links that tie
    them to their source documents.  Converts ORM rows to frozen DTOs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only.
    - Lines are ordered by line_seq; multi-entry results by entry_number.
    - "Active entry" for a source: its non-reversal linked entry that has
      not itself been reversed.  At most one exists.

Failure modes:
    - Returns None or an empty list when nothing matches; never raises on
      absence of data.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, exists, select
from sqlalchemy.orm import aliased

from ledger_kernel.domain.dtos import JournalEntryRecord
from ledger_kernel.models.auto_journal_link import AutoJournalLink
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class JournalLinkDTO:
    """One source-document -> journal-entry link."""

    source_table: str
    source_id: UUID
    journal_entry_id: UUID
    entry_number: str
    operation_type: str
    is_reversal: bool
    created_at: datetime


def active_entry_query(source_table: str, source_id: UUID, lock: bool = False) -> Select:
    """
    SELECT for the currently active entry of a source document.

    Shared by the selector and JournalStore; the store passes ``lock=True``
    to take a row lock on the entry (``FOR UPDATE OF journal_entries``).
    """
    reversal = aliased(JournalEntry)
    query = (
        select(JournalEntry)
        .join(AutoJournalLink, AutoJournalLink.journal_entry_id == JournalEntry.id)
        .where(
            AutoJournalLink.source_table == source_table,
            AutoJournalLink.source_id == source_id,
            AutoJournalLink.is_reversal.is_(False),
            ~exists().where(reversal.reversal_of_id == JournalEntry.id),
        )
        .order_by(JournalEntry.entry_number.desc())
        .limit(1)
    )
    if lock:
        query = query.with_for_update(of=JournalEntry)
    return query


class JournalSelector(BaseSelector):
    """Queries over journal_entries, journal_entry_lines and auto_journal_entries."""

    def by_number(self, entry_number: str) -> JournalEntryRecord | None:
        entry = self.session.execute(
            select(JournalEntry).where(JournalEntry.entry_number == entry_number)
        ).scalar_one_or_none()
        return JournalEntryRecord.from_model(entry) if entry else None

    def by_id(self, entry_id: UUID) -> JournalEntryRecord | None:
        entry = self.session.get(JournalEntry, entry_id)
        return JournalEntryRecord.from_model(entry) if entry else None

    def entries_for_source(self, source_table: str, source_id: UUID) -> list[JournalEntryRecord]:
        """Every entry the engine generated for a source document, in number order."""
        entries = self.session.execute(
            select(JournalEntry)
            .join(AutoJournalLink, AutoJournalLink.journal_entry_id == JournalEntry.id)
            .where(
                AutoJournalLink.source_table == source_table,
                AutoJournalLink.source_id == source_id,
            )
            .order_by(JournalEntry.entry_number)
        ).scalars().all()
        return [JournalEntryRecord.from_model(entry) for entry in entries]

    def active_entry(self, source_table: str, source_id: UUID) -> JournalEntryRecord | None:
        entry = self.session.execute(
            active_entry_query(source_table, source_id)
        ).scalar_one_or_none()
        return JournalEntryRecord.from_model(entry) if entry else None

    def reversal_of(self, entry_id: UUID) -> JournalEntryRecord | None:
        """The entry that reversed ``entry_id``, if any."""
        entry = self.session.execute(
            select(JournalEntry).where(JournalEntry.reversal_of_id == entry_id)
        ).scalar_one_or_none()
        return JournalEntryRecord.from_model(entry) if entry else None

    def links_for_source(self, source_table: str, source_id: UUID) -> list[JournalLinkDTO]:
        rows = self.session.execute(
            select(AutoJournalLink, JournalEntry.entry_number)
            .join(JournalEntry, AutoJournalLink.journal_entry_id == JournalEntry.id)
            .where(
                AutoJournalLink.source_table == source_table,
                AutoJournalLink.source_id == source_id,
            )
            .order_by(JournalEntry.entry_number)
        ).all()
        return [
            JournalLinkDTO(
                source_table=link.source_table,
                source_id=link.source_id,
                journal_entry_id=link.journal_entry_id,
                entry_number=entry_number,
                operation_type=link.operation_type,
                is_reversal=link.is_reversal,
                created_at=link.created_at,
            )
            for link, entry_number in rows
        ]

    def unbalanced_entries(self, tolerance: Decimal = Decimal("0.01")) -> list[str]:
        """Entry numbers whose line debits and credits differ by more than tolerance."""
        entries = self.session.execute(
            select(JournalEntry).order_by(JournalEntry.entry_number)
        ).scalars().all()
        return [entry.entry_number for entry in entries if not entry.is_balanced(tolerance)]

    def check_all_balanced(self, tolerance: Decimal = Decimal("0.01")) -> bool:
        return not self.unbalanced_entries(tolerance)
