"""
Module: ledger_kernel.models.auto_journal_link
Responsibility: Links a source document to each journal entry the posting
    engine generated for it, in order.
Architecture position: Kernel > Models.

Invariants enforced:
    - Append-only (ORM listeners in db/immutability.py).
    - One link per journal entry (UNIQUE journal_entry_id).
    - A non-reversal link whose entry has not been reversed identifies the
      source's currently active entry; at most one exists per source.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.models.journal import JournalEntry


class LinkOperation(str, Enum):
    """CRUD operation on the source document that produced the entry."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AutoJournalLink(TrackedBase):
    __tablename__ = "auto_journal_entries"

    __table_args__ = (
        Index("idx_auto_journal_source", "source_table", "source_id"),
    )

    source_table: Mapped[str] = mapped_column(String(50), nullable=False)

    source_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
        unique=True,
    )

    operation_type: Mapped[str] = mapped_column(String(10), nullable=False)

    is_reversal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    journal_entry: Mapped[JournalEntry] = relationship()

    def __repr__(self) -> str:
        kind = "reversal" if self.is_reversal else "posting"
        return f"<AutoJournalLink {self.source_table}:{self.source_id} {kind}>"
