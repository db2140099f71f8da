"""
Module: ledger_kernel.models.audit_record
Responsibility: ORM persistence for the before/after audit trail of every
    mutation to transactions, FX rates and journal entries.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only.  No UPDATE or DELETE (ORM listeners in db/immutability.py).
    - seq is unique and monotonic (SequenceService), giving a total order
      even when several records share one clock reading.
    - values_hash is the SHA-256 of the canonical JSON of old/new values.

Audit relevance:
    This table IS the audit trail.  Retention is an external concern; the
    posting engine never removes rows.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditOperation(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditRecord(Base):
    """One audited mutation: which row, what changed, who did it, when."""

    __tablename__ = "audit_trail"

    __table_args__ = (
        Index("idx_audit_record", "table_name", "record_id"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    table_name: Mapped[str] = mapped_column(String(50), nullable=False)

    record_id: Mapped[str] = mapped_column(String(64), nullable=False)

    operation_type: Mapped[str] = mapped_column(String(10), nullable=False)

    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    values_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditRecord #{self.seq} {self.operation_type} {self.table_name}:{self.record_id}>"
