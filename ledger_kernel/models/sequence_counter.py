"""
Module: ledger_kernel.models.sequence_counter
Responsibility: Named counter rows backing SequenceService.  Journal entry
    numbering uses one row per calendar year ("journal_entry:2024").
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per sequence name (UNIQUE).
    - current_value only ever increases, under a row lock.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """Current value of one named sequence."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
