"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for journal entry numbering and
    audit record ordering.  Uses a dedicated counter table with row-level
    locking (``SELECT ... FOR UPDATE``) so concurrent allocations never
    hand out the same value.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by JournalStore (entry numbers) and AuditService (audit seq).

Invariants enforced:
    - The locked counter row is the sole source of truth for the next
      value.  MAX(...)+1 over the target table is never used.
    - The increment is only visible once the caller's transaction commits.
      A rollback returns the value.

Failure modes:
    - IntegrityError: concurrent creation of the same counter row, handled
      by rolling back a savepoint and re-reading under lock.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence_counter import SequenceCounter
from ledger_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceService(BaseService):
    """
    Transactional named sequences.

    Usage:
        seq = SequenceService(session).next_value(SequenceService.journal_entry_name(2024))
    """

    JOURNAL_ENTRY = "journal_entry"
    AUDIT_TRAIL = "audit_trail"

    @classmethod
    def journal_entry_name(cls, year: int) -> str:
        """Entry numbers restart at 1 every calendar year."""
        return f"{cls.JOURNAL_ENTRY}:{year}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it and
        return the new value.  Always > 0.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self.session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
