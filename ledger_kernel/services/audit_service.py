"""
AuditService -- best-effort before/after audit trail.

Responsibility:
    Writes one append-only AuditRecord per mutation of a transaction, an FX
    rate or a journal entry: table name, record id, operation, old and new
    values, actor, timestamp and a SHA-256 over the canonical JSON of the
    values.

Architecture position:
    Kernel > Services -- imperative shell.  Called by TransactionService,
    FxRateService and PostingEngine.

Invariants enforced:
    - Append-only (ORM listeners in db/immutability.py).
    - ``seq`` comes from SequenceService, giving a total order.
    - Audit is NOT a consistency boundary.  Each write runs in its own
      SAVEPOINT; a failure rolls back only that savepoint, is logged as
      ``audit_write_failed`` and never propagates to the posting.

Failure modes:
    - Any SQLAlchemyError while writing, and any payload value that cannot
      be serialized (TypeError/ValueError from to_json_safe), becomes an
      AuditWriteError, which is logged and swallowed here.  ``record()``
      then returns None.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import AuditWriteError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_record import AuditOperation, AuditRecord
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.utils.serialization import canonical_hash, to_json_safe

logger = get_logger("services.audit")


class AuditService(BaseService):
    """
    Records audit rows inside the caller's transaction.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT enforce retention; rows are kept forever by this core.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        table_name: str,
        record_id: UUID | str,
        operation: AuditOperation,
        old_values: dict[str, Any] | None,
        new_values: dict[str, Any] | None,
        actor_id: UUID | None,
        description: str | None = None,
    ) -> AuditRecord | None:
        """
        Write one audit row.  Returns the row, or None if the write failed.
        """
        try:
            with self.session.begin_nested():
                record = self._write(
                    table_name, str(record_id), operation,
                    old_values, new_values, actor_id, description,
                )
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            # TypeError/ValueError: payload values that cannot be serialized
            error = AuditWriteError(table_name, str(record_id), str(exc))
            logger.error(
                "audit_write_failed",
                extra={
                    "error_code": error.code,
                    "table_name": table_name,
                    "record_id": str(record_id),
                    "operation": operation.value,
                    "reason": str(exc),
                },
            )
            return None

        logger.info(
            "audit_recorded",
            extra={
                "table_name": table_name,
                "record_id": str(record_id),
                "operation": operation.value,
                "seq": record.seq,
            },
        )
        return record

    def _write(
        self,
        table_name: str,
        record_id: str,
        operation: AuditOperation,
        old_values: dict[str, Any] | None,
        new_values: dict[str, Any] | None,
        actor_id: UUID | None,
        description: str | None,
    ) -> AuditRecord:
        old_json = to_json_safe(old_values) if old_values is not None else None
        new_json = to_json_safe(new_values) if new_values is not None else None

        record = AuditRecord(
            seq=self._sequences.next_value(SequenceService.AUDIT_TRAIL),
            table_name=table_name,
            record_id=record_id,
            operation_type=operation.value,
            old_values=old_json,
            new_values=new_json,
            values_hash=canonical_hash(table_name, record_id, operation.value, old_json, new_json),
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            description=description,
        )
        self.session.add(record)
        self.session.flush()
        return record
