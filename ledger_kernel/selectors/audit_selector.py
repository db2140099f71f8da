"""
Module: ledger_kernel.selectors.audit_selector
Responsibility: Read-only access to the audit trail.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.models.audit_record import AuditRecord
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AuditRecordDTO:
    seq: int
    table_name: str
    record_id: str
    operation_type: str
    old_values: dict | None
    new_values: dict | None
    values_hash: str
    actor_id: UUID | None
    occurred_at: datetime
    description: str | None


def _to_dto(record: AuditRecord) -> AuditRecordDTO:
    return AuditRecordDTO(
        seq=record.seq,
        table_name=record.table_name,
        record_id=record.record_id,
        operation_type=record.operation_type,
        old_values=record.old_values,
        new_values=record.new_values,
        values_hash=record.values_hash,
        actor_id=record.actor_id,
        occurred_at=record.occurred_at,
        description=record.description,
    )


class AuditSelector(BaseSelector):
    """Audit trail queries, always in ``seq`` order."""

    def trail_for(self, table_name: str, record_id: UUID | str) -> list[AuditRecordDTO]:
        records = self.session.execute(
            select(AuditRecord)
            .where(
                AuditRecord.table_name == table_name,
                AuditRecord.record_id == str(record_id),
            )
            .order_by(AuditRecord.seq)
        ).scalars().all()
        return [_to_dto(record) for record in records]

    def for_table(self, table_name: str) -> list[AuditRecordDTO]:
        records = self.session.execute(
            select(AuditRecord)
            .where(AuditRecord.table_name == table_name)
            .order_by(AuditRecord.seq)
        ).scalars().all()
        return [_to_dto(record) for record in records]
