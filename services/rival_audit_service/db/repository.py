from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.rival_audit_service.db.models import AuditPageEvidence, RivalAudit
from services.rival_audit_service.db.session import get_sessionmaker
from services.rival_audit_service.errors import AuditNotFoundError
from services.rival_audit_service.schemas.audit import AuditRecord, AuditStatus


def _sync_columns(row: RivalAudit, record: AuditRecord) -> None:
    row.url = record.url
    row.user_id = record.user_id
    row.status = record.status.value
    row.created_at = record.created_at
    row.updated_at = record.updated_at
    row.expires_at = record.expires_at
    row.completed_at = record.completed_at
    row.payload = record.model_dump(mode="json")


def _to_record(row: RivalAudit) -> AuditRecord:
    return AuditRecord.model_validate(row.payload)


class SqlAlchemyAuditStore:
    """AuditStore backed by SQLAlchemy's async ORM (PostgreSQL in production)."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession] | None = None):
        self._sessionmaker = sessionmaker or get_sessionmaker()

    async def create_audit(self, data: dict[str, Any]) -> AuditRecord:
        async with self._sessionmaker() as session:
            draft = AuditRecord.model_validate({**data, "id": 0})
            row = RivalAudit()
            _sync_columns(row, draft)
            session.add(row)
            await session.flush()
            record = draft.evolve(id=row.id)
            row.payload = record.model_dump(mode="json")
            await session.commit()
            return record

    async def get_audit(self, audit_id: int) -> AuditRecord | None:
        async with self._sessionmaker() as session:
            row = await session.get(RivalAudit, audit_id)
            return _to_record(row) if row is not None else None

    async def update_audit(self, audit_id: int, patch: dict[str, Any]) -> AuditRecord:
        async with self._sessionmaker() as session:
            res = await session.execute(select(RivalAudit).where(RivalAudit.id == audit_id).with_for_update())
            row = res.scalar_one_or_none()
            if row is None:
                raise AuditNotFoundError(audit_id)
            record = _to_record(row).evolve(**patch)
            _sync_columns(row, record)
            await session.commit()
            return record

    async def delete_expired(self, now: datetime) -> int:
        async with self._sessionmaker() as session:
            # the expiry test and the delete are one statement, so an audit extended meanwhile is kept
            res = await session.execute(
                delete(RivalAudit).where(RivalAudit.expires_at < now).returning(RivalAudit.id)
            )
            ids = list(res.scalars().all())
            if not ids:
                return 0
            # ON DELETE CASCADE covers PostgreSQL; SQLite leaves foreign keys unenforced by default
            await session.execute(delete(AuditPageEvidence).where(AuditPageEvidence.audit_id.in_(ids)))
            await session.commit()
            return len(ids)

    async def delete_all(self) -> int:
        async with self._sessionmaker() as session:
            n = (await session.execute(select(func.count(RivalAudit.id)))).scalar_one()
            await session.execute(delete(AuditPageEvidence))
            await session.execute(delete(RivalAudit))
            await session.commit()
            return int(n)

    async def store_page_evidence(self, audit_id: int, page: dict[str, Any]) -> None:
        async with self._sessionmaker() as session:
            if await session.get(RivalAudit, audit_id) is None:
                raise AuditNotFoundError(audit_id)
            res = await session.execute(
                select(AuditPageEvidence).where(
                    AuditPageEvidence.audit_id == audit_id,
                    AuditPageEvidence.url == page["url"],
                )
            )
            row = res.scalar_one_or_none()
            if row is None:
                session.add(AuditPageEvidence(audit_id=audit_id, url=page["url"], evidence=dict(page)))
            else:
                row.evidence = dict(page)
            await session.commit()

    async def get_page_evidence(self, audit_id: int) -> list[dict[str, Any]]:
        async with self._sessionmaker() as session:
            res = await session.execute(
                select(AuditPageEvidence)
                .where(AuditPageEvidence.audit_id == audit_id)
                .order_by(AuditPageEvidence.id)
            )
            return [dict(r.evidence) for r in res.scalars().all()]

    async def list_completed_between(self, start: datetime, end: datetime) -> list[AuditRecord]:
        async with self._sessionmaker() as session:
            res = await session.execute(
                select(RivalAudit)
                .where(
                    RivalAudit.status == AuditStatus.COMPLETED.value,
                    RivalAudit.completed_at >= start,
                    RivalAudit.completed_at <= end,
                )
                .order_by(RivalAudit.completed_at)
            )
            return [_to_record(r) for r in res.scalars().all()]

    async def count_by_status(self) -> dict[str, int]:
        async with self._sessionmaker() as session:
            res = await session.execute(select(RivalAudit.status, func.count(RivalAudit.id)).group_by(RivalAudit.status))
            counts = {s.value: 0 for s in AuditStatus}
            for status, n in res.all():
                counts[status] = int(n)
            return counts
