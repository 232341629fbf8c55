import asyncio
import itertools
from datetime import datetime
from typing import Any

from services.rival_audit_service.errors import AuditNotFoundError
from services.rival_audit_service.schemas.audit import AuditRecord, AuditStatus


class InMemoryAuditStore:
    def __init__(self):
        self._records: dict[int, AuditRecord] = {}
        self._pages: dict[int, dict[str, dict[str, Any]]] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def create_audit(self, data: dict[str, Any]) -> AuditRecord:
        async with self._lock:
            record = AuditRecord.model_validate({**data, "id": next(self._ids)})
            self._records[record.id] = record
            return record

    async def get_audit(self, audit_id: int) -> AuditRecord | None:
        return self._records.get(audit_id)

    async def update_audit(self, audit_id: int, patch: dict[str, Any]) -> AuditRecord:
        async with self._lock:
            current = self._records.get(audit_id)
            if current is None:
                raise AuditNotFoundError(audit_id)
            updated = current.evolve(**patch)
            self._records[audit_id] = updated
            return updated

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [i for i, r in self._records.items() if r.expires_at < now]
            for i in expired:
                del self._records[i]
                self._pages.pop(i, None)
            return len(expired)

    async def delete_all(self) -> int:
        async with self._lock:
            n = len(self._records)
            self._records.clear()
            self._pages.clear()
            return n

    async def store_page_evidence(self, audit_id: int, page: dict[str, Any]) -> None:
        async with self._lock:
            if audit_id not in self._records:
                raise AuditNotFoundError(audit_id)
            self._pages.setdefault(audit_id, {})[page["url"]] = dict(page)

    async def get_page_evidence(self, audit_id: int) -> list[dict[str, Any]]:
        return [dict(p) for p in self._pages.get(audit_id, {}).values()]

    async def list_completed_between(self, start: datetime, end: datetime) -> list[AuditRecord]:
        return sorted(
            (
                r for r in self._records.values()
                if r.status == AuditStatus.COMPLETED and r.completed_at is not None and start <= r.completed_at <= end
            ),
            key=lambda r: r.completed_at,
        )

    async def count_by_status(self) -> dict[str, int]:
        counts = {s.value: 0 for s in AuditStatus}
        for r in self._records.values():
            counts[r.status.value] += 1
        return counts
