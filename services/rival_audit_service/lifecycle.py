import asyncio
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from config.logging_config import AuditLogger, get_logger
from services.rival_audit_service.errors import AuditNotFoundError, LifecycleConflictError
from services.rival_audit_service.schemas.audit import (
    AuditOptions,
    AuditRecord,
    AuditStatus,
    AuditSummary,
)
from services.rival_audit_service.store.base import AuditStore

logger = get_logger(__name__)
audit_logger = AuditLogger()

ALLOWED_TRANSITIONS: dict[AuditStatus, frozenset[AuditStatus]] = {
    AuditStatus.PENDING: frozenset({AuditStatus.PROCESSING, AuditStatus.FAILED}),
    AuditStatus.PROCESSING: frozenset({AuditStatus.COMPLETED, AuditStatus.FAILED}),
    AuditStatus.COMPLETED: frozenset(),
    AuditStatus.FAILED: frozenset(),
}

EXTENDABLE = frozenset({AuditStatus.PENDING, AuditStatus.PROCESSING, AuditStatus.COMPLETED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLifecycleManager:
    """Owns the audit state machine, expiration and the in-flight registry.

    Every mutation goes through the store as one patch, so a reader sees either
    the old snapshot or the new one. Check-then-write sequences on the same
    record are serialized with a per-record lock.
    """

    def __init__(self, store: AuditStore, ttl: timedelta = timedelta(minutes=30), clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.ttl = ttl
        self.clock = clock
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._in_flight: set[int] = set()

    def now(self) -> datetime:
        return self.clock()

    async def create(self, url: str, options: AuditOptions | None = None, user_id: str | None = None) -> AuditRecord:
        now = self.now()
        record = await self.store.create_audit(
            {
                "url": url,
                "user_id": user_id,
                "status": AuditStatus.PENDING,
                "created_at": now,
                "updated_at": now,
                "expires_at": now + self.ttl,
                "options": options or AuditOptions(),
            }
        )
        audit_logger.log_audit_created(record.id, url, user_id)
        return record

    async def get(self, audit_id: int) -> AuditRecord | None:
        return await self.store.get_audit(audit_id)

    async def is_valid(self, audit_id: int) -> bool:
        record = await self.store.get_audit(audit_id)
        return record is not None and record.expires_at > self.now()

    async def get_valid(self, audit_id: int) -> AuditRecord:
        return await self._get_unexpired(audit_id)

    async def _get_unexpired(self, audit_id: int, until_inclusive: bool = False) -> AuditRecord:
        record = await self.store.get_audit(audit_id)
        if record is None:
            raise LifecycleConflictError(LifecycleConflictError.AUDIT_NOT_FOUND, f"Audit {audit_id} not found", audit_id)
        now = self.now()
        if record.expires_at < now or (record.expires_at == now and not until_inclusive):
            raise LifecycleConflictError(LifecycleConflictError.AUDIT_EXPIRED, f"Audit {audit_id} has expired", audit_id)
        return record

    async def _update(self, audit_id: int, patch: dict[str, Any]) -> AuditRecord:
        try:
            return await self.store.update_audit(audit_id, {**patch, "updated_at": self.now()})
        except AuditNotFoundError:
            raise LifecycleConflictError(
                LifecycleConflictError.AUDIT_NOT_FOUND, f"Audit {audit_id} not found", audit_id
            ) from None

    async def _transition(self, audit_id: int, target: AuditStatus, patch: dict[str, Any]) -> AuditRecord:
        async with self._locks[audit_id]:
            record = await self.store.get_audit(audit_id)
            if record is None:
                raise LifecycleConflictError(LifecycleConflictError.AUDIT_NOT_FOUND, f"Audit {audit_id} not found", audit_id)
            if target not in ALLOWED_TRANSITIONS[record.status]:
                raise LifecycleConflictError(
                    LifecycleConflictError.INVALID_TRANSITION,
                    f"Audit {audit_id} cannot move from {record.status.value} to {target.value}",
                    audit_id,
                )
            return await self._update(audit_id, {**patch, "status": target})

    async def start_processing(self, audit_id: int) -> AuditRecord:
        return await self._transition(audit_id, AuditStatus.PROCESSING, {})

    async def complete(
        self,
        audit_id: int,
        results: dict,
        summary: AuditSummary,
        **payload: Any,
    ) -> AuditRecord:
        record = await self._transition(
            audit_id,
            AuditStatus.COMPLETED,
            {**payload, "results": results, "summary": summary, "completed_at": self.now()},
        )
        audit_logger.log_audit_completed(audit_id, summary.model_dump())
        return record

    async def fail(self, audit_id: int, error_message: str) -> AuditRecord:
        return await self._transition(
            audit_id,
            AuditStatus.FAILED,
            {
                "error_message": error_message or "Unknown error",
                "completed_at": self.now(),
                "results": None,
                "summary": None,
                "page_issues": [],
            },
        )

    async def update_completed(self, audit_id: int, **payload: Any) -> AuditRecord:
        """Replace payload fields of a completed audit (continuation merge, operator override)."""
        async with self._locks[audit_id]:
            record = await self.get_valid(audit_id)
            if record.status != AuditStatus.COMPLETED:
                raise LifecycleConflictError(
                    LifecycleConflictError.AUDIT_NOT_COMPLETED,
                    f"Audit {audit_id} is {record.status.value}, not completed",
                    audit_id,
                )
            return await self._update(audit_id, payload)

    async def extend(self, audit_id: int) -> AuditRecord:
        async with self._locks[audit_id]:
            # extension is still allowed at the exact expiry instant
            record = await self._get_unexpired(audit_id, until_inclusive=True)
            if record.status not in EXTENDABLE:
                raise LifecycleConflictError(
                    LifecycleConflictError.AUDIT_FAILED,
                    f"Audit {audit_id} has failed and cannot be extended",
                    audit_id,
                )
            now = self.now()
            return await self._update(audit_id, {"expires_at": now + self.ttl})

    async def ensure_ttl(self, audit_id: int, needed: timedelta) -> AuditRecord:
        """Extend the audit when less than ``needed`` remains before it expires."""
        record = await self.get_valid(audit_id)
        if record.expires_at - self.now() >= needed:
            return record
        logger.info(
            "Extending audit to outlive the crawl",
            extra={"audit_id": audit_id, "needed_seconds": needed.total_seconds()},
        )
        return await self.extend(audit_id)

    async def cleanup(self) -> int:
        deleted = await self.store.delete_expired(self.now())
        for audit_id in list(self._locks):
            if audit_id not in self._in_flight and not self._locks[audit_id].locked():
                del self._locks[audit_id]
        return deleted

    async def purge_all(self) -> int:
        return await self.store.delete_all()

    def claim(self, audit_id: int) -> None:
        if audit_id in self._in_flight:
            raise LifecycleConflictError(
                LifecycleConflictError.AUDIT_IN_PROGRESS,
                f"Audit {audit_id} already has a run in progress",
                audit_id,
            )
        self._in_flight.add(audit_id)

    def release(self, audit_id: int) -> None:
        self._in_flight.discard(audit_id)

    def in_flight(self, audit_id: int) -> bool:
        return audit_id in self._in_flight

    async def get_stats(self) -> dict[str, int]:
        counts = await self.store.count_by_status()
        return {
            "total": sum(counts.values()),
            **counts,
            "in_flight": len(self._in_flight),
        }
