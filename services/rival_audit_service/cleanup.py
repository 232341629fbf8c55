import asyncio
import time
from datetime import datetime

from config.logging_config import AuditLogger, get_logger
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.metrics import cleanup_deleted_total

logger = get_logger(__name__)
audit_logger = AuditLogger()


class CleanupService:
    """Periodic sweep deleting expired audits, independent of any running audit."""

    def __init__(self, lifecycle: AuditLifecycleManager, interval_s: float = 120.0):
        self.lifecycle = lifecycle
        self.interval_s = interval_s
        self._task: asyncio.Task | None = None
        self.last_run_at: datetime | None = None
        self.last_deleted = 0
        self.total_deleted = 0
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            logger.warning("Cleanup service already running")
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Cleanup service started", extra={"interval_s": self.interval_s})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cleanup service stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_cleanup()
            except Exception as e:
                logger.error("Cleanup sweep failed", extra={"error": str(e)}, exc_info=True)
            await asyncio.sleep(self.interval_s)

    async def run_cleanup(self) -> int:
        started = time.monotonic()
        deleted = await self.lifecycle.cleanup()
        self.runs += 1
        self.last_run_at = self.lifecycle.now()
        self.last_deleted = deleted
        self.total_deleted += deleted
        cleanup_deleted_total.inc(deleted)
        audit_logger.log_cleanup(deleted, time.monotonic() - started)
        return deleted

    async def force_cleanup(self, purge_all: bool = False) -> dict:
        before = await self.lifecycle.get_stats()
        if purge_all:
            deleted = await self.lifecycle.purge_all()
            self.total_deleted += deleted
            cleanup_deleted_total.inc(deleted)
        else:
            deleted = await self.run_cleanup()
        after = await self.lifecycle.get_stats()
        return {"deleted": deleted, "before": before, "after": after}

    async def status(self) -> dict:
        return {
            "running": self.running,
            "interval_seconds": self.interval_s,
            "runs": self.runs,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_deleted": self.last_deleted,
            "total_deleted": self.total_deleted,
            "audits": await self.lifecycle.get_stats(),
        }
