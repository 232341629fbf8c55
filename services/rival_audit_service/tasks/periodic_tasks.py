import asyncio
import time
from datetime import timedelta
from typing import Any, Dict

from sqlalchemy.ext.asyncio import create_async_engine

from config.logging_config import get_logger, log_task_execution
from services.rival_audit_service.config import settings
from services.rival_audit_service.db.repository import SqlAlchemyAuditStore
from services.rival_audit_service.db.session import build_sessionmaker
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.store.base import AuditStore

from services.rival_audit_service.tasks.celery_app import celery_app

logger = get_logger(__name__)


async def sweep_expired(store: AuditStore) -> int:
    lifecycle = AuditLifecycleManager(store, ttl=timedelta(minutes=settings.audit_ttl_minutes))
    return await lifecycle.cleanup()


async def _run_sweep() -> int:
    # fresh engine per run: asyncio.run gives every task its own event loop
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    try:
        return await sweep_expired(SqlAlchemyAuditStore(build_sessionmaker(engine)))
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    name="services.rival_audit_service.tasks.periodic_tasks.cleanup_expired_audits"
)
def cleanup_expired_audits(self) -> Dict[str, Any]:
    started = time.monotonic()
    try:
        deleted = asyncio.run(_run_sweep())
    except Exception as exc:
        log_task_execution(logger, "cleanup_expired_audits", self.request.id, time.monotonic() - started, "failed", error=exc)
        raise
    log_task_execution(logger, "cleanup_expired_audits", self.request.id, time.monotonic() - started, "completed")
    return {"status": "completed", "deleted": deleted}
