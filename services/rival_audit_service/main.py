from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from config.logging_config import get_logger, setup_logging
from services.rival_audit_service.cleanup import CleanupService
from services.rival_audit_service.config import Settings, settings as default_settings
from services.rival_audit_service.crawler.fetcher import HttpxFetcher, PageFetcher
from services.rival_audit_service.db.repository import SqlAlchemyAuditStore
from services.rival_audit_service.db.session import init_db
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.middleware import LoggingMiddleware, setup_error_handlers
from services.rival_audit_service.orchestrator import AuditOrchestrator
from services.rival_audit_service.routes import admin_router, audits_router, health_router, reports_router
from services.rival_audit_service.store.base import AuditStore

logger = get_logger(__name__)


def create_app(
    store: AuditStore | None = None,
    fetcher: PageFetcher | None = None,
    settings: Settings = default_settings,
    start_cleanup: bool | None = None,
    **orchestrator_kwargs,
) -> FastAPI:
    """Build the service with its collaborators; tests pass an in-memory store and a fake fetcher."""
    uses_database = store is None
    if store is None:
        store = SqlAlchemyAuditStore()
    if start_cleanup is None:
        start_cleanup = settings.cleanup_in_process

    lifecycle = AuditLifecycleManager(store, ttl=timedelta(minutes=settings.audit_ttl_minutes))
    orchestrator = AuditOrchestrator(
        lifecycle,
        fetcher or HttpxFetcher(settings.user_agent),
        settings=settings,
        **orchestrator_kwargs,
    )
    cleanup_service = CleanupService(lifecycle, interval_s=settings.cleanup_interval_minutes * 60.0)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Rival Audit Service")
        if uses_database:
            await init_db()
        if start_cleanup:
            cleanup_service.start()

        yield

        logger.info("Shutting down Rival Audit Service")
        await cleanup_service.stop()
        await orchestrator.shutdown()

    app = FastAPI(
        title="Rival Audit Service",
        description="Multi-page SEO audits with OFI classification and audit lifecycle management",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )
    app.state.settings = settings
    app.state.lifecycle = lifecycle
    app.state.orchestrator = orchestrator
    app.state.cleanup_service = cleanup_service

    app.add_middleware(LoggingMiddleware)
    setup_error_handlers(app)

    app.include_router(health_router)
    app.include_router(audits_router)
    app.include_router(reports_router)
    app.include_router(admin_router)

    if settings.enable_metrics:
        app.mount("/metrics", make_asgi_app())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    setup_logging(default_settings.service_name)
    uvicorn.run("services.rival_audit_service.main:app", host="0.0.0.0", port=default_settings.port, reload=False)
