from celery import Celery

from config.logging_config import get_logger, setup_celery_logging
from services.rival_audit_service.config import settings

logger = get_logger(__name__)

celery_app = Celery(
    "rival_audit_service",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_always_eager=settings.celery_task_always_eager,
    broker_connection_retry_on_startup=True,
)

celery_app.conf.beat_schedule = {
    "cleanup_expired_audits": {
        "task": "services.rival_audit_service.tasks.periodic_tasks.cleanup_expired_audits",
        "schedule": settings.cleanup_interval_minutes * 60.0,
    }
}

setup_celery_logging()

celery_app.autodiscover_tasks(["services.rival_audit_service.tasks"], related_name="periodic_tasks")
