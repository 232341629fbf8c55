from services.rival_audit_service.tasks.celery_app import celery_app
from services.rival_audit_service.tasks.periodic_tasks import cleanup_expired_audits

__all__ = ["celery_app", "cleanup_expired_audits"]
