from fastapi import Request

from services.rival_audit_service.cleanup import CleanupService
from services.rival_audit_service.config import Settings
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.orchestrator import AuditOrchestrator


def get_orchestrator(request: Request) -> AuditOrchestrator:
    return request.app.state.orchestrator


def get_lifecycle(request: Request) -> AuditLifecycleManager:
    return request.app.state.lifecycle


def get_cleanup_service(request: Request) -> CleanupService:
    return request.app.state.cleanup_service


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
