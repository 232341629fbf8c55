from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from services.rival_audit_service.config import Settings
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.routes.dependencies import get_lifecycle, get_settings

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health(
    lifecycle: AuditLifecycleManager = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
) -> dict:
    return {
        "status": "ok",
        "service": settings.service_name,
        "ts": datetime.now(timezone.utc).isoformat(),
        "audits": await lifecycle.get_stats(),
    }
