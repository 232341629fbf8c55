from fastapi import APIRouter, Depends, Query

from services.rival_audit_service.cleanup import CleanupService
from services.rival_audit_service.routes.dependencies import get_cleanup_service

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/cleanup/status")
async def cleanup_status(cleanup: CleanupService = Depends(get_cleanup_service)) -> dict:
    return await cleanup.status()


@router.post("/cleanup")
async def force_cleanup(
    purge_all: bool = Query(default=False),
    cleanup: CleanupService = Depends(get_cleanup_service),
) -> dict:
    return await cleanup.force_cleanup(purge_all=purge_all)
