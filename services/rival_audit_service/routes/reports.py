from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query

from services.rival_audit_service.config import Settings
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.orchestrator import AuditOrchestrator
from services.rival_audit_service.reporting import build_classification_report
from services.rival_audit_service.routes.dependencies import get_lifecycle, get_orchestrator, get_settings
from services.rival_audit_service.schemas.report import (
    BulkReclassificationResult,
    BulkReclassifyRequest,
    ClassificationReport,
    ReclassificationResult,
    ReclassifyRequest,
)

router = APIRouter(prefix="/reports", tags=["Reports"])


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@router.get("/weekly", response_model=ClassificationReport)
async def weekly_report(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    lifecycle: AuditLifecycleManager = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
) -> ClassificationReport:
    end = _aware(end) if end else lifecycle.now()
    start = _aware(start) if start else end - timedelta(days=settings.report_default_window_days)
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")

    audits = await lifecycle.store.list_completed_between(start, end)
    return build_classification_report(
        audits,
        start,
        end,
        priority_rate_threshold=settings.report_priority_rate_review_threshold,
        downgrade_rate_threshold=settings.report_downgrade_rate_threshold,
    )


@router.post("/reclassify/{audit_id}", response_model=ReclassificationResult)
async def reclassify_audit(
    audit_id: int,
    payload: ReclassifyRequest | None = None,
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
) -> ReclassificationResult:
    payload = payload or ReclassifyRequest()
    return await orchestrator.reclassify(audit_id, payload.criteria_overrides, dry_run=payload.dry_run)


@router.post("/bulk-reclassify", response_model=BulkReclassificationResult)
async def bulk_reclassify(
    payload: BulkReclassifyRequest,
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
) -> BulkReclassificationResult:
    return await orchestrator.reclassify_recent(payload.days, payload.criteria_overrides, dry_run=payload.dry_run)
