from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from services.rival_audit_service.errors import LifecycleConflictError
from services.rival_audit_service.export import CONTENT_TYPES, EXPORTERS
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.orchestrator import AuditOrchestrator
from services.rival_audit_service.routes.dependencies import get_lifecycle, get_orchestrator
from services.rival_audit_service.schemas.audit import (
    AuditRecord,
    AuditStatus,
    ContinueAuditResponse,
    CreateAuditRequest,
    CreateAuditResponse,
    ItemOverrideRequest,
    PageIssuesResponse,
)

router = APIRouter(prefix="/audits", tags=["Audits"])


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=CreateAuditResponse)
async def create_audit(
    payload: CreateAuditRequest,
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
) -> CreateAuditResponse:
    record = await orchestrator.run_audit(str(payload.url), payload.options, payload.user_id)
    return CreateAuditResponse(id=record.id, status=record.status)


@router.get("/{audit_id}", response_model=AuditRecord)
async def get_audit(audit_id: int, lifecycle: AuditLifecycleManager = Depends(get_lifecycle)) -> AuditRecord:
    return await lifecycle.get_valid(audit_id)


@router.get("/{audit_id}/pages", response_model=PageIssuesResponse)
async def get_page_issues(audit_id: int, lifecycle: AuditLifecycleManager = Depends(get_lifecycle)) -> PageIssuesResponse:
    record = await lifecycle.get_valid(audit_id)
    return PageIssuesResponse(id=record.id, pages=record.page_issues)


@router.post("/{audit_id}/continue", response_model=ContinueAuditResponse)
async def continue_audit(
    audit_id: int,
    response: Response,
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
) -> ContinueAuditResponse:
    record, continued = await orchestrator.continue_audit(audit_id)
    response.status_code = status.HTTP_202_ACCEPTED if continued else status.HTTP_200_OK
    if continued:
        message = f"Continuing crawl from {len(record.crawl_state.frontier)} queued URLs"
    else:
        message = "Crawl was not truncated by the page limit; nothing to continue"
    return ContinueAuditResponse(
        id=record.id,
        status=record.status,
        continued=continued,
        pages_analyzed=record.pages_analyzed,
        expires_at=record.expires_at,
        message=message,
    )


@router.post("/{audit_id}/items/{name}", response_model=AuditRecord)
async def override_item(
    audit_id: int,
    name: str,
    payload: ItemOverrideRequest,
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
) -> AuditRecord:
    return await orchestrator.override_item(audit_id, name, payload)


@router.get("/{audit_id}/export")
async def export_audit(
    audit_id: int,
    format: str = Query(default="xlsx"),
    lifecycle: AuditLifecycleManager = Depends(get_lifecycle),
) -> Response:
    fmt = "xlsx" if format.lower() in ("excel", "xlsx") else format.lower()
    if fmt not in EXPORTERS:
        raise HTTPException(status_code=400, detail="format must be csv or excel")

    record = await lifecycle.get_valid(audit_id)
    if record.status != AuditStatus.COMPLETED:
        raise LifecycleConflictError(
            LifecycleConflictError.AUDIT_NOT_COMPLETED,
            f"Audit {audit_id} is {record.status.value}, not completed",
            audit_id,
        )
    return Response(
        content=EXPORTERS[fmt](record),
        media_type=CONTENT_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="rival-audit-{audit_id}.{fmt}"'},
    )
