from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from services.rival_audit_service.schemas.audit import AuditSummary, CriteriaContext


class HealthLabel(str, Enum):
    HEALTHY = "healthy"
    REVIEW_CRITERIA = "review_criteria"
    HIGH_DOWNGRADE_RATE = "high_downgrade_rate"


class AuditReportEntry(BaseModel):
    id: int
    url: str
    completed_at: datetime
    priority_ofi_count: int
    ofi_count: int
    downgrade_count: int
    manual_override_count: int


class ClassificationReport(BaseModel):
    period_start: datetime
    period_end: datetime
    audit_count: int
    total_classified: int
    priority_ofi_count: int
    ofi_count: int
    priority_ofi_rate: float
    downgrade_count: int
    downgrade_rate: float
    manual_override_count: int
    health: list[HealthLabel] = Field(default_factory=list)
    audits: list[AuditReportEntry] = Field(default_factory=list)


class ReclassifyRequest(BaseModel):
    criteria_overrides: dict[str, CriteriaContext] = Field(default_factory=dict)
    dry_run: bool = False


class ReclassificationResult(BaseModel):
    id: int
    url: str
    processed: int
    downgraded: int
    upgraded: int
    unchanged: int
    dry_run: bool = False
    summary: AuditSummary


class BulkReclassifyRequest(ReclassifyRequest):
    days: int = Field(default=30, ge=1, le=365)


class BulkReclassificationResult(BaseModel):
    audits_processed: int
    processed: int
    downgraded: int
    upgraded: int
    dry_run: bool = False
    skipped: list[int] = Field(default_factory=list)
    audits: list[ReclassificationResult] = Field(default_factory=list)
