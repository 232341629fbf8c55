from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, model_validator


class AuditStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ItemStatus(str, Enum):
    PRIORITY_OFI = "Priority OFI"
    OFI = "OFI"
    OK = "OK"
    NA = "N/A"


class Importance(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Section(str, Enum):
    ON_PAGE = "on_page"
    STRUCTURE_NAVIGATION = "structure_navigation"
    CONTACT_PAGE = "contact_page"
    SERVICE_PAGES = "service_pages"
    LOCATION_PAGES = "location_pages"
    SERVICE_AREA_PAGES = "service_area_pages"


SECTION_ORDER: tuple[Section, ...] = tuple(Section)


class PageType(str, Enum):
    HOMEPAGE = "homepage"
    CONTACT = "contact"
    SERVICE = "service"
    LOCATION = "location"
    SERVICE_AREA = "service_area"
    GENERIC = "generic"


class CriterionCategory(str, Enum):
    STABILITY = "stability"
    USER_IMPACT = "user_impact"
    BUSINESS_IMPACT = "business_impact"
    TECHNICAL_DEBT = "technical_debt"


class ItemSource(str, Enum):
    EVALUATOR = "evaluator"
    CLASSIFIER = "classifier"
    MANUAL = "manual"


class CriteriaContext(BaseModel):
    """Boolean outcome of each weighted criterion for one deficient item."""

    model_config = ConfigDict(frozen=True)

    stability: bool = False
    user_impact: bool = False
    business_impact: bool = False
    technical_debt: bool = False

    @classmethod
    def of(cls, *categories: CriterionCategory) -> "CriteriaContext":
        return cls(**{c.value: True for c in categories})

    def is_satisfied(self, category: CriterionCategory) -> bool:
        return bool(getattr(self, category.value))


class CriterionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    criterion: str
    category: CriterionCategory
    satisfied: bool


class ClassificationRationale(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ItemStatus
    criteria: list[CriterionResult]
    satisfied_count: int
    threshold: int
    decision_tree: list[str]


class ManualOverride(BaseModel):
    model_config = ConfigDict(frozen=True)

    previous_status: ItemStatus
    status: ItemStatus
    overridden_at: datetime


class AuditItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    name: str
    description: str
    importance: Importance
    section: Section
    status: ItemStatus
    notes: str = ""
    page_url: str | None = None
    page_type: PageType | None = None
    measurement: Any = None
    source: ItemSource = ItemSource.EVALUATOR
    rationale: ClassificationRationale | None = None
    classification_history: list[ItemStatus] = Field(default_factory=list)
    manual_override: ManualOverride | None = None

    @property
    def key(self) -> tuple[str, str, str | None]:
        return self.section.value, self.question_id, self.page_url


class AuditSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    priority_ofi_count: int = 0
    ofi_count: int = 0
    ok_count: int = 0
    na_count: int = 0
    total: int = 0


class TopIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    category: Section
    importance: Importance
    status: ItemStatus


class PageIssueSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_url: str
    page_type: PageType
    priority_ofi_count: int
    ofi_count: int
    top_issues: list[TopIssue]


class SkippedPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    reason: str
    status_code: int | None = None


class CrawlState(BaseModel):
    model_config = ConfigDict(frozen=True)

    frontier: list[str] = Field(default_factory=list)
    visited: list[str] = Field(default_factory=list)
    skipped: list[SkippedPage] = Field(default_factory=list)


class AuditOptions(BaseModel):
    max_pages: int | None = Field(default=None, ge=1, le=500)
    crawl_time_budget_s: float | None = Field(default=None, gt=0, le=3600)
    concurrency: int | None = Field(default=None, ge=1, le=20)
    timeout: float | None = Field(default=None, ge=1.0, le=60.0)
    js_render: bool = False
    criteria_overrides: dict[str, CriteriaContext] = Field(default_factory=dict)


class AuditRecord(BaseModel):
    """Immutable snapshot of an audit; every mutation produces a new instance."""

    model_config = ConfigDict(frozen=True)

    id: int
    url: str
    user_id: str | None = None
    status: AuditStatus = AuditStatus.PENDING
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None
    options: AuditOptions = Field(default_factory=AuditOptions)

    results: dict[Section, list[AuditItem]] | None = None
    summary: AuditSummary | None = None
    page_issues: list[PageIssueSummary] = Field(default_factory=list)
    pages_analyzed: int = 0
    reached_max_pages: bool = False
    crawl_state: CrawlState = Field(default_factory=CrawlState)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_lifecycle_payload(self) -> "AuditRecord":
        completed = self.status == AuditStatus.COMPLETED
        has_payload = self.results is not None and self.summary is not None
        if completed != has_payload:
            raise ValueError("results and summary must be present if and only if status is completed")
        if self.results is not None and self.summary is None:
            raise ValueError("results without summary")
        if (self.status == AuditStatus.FAILED) != (self.error_message is not None):
            raise ValueError("error_message must be present if and only if status is failed")
        finished = self.status in (AuditStatus.COMPLETED, AuditStatus.FAILED)
        if finished != (self.completed_at is not None):
            raise ValueError("completed_at must be set if and only if the audit is completed or failed")
        return self

    def evolve(self, **changes: Any) -> "AuditRecord":
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)

    def iter_items(self):
        for items in (self.results or {}).values():
            yield from items


class CreateAuditRequest(BaseModel):
    url: AnyHttpUrl
    user_id: str | None = None
    options: AuditOptions = Field(default_factory=AuditOptions)


class CreateAuditResponse(BaseModel):
    id: int
    status: AuditStatus


class ContinueAuditResponse(BaseModel):
    id: int
    status: AuditStatus
    continued: bool
    pages_analyzed: int
    expires_at: datetime
    message: str


class ItemOverrideRequest(BaseModel):
    status: ItemStatus
    notes: str | None = None
    section: Section | None = None
    page_url: str | None = None


class PageIssuesResponse(BaseModel):
    id: int
    pages: list[PageIssueSummary]
