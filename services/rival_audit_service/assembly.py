from collections import OrderedDict

from services.rival_audit_service.analyzers.criteria_evaluator import evaluate
from services.rival_audit_service.analyzers.ofi_classifier import CriteriaContextProvider, apply_classification
from services.rival_audit_service.analyzers.page_evidence import PageEvidence, SiteEvidence
from services.rival_audit_service.checklist import ChecklistQuestion, Scope, questions_for
from services.rival_audit_service.metrics import audit_items_classified_total
from services.rival_audit_service.schemas.audit import (
    SECTION_ORDER,
    AuditItem,
    AuditSummary,
    Importance,
    ItemSource,
    ItemStatus,
    PageIssueSummary,
    PageType,
    Section,
    TopIssue,
)

ItemKey = tuple[str, str, str | None]

_STATUS_RANK = {ItemStatus.PRIORITY_OFI: 0, ItemStatus.OFI: 1}
_IMPORTANCE_RANK = {Importance.HIGH: 0, Importance.MEDIUM: 1, Importance.LOW: 2}


def _base_item(question: ChecklistQuestion, status: ItemStatus, page_url: str | None, page_type: PageType | None, **extra) -> AuditItem:
    return AuditItem(
        question_id=question.id,
        name=question.name,
        description=question.description,
        importance=question.importance,
        section=question.section,
        status=status,
        page_url=page_url,
        page_type=page_type,
        **extra,
    )


def build_item(
    question: ChecklistQuestion,
    evidence: PageEvidence | SiteEvidence,
    provider: CriteriaContextProvider,
    previous: AuditItem | None = None,
) -> AuditItem:
    if previous is not None and previous.source == ItemSource.MANUAL:
        return previous

    page_url = evidence.url if isinstance(evidence, PageEvidence) else None
    page_type = evidence.page_type if isinstance(evidence, PageEvidence) else None
    history = list(previous.classification_history) if previous is not None else []

    result = evaluate(question.id, evidence)
    if not result.applicable:
        status = ItemStatus.NA
    elif result.satisfied:
        status = ItemStatus.OK
    else:
        status = ItemStatus.OFI

    item = _base_item(
        question,
        status,
        page_url,
        page_type,
        notes=result.note,
        measurement=result.measurement,
        classification_history=history,
    )
    if status != ItemStatus.OFI:
        return item

    classified = apply_classification(item, provider.context_for(question, page_type))
    audit_items_classified_total.labels(status=classified.status.value).inc()
    return classified


def not_applicable_item(question: ChecklistQuestion, reason: str, previous: AuditItem | None = None) -> AuditItem:
    if previous is not None and previous.source == ItemSource.MANUAL:
        return previous
    return _base_item(question, ItemStatus.NA, None, None, notes=reason)


def assemble_results(
    pages: list[PageEvidence],
    site: SiteEvidence,
    provider: CriteriaContextProvider,
    previous: dict[ItemKey, AuditItem] | None = None,
) -> dict[Section, list[AuditItem]]:
    """Evaluate every checklist question and group the items into the six sections.

    Sections without an applicable page still get one N/A item per question.
    """
    previous = previous or {}
    results: dict[Section, list[AuditItem]] = OrderedDict()
    for section in SECTION_ORDER:
        items: list[AuditItem] = []
        for question in questions_for(section):
            if question.scope == Scope.SITE:
                items.append(build_item(question, site, provider, previous.get((section.value, question.id, None))))
                continue
            applicable = [p for p in pages if question.applies_to(p.page_type)]
            if not applicable:
                items.append(not_applicable_item(
                    question,
                    "No applicable pages found",
                    previous.get((section.value, question.id, None)),
                ))
                continue
            for page in applicable:
                items.append(build_item(question, page, provider, previous.get((section.value, question.id, page.url))))
        results[section] = items
    return results


def summarize(results: dict[Section, list[AuditItem]]) -> AuditSummary:
    counts = {status: 0 for status in ItemStatus}
    for items in results.values():
        for item in items:
            counts[item.status] += 1
    return AuditSummary(
        priority_ofi_count=counts[ItemStatus.PRIORITY_OFI],
        ofi_count=counts[ItemStatus.OFI],
        ok_count=counts[ItemStatus.OK],
        na_count=counts[ItemStatus.NA],
        total=sum(counts.values()),
    )


def page_issue_summaries(results: dict[Section, list[AuditItem]], limit: int = 3) -> list[PageIssueSummary]:
    by_page: dict[str, list[AuditItem]] = OrderedDict()
    for items in results.values():
        for item in items:
            if item.page_url is None or item.status not in _STATUS_RANK:
                continue
            by_page.setdefault(item.page_url, []).append(item)

    summaries = []
    for page_url, items in by_page.items():
        ranked = sorted(items, key=lambda i: (_STATUS_RANK[i.status], _IMPORTANCE_RANK[i.importance]))
        summaries.append(
            PageIssueSummary(
                page_url=page_url,
                page_type=items[0].page_type or PageType.GENERIC,
                priority_ofi_count=sum(1 for i in items if i.status == ItemStatus.PRIORITY_OFI),
                ofi_count=sum(1 for i in items if i.status == ItemStatus.OFI),
                top_issues=[
                    TopIssue(name=i.name, category=i.section, importance=i.importance, status=i.status)
                    for i in ranked[:limit]
                ],
            )
        )
    summaries.sort(key=lambda s: (-s.priority_ofi_count, -s.ofi_count))
    return summaries
