"""OFI severity classification.

A deficient checklist item is escalated to ``Priority OFI`` when at least
``PRIORITY_THRESHOLD`` of the four weighted criteria hold for it; otherwise
it stays a standard ``OFI``. The threshold is a module constant and is not
accepted as an argument, so two runs over the same inputs always agree.
"""
from dataclasses import dataclass

from services.rival_audit_service.checklist import HIGH_VALUE_PAGE_TYPES, ChecklistQuestion, Scope
from services.rival_audit_service.schemas.audit import (
    AuditItem,
    ClassificationRationale,
    CriteriaContext,
    CriterionCategory,
    CriterionResult,
    ItemSource,
    ItemStatus,
    PageType,
)

PRIORITY_THRESHOLD = 2

CRITERIA: tuple[tuple[CriterionCategory, str], ...] = (
    (CriterionCategory.STABILITY, "System stability impact"),
    (CriterionCategory.USER_IMPACT, "Severe user impact"),
    (CriterionCategory.BUSINESS_IMPACT, "Significant business impact"),
    (CriterionCategory.TECHNICAL_DEBT, "Critical technical debt"),
)


@dataclass(frozen=True)
class Classification:
    status: ItemStatus
    rationale: ClassificationRationale


def _decision_tree(results: list[CriterionResult], count: int) -> list[str]:
    tree = []
    for step, r in enumerate(results, start=1):
        tree.append(f"STEP {step}: {r.criterion} - {'YES' if r.satisfied else 'NO'}")
    if count >= PRIORITY_THRESHOLD:
        tree.append(f"RESULT: {count} of {len(results)} criteria met (>= {PRIORITY_THRESHOLD}) -> PRIORITY OFI")
    else:
        tree.append(f"RESULT: {count} of {len(results)} criteria met (< {PRIORITY_THRESHOLD}) -> OFI")
    return tree


def classify(item: AuditItem, criteria_context: CriteriaContext) -> Classification:
    if item.status in (ItemStatus.OK, ItemStatus.NA):
        raise ValueError(f"Only deficient items can be classified, got {item.status.value} for {item.question_id}")

    results = [
        CriterionResult(criterion=label, category=category, satisfied=criteria_context.is_satisfied(category))
        for category, label in CRITERIA
    ]
    count = sum(1 for r in results if r.satisfied)
    status = ItemStatus.PRIORITY_OFI if count >= PRIORITY_THRESHOLD else ItemStatus.OFI
    rationale = ClassificationRationale(
        status=status,
        criteria=results,
        satisfied_count=count,
        threshold=PRIORITY_THRESHOLD,
        decision_tree=_decision_tree(results, count),
    )
    return Classification(status=status, rationale=rationale)


def apply_classification(item: AuditItem, criteria_context: CriteriaContext) -> AuditItem:
    """Return a copy of ``item`` carrying the classifier's status and rationale."""
    result = classify(item, criteria_context)
    return item.model_copy(
        update={
            "status": result.status,
            "rationale": result.rationale,
            "source": ItemSource.CLASSIFIER,
            "classification_history": [*item.classification_history, result.status],
        }
    )


def derive_criteria_context(question: ChecklistQuestion, page_type: PageType | None) -> CriteriaContext:
    categories = set(question.risk_profile)
    high_value = question.scope == Scope.SITE or page_type in HIGH_VALUE_PAGE_TYPES
    if not high_value:
        categories.discard(CriterionCategory.BUSINESS_IMPACT)
    return CriteriaContext.of(*categories)


class CriteriaContextProvider:
    """Resolves the criteria context of an item: explicit overrides first, then the question's risk profile."""

    def __init__(self, overrides: dict[str, CriteriaContext] | None = None):
        self.overrides = dict(overrides or {})

    def context_for(self, question: ChecklistQuestion, page_type: PageType | None) -> CriteriaContext:
        override = self.overrides.get(question.id)
        if override is not None:
            return override
        return derive_criteria_context(question, page_type)
