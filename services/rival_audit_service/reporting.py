from datetime import datetime

from services.rival_audit_service.schemas.audit import AuditItem, AuditRecord, ItemSource, ItemStatus
from services.rival_audit_service.schemas.report import AuditReportEntry, ClassificationReport, HealthLabel

PRIORITY_RATE_REVIEW_THRESHOLD = 0.30
DOWNGRADE_RATE_THRESHOLD = 0.20


def is_downgraded(item: AuditItem) -> bool:
    """True when the classifier history shows Priority OFI followed by OFI on a later run."""
    history = item.classification_history
    return any(
        a == ItemStatus.PRIORITY_OFI and b == ItemStatus.OFI
        for a, b in zip(history, history[1:])
    )


def _rate(numerator: int, denominator: int) -> float:
    return round(numerator / denominator, 4) if denominator else 0.0


def build_classification_report(
    audits: list[AuditRecord],
    period_start: datetime,
    period_end: datetime,
    priority_rate_threshold: float = PRIORITY_RATE_REVIEW_THRESHOLD,
    downgrade_rate_threshold: float = DOWNGRADE_RATE_THRESHOLD,
) -> ClassificationReport:
    priority = ofi = downgrades = manual = 0
    entries = []
    for audit in audits:
        a_priority = a_ofi = a_down = a_manual = 0
        for item in audit.iter_items():
            if item.source == ItemSource.MANUAL:
                a_manual += 1
                continue
            if item.status == ItemStatus.PRIORITY_OFI:
                a_priority += 1
            elif item.status == ItemStatus.OFI:
                a_ofi += 1
            if is_downgraded(item):
                a_down += 1
        priority += a_priority
        ofi += a_ofi
        downgrades += a_down
        manual += a_manual
        entries.append(
            AuditReportEntry(
                id=audit.id,
                url=audit.url,
                completed_at=audit.completed_at,
                priority_ofi_count=a_priority,
                ofi_count=a_ofi,
                downgrade_count=a_down,
                manual_override_count=a_manual,
            )
        )

    priority_rate = _rate(priority, priority + ofi)
    # share of items ever escalated (still Priority OFI or since downgraded) that were downgraded
    downgrade_rate = _rate(downgrades, priority + downgrades)

    health: list[HealthLabel] = []
    if priority_rate > priority_rate_threshold:
        health.append(HealthLabel.REVIEW_CRITERIA)
    if downgrade_rate > downgrade_rate_threshold:
        health.append(HealthLabel.HIGH_DOWNGRADE_RATE)
    if not health:
        health.append(HealthLabel.HEALTHY)

    return ClassificationReport(
        period_start=period_start,
        period_end=period_end,
        audit_count=len(audits),
        total_classified=priority + ofi,
        priority_ofi_count=priority,
        ofi_count=ofi,
        priority_ofi_rate=priority_rate,
        downgrade_count=downgrades,
        downgrade_rate=downgrade_rate,
        manual_override_count=manual,
        health=health,
        audits=entries,
    )
