from datetime import datetime, timedelta, timezone

from services.rival_audit_service.reporting import build_classification_report, is_downgraded
from services.rival_audit_service.schemas.audit import (
    AuditItem,
    AuditRecord,
    AuditStatus,
    AuditSummary,
    Importance,
    ItemSource,
    ItemStatus,
    Section,
)
from services.rival_audit_service.schemas.report import HealthLabel

NOW = datetime(2026, 3, 9, 12, 0, tzinfo=timezone.utc)
P, O = ItemStatus.PRIORITY_OFI, ItemStatus.OFI


def _item(status, history=None, source=ItemSource.CLASSIFIER, qid="title_tag"):
    return AuditItem(
        question_id=qid,
        name=qid,
        description="",
        importance=Importance.HIGH,
        section=Section.ON_PAGE,
        status=status,
        source=source,
        classification_history=history if history is not None else [status],
    )


def _audit(audit_id, items):
    return AuditRecord(
        id=audit_id,
        url=f"https://site{audit_id}.example/",
        status=AuditStatus.COMPLETED,
        created_at=NOW - timedelta(days=1),
        updated_at=NOW,
        expires_at=NOW + timedelta(minutes=30),
        completed_at=NOW - timedelta(hours=audit_id),
        results={Section.ON_PAGE: items},
        summary=AuditSummary(),
    )


def test_is_downgraded_needs_priority_then_ofi():
    assert is_downgraded(_item(O, [P, O]))
    assert is_downgraded(_item(O, [O, P, O]))
    assert not is_downgraded(_item(P, [O, P]))
    assert not is_downgraded(_item(O, [O, O]))
    assert not is_downgraded(_item(O, []))


def test_report_rates_and_healthy_label():
    audits = [_audit(1, [_item(P)] + [_item(O) for _ in range(4)])]
    report = build_classification_report(audits, NOW - timedelta(days=7), NOW)
    assert report.audit_count == 1
    assert report.total_classified == 5
    assert report.priority_ofi_rate == 0.2
    assert report.downgrade_rate == 0.0
    assert report.health == [HealthLabel.HEALTHY]


def test_high_priority_rate_flags_criteria_review():
    audits = [
        _audit(1, [_item(P), _item(O)]),
        _audit(2, [_item(P), _item(O), _item(O)]),
    ]
    report = build_classification_report(audits, NOW - timedelta(days=7), NOW)
    assert report.priority_ofi_count == 2
    assert report.ofi_count == 3
    assert report.priority_ofi_rate == 0.4
    assert HealthLabel.REVIEW_CRITERIA in report.health
    assert [e.id for e in report.audits] == [1, 2]


def test_downgrade_rate_counts_downgraded_items_among_escalated_ones():
    items = [_item(P), _item(P), _item(O, [P, O])] + [_item(O) for _ in range(7)]
    report = build_classification_report([_audit(1, items)], NOW - timedelta(days=7), NOW)
    assert report.downgrade_count == 1
    assert report.downgrade_rate == 0.3333
    assert report.health == [HealthLabel.HIGH_DOWNGRADE_RATE]


def test_manual_items_are_counted_separately():
    items = [_item(P), _item(P, source=ItemSource.MANUAL), _item(O), _item(O), _item(O)]
    report = build_classification_report([_audit(1, items)], NOW - timedelta(days=7), NOW)
    assert report.priority_ofi_count == 1
    assert report.ofi_count == 3
    assert report.manual_override_count == 1
    assert report.audits[0].manual_override_count == 1


def test_empty_period_is_healthy():
    report = build_classification_report([], NOW - timedelta(days=7), NOW)
    assert report.total_classified == 0
    assert report.priority_ofi_rate == 0.0
    assert report.health == [HealthLabel.HEALTHY]
