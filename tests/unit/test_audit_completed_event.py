import json

import aio_pika
import pytest
from tenacity import wait_none

from services.rival_audit_service.events.audit_completed import AuditCompletedEvent, publish_audit_completed


def _event():
    return AuditCompletedEvent.build(
        audit_id=7,
        url="https://example.com/",
        summary={"priority_ofi_count": 1, "ofi_count": 2},
        pages_analyzed=3,
        reached_max_pages=False,
    )


def test_event_serializes_to_json():
    body = json.loads(_event().to_bytes())
    assert body["event_name"] == "RivalAuditCompleted"
    assert body["audit_id"] == 7
    assert body["continuation"] is False
    assert body["summary"]["ofi_count"] == 2


@pytest.mark.asyncio
async def test_publish_without_broker_is_skipped(monkeypatch):
    async def fail_connect(*args, **kwargs):
        raise AssertionError("should not connect")

    monkeypatch.setattr(aio_pika, "connect_robust", fail_connect)
    await publish_audit_completed(None, _event())


@pytest.mark.asyncio
async def test_publish_retries_then_reraises(monkeypatch):
    attempts = []

    async def broken_connect(url, *args, **kwargs):
        attempts.append(url)
        raise ConnectionError("broker down")

    monkeypatch.setattr(aio_pika, "connect_robust", broken_connect)
    with pytest.raises(ConnectionError):
        await publish_audit_completed("amqp://guest@localhost/", _event(), max_attempts=4, wait=wait_none())
    assert len(attempts) == 4
