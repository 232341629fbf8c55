import json
from datetime import datetime, timezone

import aio_pika
from pydantic import BaseModel
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential


class AuditCompletedEvent(BaseModel):
    event_name: str = "RivalAuditCompleted"
    audit_id: int
    url: str
    produced_at: str
    continuation: bool = False
    pages_analyzed: int
    reached_max_pages: bool
    summary: dict

    @classmethod
    def build(cls, audit_id: int, url: str, summary: dict, pages_analyzed: int, reached_max_pages: bool, continuation: bool = False) -> "AuditCompletedEvent":
        return cls(
            audit_id=audit_id,
            url=url,
            produced_at=datetime.now(timezone.utc).isoformat(),
            continuation=continuation,
            pages_analyzed=pages_analyzed,
            reached_max_pages=reached_max_pages,
            summary=summary,
        )

    def to_bytes(self) -> bytes:
        return json.dumps(self.model_dump(), ensure_ascii=False).encode("utf-8")


async def _publish_once(rabbitmq_url: str, event: AuditCompletedEvent) -> None:
    conn = await aio_pika.connect_robust(rabbitmq_url)
    async with conn:
        ch = await conn.channel()
        ex = await ch.declare_exchange("rival_audit.events", aio_pika.ExchangeType.TOPIC, durable=True)
        msg = aio_pika.Message(body=event.to_bytes(), content_type="application/json", delivery_mode=aio_pika.DeliveryMode.PERSISTENT)
        await ex.publish(msg, routing_key="audit.rival.completed")


async def publish_audit_completed(rabbitmq_url: str | None, event: AuditCompletedEvent, max_attempts: int = 3, wait=None) -> None:
    if not rabbitmq_url:
        return
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait if wait is not None else wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            await _publish_once(rabbitmq_url, event)
