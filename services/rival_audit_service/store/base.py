from datetime import datetime
from typing import Any, Protocol

from services.rival_audit_service.schemas.audit import AuditRecord


class AuditStore(Protocol):
    """Persistence collaborator for audit records and their page evidence.

    ``update_audit`` must apply the whole patch in one step so readers never
    observe a status change without its payload.
    """

    async def create_audit(self, data: dict[str, Any]) -> AuditRecord:
        ...

    async def get_audit(self, audit_id: int) -> AuditRecord | None:
        ...

    async def update_audit(self, audit_id: int, patch: dict[str, Any]) -> AuditRecord:
        ...

    async def delete_expired(self, now: datetime) -> int:
        ...

    async def delete_all(self) -> int:
        ...

    async def store_page_evidence(self, audit_id: int, page: dict[str, Any]) -> None:
        ...

    async def get_page_evidence(self, audit_id: int) -> list[dict[str, Any]]:
        ...

    async def list_completed_between(self, start: datetime, end: datetime) -> list[AuditRecord]:
        ...

    async def count_by_status(self) -> dict[str, int]:
        ...
