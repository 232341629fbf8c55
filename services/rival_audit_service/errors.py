class SeedUnreachableError(Exception):
    def __init__(self, url: str, reason: str):
        super().__init__(f"Seed URL {url} is unreachable: {reason}")
        self.url = url
        self.reason = reason


class FetchError(Exception):
    def __init__(self, url: str, reason: str, status_code: int | None = None):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status_code = status_code


class AuditNotFoundError(Exception):
    def __init__(self, audit_id: int):
        super().__init__(f"Audit {audit_id} not found")
        self.audit_id = audit_id


class LifecycleConflictError(Exception):
    AUDIT_NOT_FOUND = "audit_not_found"
    AUDIT_EXPIRED = "audit_expired"
    AUDIT_IN_PROGRESS = "audit_in_progress"
    AUDIT_FAILED = "audit_failed"
    AUDIT_NOT_COMPLETED = "audit_not_completed"
    INVALID_TRANSITION = "invalid_transition"
    ITEM_NOT_FOUND = "item_not_found"
    ITEM_AMBIGUOUS = "item_ambiguous"
    ITEM_NOT_CLASSIFIED = "item_not_classified"

    NOT_FOUND_REASONS = frozenset({AUDIT_NOT_FOUND, AUDIT_EXPIRED, ITEM_NOT_FOUND})

    def __init__(self, reason: str, message: str, audit_id: int | None = None):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.audit_id = audit_id
