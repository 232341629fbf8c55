from services.rival_audit_service.middleware.logging import LoggingMiddleware
from services.rival_audit_service.middleware.error_handler import setup_error_handlers

__all__ = ["LoggingMiddleware", "setup_error_handlers"]
