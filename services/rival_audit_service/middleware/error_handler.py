from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.logging_config import get_logger
from services.rival_audit_service.config import settings
from services.rival_audit_service.errors import LifecycleConflictError

logger = get_logger(__name__)


def _error_body(request: Request, code: int, message, **extra) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            **extra,
            "request_id": getattr(request.state, "request_id", "unknown"),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    }


def setup_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(LifecycleConflictError)
    async def lifecycle_conflict_handler(request: Request, exc: LifecycleConflictError):
        code = status.HTTP_404_NOT_FOUND if exc.reason in LifecycleConflictError.NOT_FOUND_REASONS else status.HTTP_409_CONFLICT

        logger.warning(
            "Lifecycle conflict",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "audit_id": exc.audit_id,
                "reason": exc.reason,
                "path": request.url.path,
                "method": request.method,
                "service": settings.service_name
            }
        )

        return JSONResponse(status_code=code, content=_error_body(request, code, exc.message, reason=exc.reason))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(
            "HTTP exception",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "status_code": exc.status_code,
                "detail": exc.detail,
                "path": request.url.path,
                "method": request.method,
                "service": settings.service_name
            }
        )

        return JSONResponse(status_code=exc.status_code, content=_error_body(request, exc.status_code, exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        logger.warning(
            "Validation error",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "errors": errors,
                "path": request.url.path,
                "method": request.method,
                "service": settings.service_name
            }
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(request, 422, "Validation error", details=errors)
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(
            "Database error",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "error": str(exc),
                "error_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method,
                "service": settings.service_name
            }
        )

        detail = str(exc) if settings.is_development() else "Database error occurred"
        return JSONResponse(status_code=500, content=_error_body(request, 500, detail))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "error": str(exc),
                "error_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method,
                "service": settings.service_name
            },
            exc_info=True
        )

        detail = f"{type(exc).__name__}: {str(exc)}" if settings.is_development() else "Internal server error"
        return JSONResponse(status_code=500, content=_error_body(request, 500, detail))
