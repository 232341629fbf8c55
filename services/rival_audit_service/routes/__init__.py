from services.rival_audit_service.routes.admin import router as admin_router
from services.rival_audit_service.routes.audits import router as audits_router
from services.rival_audit_service.routes.health import router as health_router
from services.rival_audit_service.routes.reports import router as reports_router

__all__ = ["admin_router", "audits_router", "health_router", "reports_router"]
