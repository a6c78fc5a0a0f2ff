from fastapi import APIRouter

from backoffice.api.routes import health, auth, admin, admin_companies, recycling_bin, audit_logs, invitations, company

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])  # GET /
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])  # GET /me, /status, /check-role
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])  # users + bulk operations
api_router.include_router(admin_companies.router, prefix="/admin/companies", tags=["admin"])
api_router.include_router(recycling_bin.router, prefix="/admin/recycling-bin", tags=["admin"])
api_router.include_router(audit_logs.router, prefix="/admin/audit-logs", tags=["admin"])
api_router.include_router(invitations.router, prefix="/invitations", tags=["invitations"])
api_router.include_router(company.router, prefix="/company", tags=["company"])  # company admin area
