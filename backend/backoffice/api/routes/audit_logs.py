from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.deps import require_role
from backoffice.db.session import get_db
from backoffice.services import audit
from backoffice.services.roles import CallerContext, Role

router = APIRouter()


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_audit_logs(
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    severity: Optional[str] = Query(None, pattern="^(low|info|warning|error|critical)$"),
    actor_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_role(Role.SITE_ADMIN)),
):
    return audit.list_logs(
        db,
        action=action,
        resource_type=resource_type,
        severity=severity,
        actor_id=actor_id,
        page=page,
        page_size=page_size,
    )
