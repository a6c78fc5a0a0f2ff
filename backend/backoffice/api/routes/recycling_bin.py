from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.api.deps import get_client_info, require_role
from backoffice.db.session import get_db
from backoffice.services import recycling_bin
from backoffice.services.audit import ClientInfo
from backoffice.services.roles import CallerContext, Role

router = APIRouter()

site_admin = require_role(Role.SITE_ADMIN)


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_recycling_bin(db: Session = Depends(get_db), caller: CallerContext = Depends(site_admin)):
    """Soft-deleted users and companies, newest first, with days left to recover each."""
    return recycling_bin.list_bin(db)


@router.post("/cleanup", response_model=dict)
def cleanup(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    result = recycling_bin.cleanup(db, caller, client=client)
    return {"success": True, **result}
