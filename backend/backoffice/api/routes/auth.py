from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.deps import Identity, get_identity, get_optional_caller
from backoffice.core.errors import AuthorizationError, NotFoundError
from backoffice.db.session import get_db
from backoffice.models.user import User
from backoffice.schemas.auth import AccessCheck, CallerOut
from backoffice.services import users
from backoffice.services.roles import CallerContext, authorize, parse_role

router = APIRouter()


def _load(db: Session, identity: Identity) -> User:
    user = users.get_by_external_id(db, identity.external_id)
    if not user:
        raise NotFoundError("User not found")
    return user


@router.get("/me", response_model=CallerOut)
def me(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    user = _load(db, identity)
    return CallerOut(
        id=user.id,
        external_id=user.external_id,
        email=user.email,
        role=user.role,
        company_id=user.company_id,
        is_active=user.is_active and not user.is_deleted,
        first_name=user.first_name,
        last_name=user.last_name,
        profile_completed=user.profile_completed,
    )


@router.get("/status", response_model=dict)
def account_status(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """403 for deactivated or soft-deleted accounts, so the front end can route them away."""
    user = _load(db, identity)
    if user.is_deleted or not user.is_active:
        raise AuthorizationError("Account is deactivated")
    return {"status": "active", "role": user.role, "company_id": user.company_id}


@router.get("/check-role", response_model=AccessCheck)
def check_role(role: str = Query(...), caller: Optional[CallerContext] = Depends(get_optional_caller)):
    if caller is None or parse_role(role) is None:
        return AccessCheck(has_access=False)
    return AccessCheck(
        has_access=authorize(caller, role),
        role=caller.role.value if caller.role else None,
    )
