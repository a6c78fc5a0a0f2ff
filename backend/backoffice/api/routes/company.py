from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.deps import get_client_info, require_role
from backoffice.core.errors import AuthorizationError
from backoffice.db.session import get_db
from backoffice.schemas.invitations import TraineeInvite
from backoffice.services import companies, invitations, users
from backoffice.services.audit import ClientInfo
from backoffice.services.roles import CallerContext, Role

router = APIRouter()

company_admin = require_role(Role.COMPANY_ADMIN)


def _own_company_id(caller: CallerContext) -> int:
    if not caller.company_id:
        raise AuthorizationError("No company assigned to your account")
    return caller.company_id


@router.get("/trainees", response_model=dict)
def list_trainees(db: Session = Depends(get_db), caller: CallerContext = Depends(company_admin)):
    company = companies.get_company(db, _own_company_id(caller))
    trainees = users.list_company_trainees(db, company.id)
    return {
        "company": companies.company_to_dict(company),
        "active_trainees": companies.active_trainee_count(db, company.id),
        "items": trainees,
    }


@router.post("/trainees/invite", response_model=dict)
def invite_trainee(
    payload: TraineeInvite,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(company_admin),
    client: ClientInfo = Depends(get_client_info),
):
    inv, email_sent = invitations.create_invitation(
        db,
        caller,
        payload.email,
        Role.TRAINEE,
        company_id=_own_company_id(caller),
        user_data=payload.user_data(),
        client=client,
    )
    return {"success": True, "invitation": invitations.invitation_to_dict(inv), "email_sent": email_sent}


@router.delete("/trainees/{user_id}", response_model=dict)
def delete_trainee(
    user_id: int,
    reason: Optional[str] = Query(None, max_length=1000),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(company_admin),
    client: ClientInfo = Depends(get_client_info),
):
    user = users.soft_delete_trainee(db, caller, user_id, reason=reason, client=client)
    return {"success": True, "message": "Trainee moved to recycling bin", "user": {"id": user.id, "email": user.email}}
