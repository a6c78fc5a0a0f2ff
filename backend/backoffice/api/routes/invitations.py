from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.deps import Identity, get_client_info, get_identity, require_role
from backoffice.db.session import get_db
from backoffice.models.company import Company
from backoffice.schemas.invitations import InvitationAccept, InvitationCreate
from backoffice.services import invitations, users
from backoffice.services.audit import ClientInfo
from backoffice.services.roles import CallerContext, Role

router = APIRouter()

company_admin = require_role(Role.COMPANY_ADMIN)


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_invitations(
    status: Optional[str] = Query(None, pattern="^(pending|accepted|expired|cancelled)$"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(company_admin),
):
    return invitations.list_invitations(db, caller, status=status, search=search, page=page, page_size=page_size)


@router.post("", response_model=dict)
@router.post("/", response_model=dict)
def create_invitation(
    payload: InvitationCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(company_admin),
    client: ClientInfo = Depends(get_client_info),
):
    inv, email_sent = invitations.create_invitation(
        db,
        caller,
        payload.email,
        payload.role,
        company_id=payload.company_id,
        user_data=payload.user_data(),
        client=client,
    )
    return {"success": True, "invitation": invitations.invitation_to_dict(inv), "email_sent": email_sent}


@router.get("/check-email", response_model=dict)
def check_email(email: str = Query(..., min_length=3), db: Session = Depends(get_db), caller: CallerContext = Depends(company_admin)):
    return invitations.check_email(db, email)


@router.get("/validate", response_model=dict)
def validate_invitation(token: str = Query(...), db: Session = Depends(get_db)):
    """Public: is this token still usable for signup?"""
    inv = invitations.validate_token(db, token)
    company = db.get(Company, inv.company_id) if inv.company_id else None
    return {
        "valid": True,
        "invitation": {
            "email": inv.email,
            "role": inv.role,
            "company_id": inv.company_id,
            "company_name": company.name if company else None,
            "expires_at": inv.expires_at.isoformat(),
            "user_data": inv.user_data or {},
        },
    }


@router.get("/verify", response_model=dict)
def verify_invitation(token: str = Query(...), db: Session = Depends(get_db)):
    inv = invitations.verify_token(db, token)
    return {"valid": True, "invitation": {"email": inv.email, "role": inv.role, "status": inv.status}}


@router.post("/accept", response_model=dict)
def accept_invitation(
    payload: InvitationAccept,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    client: ClientInfo = Depends(get_client_info),
):
    user = invitations.accept(
        db,
        identity.external_id,
        identity.email,
        payload.token,
        profile=payload.profile(),
        client=client,
    )
    return {"success": True, "message": "Invitation accepted", "user": users.user_to_dict(user)}


@router.post("/{invitation_id}/resend", response_model=dict)
def resend_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(company_admin),
    client: ClientInfo = Depends(get_client_info),
):
    inv, email_sent = invitations.resend(db, caller, invitation_id, client=client)
    return {
        "success": True,
        "message": "Invitation resent",
        "expires_at": inv.expires_at.isoformat(),
        "email_sent": email_sent,
    }


@router.post("/{invitation_id}/cancel", response_model=dict)
def cancel_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(company_admin),
    client: ClientInfo = Depends(get_client_info),
):
    inv = invitations.cancel(db, caller, invitation_id, client=client)
    return {"success": True, "invitation": invitations.invitation_to_dict(inv)}


@router.delete("/{invitation_id}", response_model=dict)
def delete_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(company_admin),
    client: ClientInfo = Depends(get_client_info),
):
    invitations.delete(db, caller, invitation_id, client=client)
    return {"success": True, "message": "Invitation deleted"}
