"""Invitation lifecycle.

pending --accept--> accepted
pending --cancel--> cancelled
pending (now > expires_at) reads as expired; nothing sweeps the table.

Tokens are single-use: acceptance moves the row out of ``pending`` with a
conditional update, so a second acceptance no longer finds it.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.core.clock import utcnow
from backoffice.core.config import settings
from backoffice.core.errors import (
    AuthorizationError,
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from backoffice.core.security import generate_invitation_token
from backoffice.db.session import commit
from backoffice.models.company import Company
from backoffice.models.invitation import Invitation
from backoffice.models.user import User
from backoffice.services import audit, companies, mailer, soft_delete, users
from backoffice.services.audit import ClientInfo
from backoffice.services.roles import CallerContext, Role, can_manage, parse_role

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
EXPIRED = "expired"
CANCELLED = "cancelled"
STATUSES = (PENDING, ACCEPTED, EXPIRED, CANCELLED)

USER_DATA_FIELDS = ("first_name", "last_name", "phone", "job_title", "department", "location")


def _ttl() -> timedelta:
    return timedelta(days=settings.invitation_ttl_days)


def effective_status(inv: Invitation, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    if inv.status == PENDING and now > inv.expires_at:
        return EXPIRED
    return inv.status


def _clean_user_data(user_data: Optional[dict]) -> dict:
    data = {}
    for field in USER_DATA_FIELDS:
        value = (user_data or {}).get(field)
        data[field] = value.strip() or None if isinstance(value, str) else None
    for field in ("first_name", "last_name"):
        if data[field] is not None and len(data[field]) < 2:
            raise ValidationError(f"{field.replace('_', ' ').capitalize()} must be at least 2 characters")
    return data


def _get(db: Session, invitation_id: int) -> Invitation:
    inv = db.get(Invitation, invitation_id)
    if not inv:
        raise NotFoundError("Invitation not found")
    return inv


def _get_managed(db: Session, caller: CallerContext, invitation_id: int) -> Invitation:
    inv = _get(db, invitation_id)
    if not can_manage(caller, inv):
        raise AuthorizationError("Cannot manage this invitation")
    return inv


def _send(db: Session, inv: Invitation, caller: CallerContext, resend: bool = False) -> bool:
    company = db.get(Company, inv.company_id) if inv.company_id else None
    inviter = db.get(User, caller.user_id) if caller.user_id else None
    return mailer.send_invitation_email(
        inv.email,
        inv.role,
        inv.token,
        company_name=company.name if company else None,
        inviter_name=(inviter.full_name or None) if inviter else None,
        resend=resend,
    )


def check_email(db: Session, email: str) -> dict:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required")
    if users.get_by_email(db, email):
        return {"exists": True, "reason": "user_exists"}
    pending = (
        db.query(Invitation.id)
        .filter(func.lower(Invitation.email) == email, Invitation.status == PENDING)
        .first()
    )
    if pending:
        return {"exists": True, "reason": "invitation_pending"}
    return {"exists": False, "reason": None}


def create_invitation(
    db: Session,
    caller: CallerContext,
    email: Optional[str],
    role_value,
    company_id: Optional[int] = None,
    user_data: Optional[dict] = None,
    now: Optional[datetime] = None,
    client: Optional[ClientInfo] = None,
) -> tuple[Invitation, bool]:
    """Issue a pending invitation and email its link.

    Returns (invitation, email_sent). A failed email does not undo the invitation;
    it can be resent.
    """
    email = (email or "").strip().lower()
    if not email or role_value in (None, ""):
        raise ValidationError("Email and role are required")
    role = parse_role(role_value)
    if role is None:
        raise ValidationError("Invalid role")

    if caller.role == Role.COMPANY_ADMIN:
        if role != Role.TRAINEE:
            raise AuthorizationError("Company admins can only invite trainees")
        company_id = company_id or caller.company_id
        if not caller.company_id or company_id != caller.company_id:
            raise AuthorizationError("Company admins can only invite into their own company")
    elif caller.role != Role.SITE_ADMIN:
        raise AuthorizationError("Insufficient permissions to invite users")

    if role == Role.TRAINEE and not company_id:
        raise ValidationError("Trainees must be invited into a company")
    if company_id:
        companies.get_company(db, company_id)
    data = _clean_user_data(user_data)

    existing = check_email(db, email)
    if existing["reason"] == "user_exists":
        raise ConflictError("User with this email already exists")
    if existing["reason"] == "invitation_pending":
        raise ConflictError("An invitation has already been sent to this email")

    now = now or utcnow()
    inv = Invitation(
        email=email,
        role=role.value,
        company_id=company_id,
        invited_by=caller.user_id,
        token=generate_invitation_token(),
        status=PENDING,
        expires_at=now + _ttl(),
        user_data=data,
    )
    db.add(inv)
    db.flush()
    audit.record(
        db, caller, "invitation_created", "invitation", inv.id,
        new_values={"email": email, "role": role.value, "company_id": company_id},
        client=client,
    )
    commit(db)
    db.refresh(inv)
    logger.info("Invitation %s (%s) created by %s", inv.id, role.value, caller.ref)
    return inv, _send(db, inv, caller)


def validate_token(db: Session, token: str, now: Optional[datetime] = None) -> Invitation:
    """A token that can still be accepted: pending and not past expiry."""
    if not token:
        raise ValidationError("Token is required")
    inv = db.query(Invitation).filter(Invitation.token == token, Invitation.status == PENDING).first()
    if not inv:
        raise NotFoundError("Invalid or expired invitation")
    if (now or utcnow()) > inv.expires_at:
        raise ExpiredError("Invitation has expired")
    return inv


def verify_token(db: Session, token: str, now: Optional[datetime] = None) -> Invitation:
    """Like validate_token, but an already accepted invitation still verifies."""
    if not token:
        raise ValidationError("Token is required")
    inv = (
        db.query(Invitation)
        .filter(Invitation.token == token, Invitation.status.in_([PENDING, ACCEPTED]))
        .first()
    )
    if not inv:
        raise NotFoundError("Invalid or expired invitation")
    if (now or utcnow()) > inv.expires_at:
        raise ExpiredError("Invitation has expired")
    return inv


def resend(db: Session, caller: CallerContext, invitation_id: int, now: Optional[datetime] = None, client: Optional[ClientInfo] = None) -> tuple[Invitation, bool]:
    inv = _get_managed(db, caller, invitation_id)
    now = now or utcnow()
    if inv.status != PENDING:
        raise InvalidStateError("Only pending invitations can be resent")
    if now > inv.expires_at:
        raise ExpiredError("Invitation has expired. Please create a new invitation.")
    new_expiry = now + _ttl()
    updated = (
        db.query(Invitation)
        .filter(Invitation.id == inv.id, Invitation.status == PENDING)
        .update(
            {Invitation.token: generate_invitation_token(), Invitation.expires_at: new_expiry, Invitation.updated_at: now},
            synchronize_session=False,
        )
    )
    if not updated:
        raise NotFoundError("Invitation not found")
    audit.record(
        db, caller, "invitation_resent", "invitation", inv.id,
        old_values={"expires_at": inv.expires_at}, new_values={"expires_at": new_expiry},
        client=client,
    )
    commit(db)
    db.refresh(inv)
    logger.info("Invitation %s resent by %s", inv.id, caller.ref)
    return inv, _send(db, inv, caller, resend=True)


def cancel(db: Session, caller: CallerContext, invitation_id: int, client: Optional[ClientInfo] = None) -> Invitation:
    inv = _get_managed(db, caller, invitation_id)
    if inv.status != PENDING:
        raise InvalidStateError("Only pending invitations can be cancelled")
    updated = (
        db.query(Invitation)
        .filter(Invitation.id == inv.id, Invitation.status == PENDING)
        .update({Invitation.status: CANCELLED, Invitation.updated_at: utcnow()}, synchronize_session=False)
    )
    if not updated:
        raise NotFoundError("Invitation not found")
    audit.record(db, caller, "invitation_cancelled", "invitation", inv.id, old_values={"status": PENDING}, new_values={"status": CANCELLED}, client=client)
    commit(db)
    db.refresh(inv)
    return inv


def delete(db: Session, caller: CallerContext, invitation_id: int, client: Optional[ClientInfo] = None) -> None:
    inv = _get_managed(db, caller, invitation_id)
    if inv.status == ACCEPTED:
        raise ConflictError("Cannot delete accepted invitations")
    removed = (
        db.query(Invitation)
        .filter(Invitation.id == inv.id, Invitation.status != ACCEPTED)
        .delete(synchronize_session=False)
    )
    if not removed:
        raise ConflictError("Cannot delete accepted invitations")
    db.expunge(inv)
    audit.record(
        db, caller, "invitation_deleted", "invitation", invitation_id,
        old_values={"email": inv.email, "role": inv.role, "status": inv.status},
        client=client,
    )
    commit(db)
    logger.info("Invitation %s deleted by %s", invitation_id, caller.ref)


def accept(
    db: Session,
    external_id: str,
    identity_email: Optional[str],
    token: str,
    profile: Optional[dict] = None,
    now: Optional[datetime] = None,
    client: Optional[ClientInfo] = None,
) -> User:
    """Complete signup for an authenticated identity holding a valid token.

    Creates the user row (or updates the one already linked to the identity)
    with the invitation's role and company, then marks the invitation accepted.
    """
    now = now or utcnow()
    inv = validate_token(db, token, now)
    if identity_email and identity_email.strip().lower() != inv.email.lower():
        raise AuthorizationError("This invitation was issued to a different email address")

    role = parse_role(inv.role)
    if role is None:
        raise InvalidStateError("Invitation carries an unknown role")
    company = None
    if inv.company_id:
        company = soft_delete.get_live(db, Company, inv.company_id)
        if company is None:
            raise NotFoundError("The invited company no longer exists")
    elif role == Role.TRAINEE:
        raise InvalidStateError("Trainee invitation has no company")

    user = users.get_by_external_id(db, external_id)
    if user is not None and (user.is_deleted or not user.is_active):
        raise AuthorizationError("Account is deactivated")
    if user is None:
        if users.get_by_email(db, inv.email) is not None:
            raise ConflictError("User with this email already exists")

    already_counted = (
        user is not None
        and user.role == Role.TRAINEE.value
        and user.is_active
        and user.company_id == inv.company_id
    )
    if role == Role.TRAINEE and not already_counted:
        companies.check_capacity(db, company, 1)

    data = dict(inv.user_data or {})
    data.update({k: v for k, v in _clean_user_data(profile).items() if v})
    if user is None:
        user = User(external_id=external_id, email=inv.email, is_active=True)
        db.add(user)
    user.role = role.value
    user.company_id = inv.company_id
    for field in USER_DATA_FIELDS:
        setattr(user, field, data.get(field))
    user.profile_completed = bool(user.first_name and user.last_name)

    updated = (
        db.query(Invitation)
        .filter(Invitation.id == inv.id, Invitation.status == PENDING)
        .update(
            {Invitation.status: ACCEPTED, Invitation.accepted_at: now, Invitation.updated_at: now},
            synchronize_session=False,
        )
    )
    if not updated:
        db.rollback()
        raise NotFoundError("Invalid or expired invitation")
    db.flush()
    audit.record(
        db, CallerContext(external_id=external_id, email=identity_email, user_id=user.id), "invitation_accepted", "invitation", inv.id,
        old_values={"status": PENDING}, new_values={"status": ACCEPTED, "user_id": user.id},
        client=client,
    )
    commit(db)
    db.refresh(user)
    logger.info("Invitation %s accepted by %s", inv.id, external_id)
    return user


def list_invitations(
    db: Session,
    caller: CallerContext,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    now: Optional[datetime] = None,
) -> dict:
    """Site admins see every invitation; company admins only their own company's."""
    now = now or utcnow()
    page = max(page, 1)
    page_size = max(1, min(page_size, 200))
    q = db.query(Invitation)
    if caller.role != Role.SITE_ADMIN:
        if not caller.company_id:
            raise AuthorizationError("Cannot manage invitations without a company")
        q = q.filter(Invitation.company_id == caller.company_id)
    if status:
        if status not in STATUSES:
            raise ValidationError(f"Unknown status {status!r}")
        if status == PENDING:
            q = q.filter(Invitation.status == PENDING, Invitation.expires_at >= now)
        elif status == EXPIRED:
            q = q.filter((Invitation.status == EXPIRED) | ((Invitation.status == PENDING) & (Invitation.expires_at < now)))
        else:
            q = q.filter(Invitation.status == status)
    if search:
        q = q.filter(func.lower(Invitation.email).contains(search.strip().lower(), autoescape=True))
    q = q.order_by(Invitation.created_at.desc(), Invitation.id.desc())
    total = q.count()
    rows = q.offset((page - 1) * page_size).limit(page_size).all()
    pages = (total + page_size - 1) // page_size if total else 1
    return {
        "items": [invitation_to_dict(inv, now) for inv in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": pages,
    }


def invitation_to_dict(inv: Invitation, now: Optional[datetime] = None) -> dict:
    return {
        "id": inv.id,
        "email": inv.email,
        "role": inv.role,
        "company_id": inv.company_id,
        "invited_by": inv.invited_by,
        "status": effective_status(inv, now),
        "expires_at": inv.expires_at.isoformat(),
        "accepted_at": inv.accepted_at.isoformat() if inv.accepted_at else None,
        "user_data": inv.user_data or {},
        "created_at": inv.created_at.isoformat() if inv.created_at else None,
    }
