import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.core.clock import utcnow
from backoffice.core.errors import AuthorizationError, ConflictError, NotFoundError, SelfActionError, ValidationError
from backoffice.db.session import commit
from backoffice.models.company import Company
from backoffice.models.user import User
from backoffice.services import audit, companies, recovery_window, soft_delete
from backoffice.services.audit import ClientInfo
from backoffice.services.roles import CallerContext, Role, can_manage, parse_role

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: int) -> User:
    user = soft_delete.get_live(db, User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def get_by_external_id(db: Session, external_id: str) -> Optional[User]:
    return db.query(User).filter(User.external_id == external_id).first()


def get_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def list_users(
    db: Session,
    page: int = 1,
    page_size: int = 20,
    search: Optional[str] = None,
    role: Optional[str] = None,
    company_id: Optional[int] = None,
    include_deleted: bool = False,
) -> dict:
    """Paginated list of users, live ones only unless include_deleted.

    Returns:
        items, total, page, page_size, pages
    """
    page = max(page, 1)
    page_size = max(1, min(page_size, 200))  # cap upper bound

    q = db.query(User)
    if not include_deleted:
        q = q.filter(User.deleted_at.is_(None))
    if search:
        s = search.strip().lower()
        q = q.filter(
            func.lower(User.email).contains(s, autoescape=True)
            | func.lower(User.first_name).contains(s, autoescape=True)
            | func.lower(User.last_name).contains(s, autoescape=True)
        )
    if role:
        q = q.filter(User.role == role)
    if company_id is not None:
        q = q.filter(User.company_id == company_id)
    q = q.order_by(User.id.asc())

    total = q.count()
    users = q.offset((page - 1) * page_size).limit(page_size).all()

    company_ids = {u.company_id for u in users if u.company_id}
    names: dict[int, str] = {}
    if company_ids:
        names = {c.id: c.name for c in db.query(Company).filter(Company.id.in_(company_ids)).all()}

    items = []
    for u in users:
        data = user_to_dict(u)
        data["company_name"] = names.get(u.company_id) if u.company_id else None
        items.append(data)
    pages = (total + page_size - 1) // page_size if total else 1
    return {"items": items, "total": total, "page": page, "page_size": page_size, "pages": pages}


def _require_role(value) -> Role:
    role = parse_role(value)
    if role is None:
        raise ValidationError("Valid role is required")
    return role


def _check_trainee_company(db: Session, role: Role, company_id: Optional[int]) -> None:
    if role != Role.TRAINEE:
        return
    if not company_id:
        raise ValidationError("Trainees must be assigned to a company")
    companies.get_company(db, company_id)


def _counts_toward(user: User, company_id: Optional[int]) -> bool:
    """True when the user is already one of company_id's active trainees."""
    return (
        user.deleted_at is None
        and user.is_active
        and user.role == Role.TRAINEE.value
        and user.company_id == company_id
    )


def update_profile(db: Session, caller: CallerContext, user_id: int, data: dict, client: Optional[ClientInfo] = None) -> User:
    """Full profile update by a site admin (names, contact fields, company, role, active flag)."""
    user = get_user(db, user_id)
    first_name = (data.get("first_name") or "").strip()
    last_name = (data.get("last_name") or "").strip()
    if not first_name or not last_name:
        raise ValidationError("First name and last name are required")
    role = _require_role(data.get("role") or user.role)
    # absent key keeps the stored company; explicit null detaches
    company_id = data["company_id"] if "company_id" in data else user.company_id
    is_active = data.get("is_active")
    if is_active is None:
        is_active = user.is_active

    if user.id == caller.user_id:
        if role != Role.SITE_ADMIN and caller.role == Role.SITE_ADMIN:
            raise SelfActionError("Site admins cannot downgrade their own role")
        if not is_active:
            raise SelfActionError("You cannot deactivate your own account")
    _check_trainee_company(db, role, company_id)
    if role == Role.TRAINEE and is_active:
        if not _counts_toward(user, company_id):
            companies.check_capacity(db, companies.get_company(db, company_id), 1)
    elif company_id and company_id != user.company_id:
        companies.get_company(db, company_id)

    old = user_to_dict(user)
    user.first_name = first_name
    user.last_name = last_name
    for field in ("phone", "job_title", "department", "location"):
        setattr(user, field, (data.get(field) or "").strip() or None)
    user.company_id = company_id or None
    user.role = role.value
    user.is_active = bool(is_active)
    user.profile_completed = True
    new = user_to_dict(user)
    audit.record(db, caller, "user_profile_updated", "user", user.id, old_values=_diff(old, new), new_values=_diff(new, old), client=client)
    commit(db)
    db.refresh(user)
    return user


def change_role(db: Session, caller: CallerContext, user_id: int, role_value, client: Optional[ClientInfo] = None) -> User:
    role = _require_role(role_value)
    user = get_user(db, user_id)
    if user.id == caller.user_id and role != Role.SITE_ADMIN:
        raise SelfActionError("Site admins cannot downgrade their own role")
    if not can_manage(caller, user):
        raise AuthorizationError("Cannot manage this user")
    _check_trainee_company(db, role, user.company_id)
    old_role = user.role
    if role == Role.TRAINEE and old_role != Role.TRAINEE.value and user.is_active:
        companies.check_capacity(db, companies.get_company(db, user.company_id), 1)
    user.role = role.value
    audit.record(db, caller, "user_role_changed", "user", user.id, old_values={"role": old_role}, new_values={"role": role.value}, client=client)
    commit(db)
    db.refresh(user)
    logger.info("User %s role %s -> %s by %s", user.id, old_role, role.value, caller.ref)
    return user


def set_active(db: Session, caller: CallerContext, user_id: int, is_active: bool, client: Optional[ClientInfo] = None) -> User:
    if user_id == caller.user_id and not is_active:
        raise SelfActionError("Site admins cannot deactivate their own account")
    user = get_user(db, user_id)
    if is_active and not user.is_active and user.role == Role.TRAINEE.value and user.company_id:
        companies.check_capacity(db, companies.get_company(db, user.company_id), 1)
    user.is_active = is_active
    action = "user_activated" if is_active else "user_deactivated"
    audit.record(db, caller, action, "user", user.id, new_values={"is_active": is_active}, client=client)
    commit(db)
    db.refresh(user)
    return user


def _live_targets(db: Session, user_ids: list[int]) -> list[User]:
    user_ids = sorted(set(user_ids))
    if not user_ids:
        raise ValidationError("User IDs array is required")
    users = db.query(User).filter(User.id.in_(user_ids), User.deleted_at.is_(None)).all()
    if len(users) != len(user_ids):
        raise NotFoundError("One or more users were not found")
    return users


def bulk_update_role(db: Session, caller: CallerContext, user_ids: list[int], role_value, client: Optional[ClientInfo] = None) -> int:
    role = _require_role(role_value)
    if caller.user_id in user_ids and role != Role.SITE_ADMIN:
        raise SelfActionError("Site admins cannot downgrade their own role")
    users = _live_targets(db, user_ids)
    if role == Role.TRAINEE:
        missing = [u.email for u in users if not u.company_id]
        if missing:
            raise ValidationError(
                f"Users without company assignment cannot be set to trainee role: {', '.join(missing)}"
            )
        # Capacity per company for users that become active trainees
        promoted: dict[int, int] = {}
        for u in users:
            if u.role != Role.TRAINEE.value and u.is_active:
                promoted[u.company_id] = promoted.get(u.company_id, 0) + 1
        for cid, adding in promoted.items():
            companies.check_capacity(db, companies.get_company(db, cid), adding)
    ids = [u.id for u in users]
    updated = (
        db.query(User)
        .filter(User.id.in_(ids))
        .update({User.role: role.value, User.updated_at: utcnow()}, synchronize_session=False)
    )
    audit.record(db, caller, "bulk_users_updated", "bulk_operation", None, new_values={"role": role.value}, metadata={"user_ids": ids}, client=client)
    commit(db)
    return updated


def bulk_set_active(db: Session, caller: CallerContext, user_ids: list[int], is_active: bool, client: Optional[ClientInfo] = None) -> int:
    if not is_active and caller.user_id in user_ids:
        raise SelfActionError("Site admins cannot deactivate their own account")
    users = _live_targets(db, user_ids)
    if is_active:
        reactivated: dict[int, int] = {}
        for u in users:
            if not u.is_active and u.role == Role.TRAINEE.value and u.company_id:
                reactivated[u.company_id] = reactivated.get(u.company_id, 0) + 1
        for cid, adding in reactivated.items():
            companies.check_capacity(db, companies.get_company(db, cid), adding)
    ids = [u.id for u in users]
    updated = (
        db.query(User)
        .filter(User.id.in_(ids))
        .update({User.is_active: is_active, User.updated_at: utcnow()}, synchronize_session=False)
    )
    audit.record(db, caller, "bulk_users_updated", "bulk_operation", None, new_values={"is_active": is_active}, metadata={"user_ids": ids}, client=client)
    commit(db)
    return updated


def soft_delete_user(db: Session, caller: CallerContext, user_id: int, reason: Optional[str] = None, client: Optional[ClientInfo] = None) -> User:
    user = soft_delete.get_live(db, User, user_id)
    if user is not None and not can_manage(caller, user):
        raise AuthorizationError("Cannot manage this user")
    user = soft_delete.soft_delete(db, User, user_id, caller, reason=reason, default_reason="Deleted by admin")
    audit.record(
        db, caller, "user_deleted", "user", user.id,
        old_values={"email": user.email, "role": user.role, "is_active": user.is_active},
        metadata={"deleted_user_email": user.email, "deletion_reason": reason or "Deleted by admin"},
        client=client,
    )
    commit(db)
    db.refresh(user)
    return user


def soft_delete_trainee(db: Session, caller: CallerContext, user_id: int, reason: Optional[str] = None, client: Optional[ClientInfo] = None) -> User:
    """Company admin removal of one of their own trainees."""
    user = soft_delete.get_live(db, User, user_id)
    if user is not None and (user.role != Role.TRAINEE.value or not can_manage(caller, user)):
        raise AuthorizationError("You can only delete trainees from your own company")
    return soft_delete_user(db, caller, user_id, reason=reason, client=client)


def recover_user(db: Session, caller: CallerContext, user_id: int, client: Optional[ClientInfo] = None) -> User:
    user = soft_delete.get_deleted(db, User, user_id)
    if user is not None and user.role == Role.TRAINEE.value:
        company = soft_delete.get_live(db, Company, user.company_id) if user.company_id else None
        if company is None:
            raise ConflictError("Trainee cannot be recovered because their company no longer exists")
        if user.is_active and recovery_window.is_recoverable(user.deleted_at):
            companies.check_capacity(db, company, 1)
    user = soft_delete.recover(db, User, user_id)
    audit.record(
        db, caller, "user_recovered", "user", user.id,
        old_values={"deleted_at": user.deleted_at, "deleted_by": user.deleted_by},
        new_values={"deleted_at": None, "deleted_by": None},
        metadata={"recovered_user_email": user.email},
        client=client,
    )
    commit(db)
    db.refresh(user)
    return user


def purge_user(db: Session, caller: CallerContext, user_id: int, client: Optional[ClientInfo] = None) -> dict:
    user = soft_delete.get_deleted(db, User, user_id)
    email = user.email if user else None
    role = user.role if user else None
    snapshot = soft_delete.purge(db, User, user_id)
    audit.record(
        db, caller, "user_permanently_deleted", "user", user_id,
        old_values={"email": email, "role": role, "deleted_at": snapshot["deleted_at"]},
        metadata={"permanently_deleted_user_email": email},
        client=client,
    )
    commit(db)
    snapshot["email"] = email
    return snapshot


def list_company_trainees(db: Session, company_id: int) -> list[dict]:
    trainees = (
        db.query(User)
        .filter(User.company_id == company_id, User.role == Role.TRAINEE.value, User.deleted_at.is_(None))
        .order_by(User.id.asc())
        .all()
    )
    return [user_to_dict(u) for u in trainees]


def _diff(a: dict, b: dict) -> dict:
    return {k: v for k, v in a.items() if b.get(k) != v}


def user_to_dict(u: User) -> dict:
    return {
        "id": u.id,
        "external_id": u.external_id,
        "email": u.email,
        "role": u.role,
        "company_id": u.company_id,
        "is_active": u.is_active,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "phone": u.phone,
        "job_title": u.job_title,
        "department": u.department,
        "location": u.location,
        "profile_completed": u.profile_completed,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }
