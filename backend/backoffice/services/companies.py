import logging
import re
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.core.clock import utcnow
from backoffice.core.config import settings
from backoffice.core.errors import CapacityError, ConflictError, NotFoundError, ValidationError
from backoffice.db.session import commit
from backoffice.models.company import Company
from backoffice.models.user import User
from backoffice.services import audit, soft_delete
from backoffice.services.audit import ClientInfo
from backoffice.services.roles import CallerContext, Role

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
MAX_TRAINEES_LIMIT = 1000


def slugify(name: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to one hyphen, trim hyphens."""
    return _NON_ALNUM.sub("-", (name or "").lower()).strip("-")


def get_company(db: Session, company_id: int) -> Company:
    company = soft_delete.get_live(db, Company, company_id)
    if not company:
        raise NotFoundError("Company not found")
    return company


def active_trainee_count(db: Session, company_id: int) -> int:
    return (
        db.query(func.count(User.id))
        .filter(
            User.company_id == company_id,
            User.role == Role.TRAINEE.value,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        )
        .scalar()
        or 0
    )


def check_capacity(db: Session, company: Company, adding: int) -> None:
    current = active_trainee_count(db, company.id)
    if current + adding > company.max_trainees:
        logger.warning("Capacity exceeded for company %s: %s + %s > %s", company.id, current, adding, company.max_trainees)
        raise CapacityError(
            f"Company capacity exceeded. Current: {current}, Adding: {adding}, Max: {company.max_trainees}"
        )


def list_companies(db: Session) -> list[dict]:
    companies = db.query(Company).filter(Company.deleted_at.is_(None)).order_by(Company.name.asc()).all()
    counts: dict[tuple[int, str], int] = {}
    if companies:
        rows = (
            db.query(User.company_id, User.role, func.count(User.id))
            .filter(User.company_id.in_([c.id for c in companies]), User.deleted_at.is_(None))
            .group_by(User.company_id, User.role)
            .all()
        )
        counts = {(cid, role): n for cid, role, n in rows}
    items = []
    for c in companies:
        data = company_to_dict(c)
        data["trainee_count"] = counts.get((c.id, Role.TRAINEE.value), 0)
        data["admin_count"] = counts.get((c.id, Role.COMPANY_ADMIN.value), 0)
        items.append(data)
    return items


def _ensure_unique(db: Session, name: str, slug: str, exclude_id: Optional[int] = None) -> None:
    q = db.query(Company).filter((Company.name == name) | (Company.slug == slug))
    if exclude_id is not None:
        q = q.filter(Company.id != exclude_id)
    if q.first():
        raise ConflictError("A company with this name or slug already exists")


def create_company(
    db: Session,
    caller: CallerContext,
    name: str,
    slug: Optional[str] = None,
    description: Optional[str] = None,
    max_trainees: Optional[int] = None,
    client: Optional[ClientInfo] = None,
) -> Company:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Company name is required")
    slug = slugify(slug) if slug else slugify(name)
    if not slug:
        raise ValidationError("Company name must contain letters or numbers")
    max_trainees = max_trainees or settings.default_max_trainees
    if not 1 <= max_trainees <= MAX_TRAINEES_LIMIT:
        raise ValidationError(f"Maximum trainees must be between 1 and {MAX_TRAINEES_LIMIT}")
    _ensure_unique(db, name, slug)
    company = Company(
        name=name,
        slug=slug,
        description=(description or "").strip() or None,
        max_trainees=max_trainees,
        is_active=True,
    )
    db.add(company)
    db.flush()
    audit.record(db, caller, "company_created", "company", company.id, new_values={"name": name, "slug": slug, "max_trainees": max_trainees}, client=client)
    commit(db)
    db.refresh(company)
    logger.info("Company %s (%s) created by %s", company.id, slug, caller.ref)
    return company


def update_company(
    db: Session,
    caller: CallerContext,
    company_id: int,
    name: str,
    slug: str,
    description: Optional[str],
    max_trainees: int,
    client: Optional[ClientInfo] = None,
) -> Company:
    name = (name or "").strip()
    slug = (slug or "").strip()
    if not name or not slug:
        raise ValidationError("Company name and slug are required")
    if not SLUG_PATTERN.match(slug):
        raise ValidationError("Company slug can only contain lowercase letters, numbers, and hyphens")
    if len(slug) < 3:
        raise ValidationError("Company slug must be at least 3 characters long")
    if not 1 <= max_trainees <= MAX_TRAINEES_LIMIT:
        raise ValidationError(f"Maximum trainees must be between 1 and {MAX_TRAINEES_LIMIT}")
    company = get_company(db, company_id)
    current = active_trainee_count(db, company.id)
    if max_trainees < current:
        raise CapacityError(f"Company already has {current} active trainees")
    _ensure_unique(db, name, slug, exclude_id=company.id)

    old = {"name": company.name, "slug": company.slug, "description": company.description, "max_trainees": company.max_trainees}
    company.name = name
    company.slug = slug
    company.description = (description or "").strip() or None
    company.max_trainees = max_trainees
    new = {"name": company.name, "slug": company.slug, "description": company.description, "max_trainees": company.max_trainees}
    changed = {k for k in old if old[k] != new[k]}
    audit.record(
        db, caller, "company_updated", "company", company.id,
        old_values={k: old[k] for k in changed}, new_values={k: new[k] for k in changed}, client=client,
    )
    commit(db)
    db.refresh(company)
    return company


def soft_delete_company(db: Session, caller: CallerContext, company_id: int, reason: Optional[str] = None, client: Optional[ClientInfo] = None) -> Company:
    """Move a company to the recycling bin.

    Refused while live users still reference it; users are never removed as a side effect.
    """
    company = get_company(db, company_id)
    live_users = (
        db.query(func.count(User.id))
        .filter(User.company_id == company.id, User.deleted_at.is_(None))
        .scalar()
        or 0
    )
    if live_users:
        raise ConflictError(
            f'Cannot delete company "{company.name}" because it has {live_users} user(s). Please remove all users first.'
        )
    soft_delete.soft_delete(db, Company, company_id, caller, reason=reason, default_reason="Deleted by site admin")
    audit.record(db, caller, "company_deleted", "company", company_id, old_values={"name": company.name}, metadata={"reason": reason}, client=client)
    commit(db)
    db.refresh(company)
    return company


def recover_company(db: Session, caller: CallerContext, company_id: int, client: Optional[ClientInfo] = None) -> Company:
    company = soft_delete.recover(db, Company, company_id)
    audit.record(db, caller, "company_restored", "company", company_id, old_values={"deleted_at": company.deleted_at, "deleted_by": company.deleted_by}, client=client)
    commit(db)
    db.refresh(company)
    return company


def purge_company(db: Session, caller: CallerContext, company_id: int, client: Optional[ClientInfo] = None) -> dict:
    company = soft_delete.get_deleted(db, Company, company_id)
    name = company.name if company else None
    snapshot = soft_delete.purge(db, Company, company_id)
    detach_users(db, [company_id])
    audit.record(db, caller, "company_permanently_deleted", "company", company_id, old_values={"name": name, **snapshot}, client=client)
    commit(db)
    snapshot["name"] = name
    return snapshot


def detach_users(db: Session, company_ids: list[int]) -> None:
    # SQLite does not enforce ON DELETE SET NULL unless foreign keys are switched on
    if company_ids:
        db.query(User).filter(User.company_id.in_(company_ids)).update(
            {User.company_id: None, User.updated_at: utcnow()}, synchronize_session=False
        )


def assign_users(db: Session, caller: CallerContext, company_id: int, user_ids: list[int], client: Optional[ClientInfo] = None) -> tuple[Company, int]:
    """Assign users to a company in one statement, all-or-nothing."""
    user_ids = sorted(set(user_ids))
    if not user_ids:
        raise ValidationError("User IDs array is required")
    company = get_company(db, company_id)
    check_capacity(db, company, len(user_ids))
    found = db.query(func.count(User.id)).filter(User.id.in_(user_ids), User.deleted_at.is_(None)).scalar() or 0
    if found != len(user_ids):
        raise NotFoundError("One or more users were not found")
    updated = (
        db.query(User)
        .filter(User.id.in_(user_ids), User.deleted_at.is_(None))
        .update({User.company_id: company.id, User.updated_at: utcnow()}, synchronize_session=False)
    )
    audit.record(db, caller, "bulk_users_updated", "bulk_operation", None, new_values={"company_id": company.id}, metadata={"user_ids": user_ids}, client=client)
    commit(db)
    logger.info("Assigned %s user(s) to company %s", updated, company.id)
    return company, updated


def company_to_dict(c: Company) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "description": c.description,
        "max_trainees": c.max_trainees,
        "is_active": c.is_active,
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }
