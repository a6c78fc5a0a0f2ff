"""Recycling bin: what is soft-deleted, how long it can still be recovered, and expired-row cleanup."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from backoffice.core.clock import utcnow
from backoffice.db.session import commit
from backoffice.models.company import Company
from backoffice.models.user import User
from backoffice.services import audit, recovery_window, soft_delete
from backoffice.services.audit import ClientInfo
from backoffice.services.companies import detach_users
from backoffice.services.roles import CallerContext

logger = logging.getLogger(__name__)


def _bin_fields(entity, now: datetime, deleters: dict) -> dict:
    deleter = deleters.get(entity.deleted_by)
    return {
        "deleted_at": entity.deleted_at.isoformat(),
        "deleted_by": entity.deleted_by,
        "deleted_reason": entity.deleted_reason,
        "deleted_by_user": {"name": deleter.full_name or None, "email": deleter.email} if deleter else None,
        "recoverable": recovery_window.is_recoverable(entity.deleted_at, now),
        "days_left": recovery_window.days_left(entity.deleted_at, now),
    }


def list_bin(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    users = db.query(User).filter(User.deleted_at.isnot(None)).order_by(User.deleted_at.desc()).all()
    companies = db.query(Company).filter(Company.deleted_at.isnot(None)).order_by(Company.deleted_at.desc()).all()

    refs = {e.deleted_by for e in [*users, *companies] if e.deleted_by}
    deleters = {}
    if refs:
        deleters = {u.external_id: u for u in db.query(User).filter(User.external_id.in_(refs)).all()}

    company_names = {c.id: c.name for c in db.query(Company).all()}
    user_items = []
    for u in users:
        item = {
            "id": u.id,
            "email": u.email,
            "name": u.full_name or None,
            "role": u.role,
            "company_id": u.company_id,
            "company_name": company_names.get(u.company_id),
        }
        item.update(_bin_fields(u, now, deleters))
        user_items.append(item)

    company_items = []
    for c in companies:
        item = {"id": c.id, "name": c.name, "slug": c.slug}
        item.update(_bin_fields(c, now, deleters))
        company_items.append(item)

    return {
        "users": user_items,
        "companies": company_items,
        "recovery_window_days": recovery_window.window().days,
    }


def cleanup(db: Session, caller: CallerContext, now: Optional[datetime] = None, client: Optional[ClientInfo] = None) -> dict:
    """Purge every soft-deleted user and company whose recovery window has closed."""
    now = now or utcnow()
    user_ids = soft_delete.purge_expired(db, User, now)
    company_ids = soft_delete.purge_expired(db, Company, now)
    detach_users(db, company_ids)
    audit.record(
        db, caller, "cleanup_expired", "bulk_operation", None,
        metadata={"user_ids": user_ids, "company_ids": company_ids},
        client=client,
    )
    commit(db)
    logger.info("Cleanup purged %s user(s) and %s company(ies)", len(user_ids), len(company_ids))
    return {"users_deleted": len(user_ids), "companies_deleted": len(company_ids)}
