"""Soft delete / recover / purge, generic over models using SoftDeleteMixin.

live --soft_delete--> soft_deleted --recover--> live
                      soft_deleted --purge-->   (row removed)

Each transition is one conditional single-row statement. The functions stage
the change on the session; the entity service records the audit row and
commits, so both land in the same transaction.
"""
import logging
from datetime import datetime
from typing import Optional, Type

from sqlalchemy.orm import Session

from backoffice.core.clock import utcnow
from backoffice.core.errors import NotFoundError, SelfActionError, WindowExpiredError, WindowOpenError
from backoffice.models.user import User
from backoffice.services import recovery_window
from backoffice.services.roles import CallerContext

logger = logging.getLogger(__name__)


def _label(model) -> str:
    return model.__name__


def _actor_row_id(model, caller: CallerContext) -> Optional[int]:
    """The caller's own row in ``model``'s table, if it has one."""
    if model is User:
        return caller.user_id
    return None


def get_live(db: Session, model, entity_id: int):
    return db.query(model).filter(model.id == entity_id, model.deleted_at.is_(None)).first()


def get_deleted(db: Session, model, entity_id: int):
    return db.query(model).filter(model.id == entity_id, model.deleted_at.isnot(None)).first()


def soft_delete(
    db: Session,
    model: Type,
    entity_id: int,
    caller: CallerContext,
    reason: Optional[str] = None,
    default_reason: str = "Deleted by admin",
    now: Optional[datetime] = None,
):
    if _actor_row_id(model, caller) == entity_id:
        raise SelfActionError(f"You cannot delete your own {_label(model).lower()} account")
    entity = get_live(db, model, entity_id)
    if not entity:
        raise NotFoundError(f"{_label(model)} not found or already deleted")
    now = now or utcnow()
    values = {
        model.deleted_at: now,
        model.deleted_by: caller.ref,
        model.deleted_reason: (reason or "").strip() or default_reason,
        model.updated_at: now,
    }
    updated = (
        db.query(model)
        .filter(model.id == entity_id, model.deleted_at.is_(None))
        .update(values, synchronize_session=False)
    )
    if not updated:
        raise NotFoundError(f"{_label(model)} not found or already deleted")
    logger.info("%s %s soft-deleted by %s", _label(model), entity_id, caller.ref)
    return entity


def recover(db: Session, model: Type, entity_id: int, now: Optional[datetime] = None):
    entity = get_deleted(db, model, entity_id)
    if not entity:
        raise NotFoundError(f"{_label(model)} not found or not deleted")
    now = now or utcnow()
    deleted_at = entity.deleted_at
    if not recovery_window.is_recoverable(deleted_at, now):
        raise WindowExpiredError(
            f"{_label(model)} cannot be recovered. It has been deleted for more than "
            f"{recovery_window.window().days} days."
        )
    updated = (
        db.query(model)
        .filter(model.id == entity_id, model.deleted_at == deleted_at)
        .update(
            {model.deleted_at: None, model.deleted_by: None, model.deleted_reason: None, model.updated_at: now},
            synchronize_session=False,
        )
    )
    if not updated:
        raise NotFoundError(f"{_label(model)} not found or not deleted")
    logger.info("%s %s recovered", _label(model), entity_id)
    return entity


def purge(db: Session, model: Type, entity_id: int, now: Optional[datetime] = None) -> dict:
    """Hard-delete a soft-deleted row whose window has closed; returns its last state."""
    entity = get_deleted(db, model, entity_id)
    if not entity:
        raise NotFoundError(f"{_label(model)} not found or not deleted")
    now = now or utcnow()
    deleted_at = entity.deleted_at
    if not recovery_window.is_purgeable(deleted_at, now):
        raise WindowOpenError(
            f"{_label(model)} cannot be permanently deleted yet. It can still be recovered for "
            f"{recovery_window.days_left(deleted_at, now)} more day(s)."
        )
    snapshot = {"id": entity.id, "deleted_at": deleted_at, "deleted_by": entity.deleted_by}
    removed = (
        db.query(model)
        .filter(model.id == entity_id, model.deleted_at == deleted_at)
        .delete(synchronize_session=False)
    )
    if not removed:
        raise NotFoundError(f"{_label(model)} not found or not deleted")
    db.expunge(entity)
    logger.info("%s %s permanently deleted", _label(model), entity_id)
    return snapshot


def purge_expired(db: Session, model: Type, now: Optional[datetime] = None) -> list[int]:
    """Remove every soft-deleted row of ``model`` whose window has closed."""
    now = now or utcnow()
    cutoff = now - recovery_window.window()
    ids = [row.id for row in db.query(model.id).filter(model.deleted_at.isnot(None), model.deleted_at < cutoff).all()]
    if ids:
        db.query(model).filter(model.id.in_(ids)).delete(synchronize_session=False)
    return ids
