"""Audit trail rows, written in the same transaction as the change they describe."""
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session

from backoffice.models.audit_log import AuditLog
from backoffice.services.roles import CallerContext

CRITICAL_ACTIONS = {"user_deleted", "user_permanently_deleted", "company_deleted", "company_permanently_deleted", "bulk_users_updated"}
WARNING_ACTIONS = {"user_deactivated", "invitation_cancelled", "invitation_deleted"}


@dataclass(frozen=True)
class ClientInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def severity_for(action: str) -> str:
    if action in CRITICAL_ACTIONS:
        return "critical"
    if action in WARNING_ACTIONS:
        return "warning"
    return "info"


def category_for(action: str) -> str:
    if action.startswith("user_"):
        return "user_management"
    if action.startswith("company_"):
        return "company_management"
    if action.startswith("invitation_"):
        return "invitation_management"
    if action.startswith("bulk_"):
        return "bulk_operations"
    if action.startswith("cleanup"):
        return "system_configuration"
    return "security_event"


def record(
    db: Session,
    caller: Optional[CallerContext],
    action: str,
    resource_type: str,
    resource_id: Any = None,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    metadata: Optional[dict] = None,
    client: Optional[ClientInfo] = None,
) -> AuditLog:
    """Stage an audit row on the session; the caller's commit persists it."""
    client = client or ClientInfo()
    entry = AuditLog(
        actor_id=caller.ref if caller else None,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        old_values=_jsonable(old_values),
        new_values=_jsonable(new_values),
        meta=_jsonable(metadata),
        ip_address=client.ip_address,
        user_agent=client.user_agent,
        severity=severity_for(action),
        category=category_for(action),
    )
    db.add(entry)
    return entry


def _jsonable(values: Optional[dict]) -> Optional[dict]:
    if values is None:
        return None
    out = {}
    for key, value in values.items():
        if hasattr(value, "isoformat"):
            value = value.isoformat()
        out[key] = value
    return out


def list_logs(
    db: Session,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    severity: Optional[str] = None,
    actor_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> dict:
    q = db.query(AuditLog)
    if action:
        q = q.filter(AuditLog.action == action)
    if resource_type:
        q = q.filter(AuditLog.resource_type == resource_type)
    if severity:
        q = q.filter(AuditLog.severity == severity)
    if actor_id:
        q = q.filter(AuditLog.actor_id == actor_id)
    q = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    total = q.count()
    rows = q.offset((page - 1) * page_size).limit(page_size).all()
    pages = (total + page_size - 1) // page_size if total else 1
    return {
        "items": [log_to_dict(r) for r in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": pages,
    }


def log_to_dict(entry: AuditLog) -> dict:
    return {
        "id": entry.id,
        "actor_id": entry.actor_id,
        "action": entry.action,
        "resource_type": entry.resource_type,
        "resource_id": entry.resource_id,
        "old_values": entry.old_values,
        "new_values": entry.new_values,
        "metadata": entry.meta,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "severity": entry.severity,
        "category": entry.category,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }
