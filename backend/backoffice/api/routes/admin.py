from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.deps import get_client_info, require_role
from backoffice.db.session import get_db
from backoffice.schemas.users import (
    BulkCompanyAssign,
    BulkRoleUpdate,
    BulkStatusUpdate,
    RoleChange,
    StatusToggle,
    UserProfileUpdate,
)
from backoffice.services import companies, users
from backoffice.services.audit import ClientInfo
from backoffice.services.roles import CallerContext, Role

router = APIRouter()

site_admin = require_role(Role.SITE_ADMIN)


@router.get("/users", response_model=dict)
def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    search: Optional[str] = Query(None),
    role: Optional[str] = Query(None, pattern="^(site_admin|company_admin|trainee)$"),
    company_id: Optional[int] = Query(None),
    include_deleted: bool = Query(False),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
):
    return users.list_users(
        db,
        page=page,
        page_size=page_size,
        search=search,
        role=role,
        company_id=company_id,
        include_deleted=include_deleted,
    )


@router.post("/users/bulk-update-role", response_model=dict)
def bulk_update_role(
    payload: BulkRoleUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    updated = users.bulk_update_role(db, caller, payload.user_ids, payload.role, client=client)
    return {"success": True, "updated_count": updated, "message": f"Updated role for {updated} user(s)"}


@router.post("/users/bulk-toggle-status", response_model=dict)
def bulk_toggle_status(
    payload: BulkStatusUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    updated = users.bulk_set_active(db, caller, payload.user_ids, payload.is_active, client=client)
    verb = "activated" if payload.is_active else "deactivated"
    return {"success": True, "updated_count": updated, "message": f"{updated} user(s) {verb}"}


@router.post("/users/bulk-assign-company", response_model=dict)
def bulk_assign_company(
    payload: BulkCompanyAssign,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    company, updated = companies.assign_users(db, caller, payload.company_id, payload.user_ids, client=client)
    return {
        "success": True,
        "updated_count": updated,
        "company": companies.company_to_dict(company),
        "message": f"Assigned {updated} user(s) to {company.name}",
    }


@router.get("/users/{user_id}", response_model=dict)
def get_user(user_id: int, db: Session = Depends(get_db), caller: CallerContext = Depends(site_admin)):
    return users.user_to_dict(users.get_user(db, user_id))


@router.put("/users/{user_id}", response_model=dict)
def update_user(
    user_id: int,
    payload: UserProfileUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    user = users.update_profile(db, caller, user_id, payload.model_dump(exclude_unset=True), client=client)
    return {"success": True, "user": users.user_to_dict(user)}


@router.post("/users/{user_id}/role", response_model=dict)
def change_role(
    user_id: int,
    payload: RoleChange,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    user = users.change_role(db, caller, user_id, payload.role, client=client)
    return {"success": True, "user": users.user_to_dict(user)}


@router.post("/users/{user_id}/toggle-status", response_model=dict)
def toggle_status(
    user_id: int,
    payload: StatusToggle,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    user = users.set_active(db, caller, user_id, payload.is_active, client=client)
    return {"success": True, "user": users.user_to_dict(user)}


@router.delete("/users/{user_id}", response_model=dict)
def delete_user(
    user_id: int,
    reason: Optional[str] = Query(None, max_length=1000),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    user = users.soft_delete_user(db, caller, user_id, reason=reason, client=client)
    return {
        "success": True,
        "message": "User moved to recycling bin",
        "user": {"id": user.id, "email": user.email, "deleted_at": user.deleted_at.isoformat()},
    }


@router.post("/users/{user_id}/recover", response_model=dict)
def recover_user(
    user_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    user = users.recover_user(db, caller, user_id, client=client)
    return {"success": True, "message": "User recovered", "user": users.user_to_dict(user)}


@router.delete("/users/{user_id}/permanent", response_model=dict)
def purge_user(
    user_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    snapshot = users.purge_user(db, caller, user_id, client=client)
    return {"success": True, "message": "User permanently deleted", "user": {"id": snapshot["id"], "email": snapshot["email"]}}
