from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.deps import get_client_info, require_role
from backoffice.db.session import get_db
from backoffice.schemas.companies import CompanyCreate, CompanyUpdate
from backoffice.services import companies
from backoffice.services.audit import ClientInfo
from backoffice.services.roles import CallerContext, Role

router = APIRouter()

site_admin = require_role(Role.SITE_ADMIN)


@router.get("", response_model=List[dict])
@router.get("/", response_model=List[dict])
def list_companies(db: Session = Depends(get_db), caller: CallerContext = Depends(site_admin)):
    return companies.list_companies(db)


@router.post("", response_model=dict)
@router.post("/", response_model=dict)
def create_company(
    payload: CompanyCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    company = companies.create_company(
        db,
        caller,
        payload.name,
        slug=payload.slug,
        description=payload.description,
        max_trainees=payload.max_trainees,
        client=client,
    )
    return {"success": True, "company": companies.company_to_dict(company)}


@router.get("/{company_id}", response_model=dict)
def get_company(company_id: int, db: Session = Depends(get_db), caller: CallerContext = Depends(site_admin)):
    company = companies.get_company(db, company_id)
    data = companies.company_to_dict(company)
    data["active_trainees"] = companies.active_trainee_count(db, company.id)
    return data


@router.put("/{company_id}", response_model=dict)
def update_company(
    company_id: int,
    payload: CompanyUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    company = companies.update_company(
        db,
        caller,
        company_id,
        payload.name,
        payload.slug,
        payload.description,
        payload.max_trainees,
        client=client,
    )
    return {"success": True, "company": companies.company_to_dict(company)}


@router.delete("/{company_id}", response_model=dict)
def delete_company(
    company_id: int,
    reason: Optional[str] = Query(None, max_length=1000),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    company = companies.soft_delete_company(db, caller, company_id, reason=reason, client=client)
    return {
        "success": True,
        "message": f'Company "{company.name}" moved to recycling bin',
        "company": {"id": company.id, "name": company.name, "deleted_at": company.deleted_at.isoformat()},
    }


@router.post("/{company_id}/recover", response_model=dict)
def recover_company(
    company_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    company = companies.recover_company(db, caller, company_id, client=client)
    return {"success": True, "message": f'Company "{company.name}" recovered', "company": companies.company_to_dict(company)}


@router.delete("/{company_id}/permanent", response_model=dict)
def purge_company(
    company_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(site_admin),
    client: ClientInfo = Depends(get_client_info),
):
    snapshot = companies.purge_company(db, caller, company_id, client=client)
    return {
        "success": True,
        "message": f'Company "{snapshot["name"]}" permanently deleted',
        "company": {"id": snapshot["id"], "name": snapshot["name"]},
    }
