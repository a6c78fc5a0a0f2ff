from datetime import datetime
from typing import Optional

from fastapi.testclient import TestClient

from backoffice.core.security import create_identity_token
from backoffice.db.session import SessionLocal
from backoffice.main import app
from backoffice.models import Company, Invitation, User
from backoffice.services.roles import CallerContext, parse_role

client = TestClient(app)


def make_company(name: str = "Acme Corp", max_trainees: int = 10, slug: Optional[str] = None) -> int:
    db = SessionLocal()
    c = Company(
        name=name,
        slug=slug or name.lower().replace(" ", "-"),
        max_trainees=max_trainees,
        is_active=True,
    )
    db.add(c)
    db.commit()
    db.refresh(c)
    db.close()
    return c.id


def make_user(
    email: str,
    role: str = "trainee",
    company_id: Optional[int] = None,
    is_active: bool = True,
    deleted_at: Optional[datetime] = None,
    first_name: str = "Test",
    last_name: str = "User",
) -> int:
    db = SessionLocal()
    u = User(
        external_id=f"ext-{email}",
        email=email,
        role=role,
        company_id=company_id,
        is_active=is_active,
        first_name=first_name,
        last_name=last_name,
        deleted_at=deleted_at,
        deleted_by="ext-someone" if deleted_at else None,
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    db.close()
    return u.id


def make_trainees(company_id: int, count: int, prefix: str = "trainee") -> list[int]:
    return [make_user(f"{prefix}{i}@example.com", company_id=company_id) for i in range(count)]


def auth(email: str, token_email: Optional[str] = None) -> dict:
    """Bearer header for the identity linked to users made by make_user(email)."""
    token = create_identity_token(f"ext-{email}", email=token_email)
    return {"Authorization": f"Bearer {token}"}


def caller_for(user_id: int) -> CallerContext:
    db = SessionLocal()
    u = db.get(User, user_id)
    caller = CallerContext(
        external_id=u.external_id,
        email=u.email,
        user_id=u.id,
        role=parse_role(u.role),
        company_id=u.company_id,
    )
    db.close()
    return caller


def fetch(model, entity_id: int):
    db = SessionLocal()
    obj = db.get(model, entity_id)
    db.close()
    return obj


def update_row(model, entity_id: int, **values) -> None:
    db = SessionLocal()
    db.query(model).filter(model.id == entity_id).update(values, synchronize_session=False)
    db.commit()
    db.close()


def invitation_token(invitation_id: int) -> str:
    return fetch(Invitation, invitation_id).token
