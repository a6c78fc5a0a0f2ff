import pytest

from backoffice.core.clock import utcnow
from backoffice.core.errors import CapacityError
from backoffice.db.session import SessionLocal
from backoffice.models import User
from backoffice.services import companies
from helpers import auth, caller_for, client, fetch, make_company, make_trainees, make_user

ADMIN = "admin@example.com"


def unassigned(count: int, prefix: str = "free") -> list[int]:
    return [make_user(f"{prefix}{i}@example.com", role="company_admin") for i in range(count)]


def test_bulk_assign_over_capacity_is_rejected():
    make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=10)
    make_trainees(company_id, 6)
    new_ids = unassigned(5)

    r = client.post(
        "/admin/users/bulk-assign-company",
        json={"user_ids": new_ids, "company_id": company_id},
        headers=auth(ADMIN),
    )
    assert r.status_code == 400
    assert r.json()["kind"] == "capacity"
    assert "Current: 6, Adding: 5, Max: 10" in r.json()["error"]
    # all-or-nothing
    assert all(fetch(User, uid).company_id is None for uid in new_ids)


def test_bulk_assign_up_to_capacity_succeeds():
    make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=10)
    make_trainees(company_id, 6)
    new_ids = unassigned(4)

    r = client.post(
        "/admin/users/bulk-assign-company",
        json={"user_ids": new_ids, "company_id": company_id},
        headers=auth(ADMIN),
    )
    assert r.status_code == 200, r.text
    assert r.json()["updated_count"] == 4
    assert all(fetch(User, uid).company_id == company_id for uid in new_ids)


def test_capacity_ignores_inactive_and_deleted_trainees():
    admin_id = make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=3)
    make_user("inactive@example.com", company_id=company_id, is_active=False)
    make_user("ghost@example.com", company_id=company_id, deleted_at=fetch(User, admin_id).created_at)
    make_trainees(company_id, 1)
    db = SessionLocal()
    try:
        assert companies.active_trainee_count(db, company_id) == 1
        company = companies.get_company(db, company_id)
        companies.check_capacity(db, company, 2)
        with pytest.raises(CapacityError):
            companies.check_capacity(db, company, 3)
    finally:
        db.close()


def test_bulk_assign_unknown_targets():
    make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp")
    ids = unassigned(2)
    r = client.post("/admin/users/bulk-assign-company", json={"user_ids": ids, "company_id": 424242}, headers=auth(ADMIN))
    assert r.status_code == 404
    r = client.post("/admin/users/bulk-assign-company", json={"user_ids": ids + [424242], "company_id": company_id}, headers=auth(ADMIN))
    assert r.status_code == 404
    r = client.post("/admin/users/bulk-assign-company", json={"user_ids": [], "company_id": company_id}, headers=auth(ADMIN))
    assert r.status_code == 400


def test_service_assign_is_all_or_nothing():
    admin_id = make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=2)
    ids = unassigned(3)
    db = SessionLocal()
    try:
        with pytest.raises(CapacityError):
            companies.assign_users(db, caller_for(admin_id), company_id, ids)
        company, updated = companies.assign_users(db, caller_for(admin_id), company_id, ids[:2])
        assert updated == 2
    finally:
        db.close()


def test_reactivating_trainee_checks_capacity():
    make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=1)
    make_trainees(company_id, 1)
    sleeper = make_user("sleeper@example.com", company_id=company_id, is_active=False)
    r = client.post(f"/admin/users/{sleeper}/toggle-status", json={"is_active": True}, headers=auth(ADMIN))
    assert r.status_code == 400
    assert r.json()["kind"] == "capacity"


def test_profile_update_promotion_checks_capacity():
    make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=1)
    make_trainees(company_id, 1)
    ca = make_user("ca@example.com", role="company_admin", company_id=company_id)
    body = {"first_name": "Carla", "last_name": "Admin", "role": "trainee", "company_id": company_id}
    r = client.put(f"/admin/users/{ca}", json=body, headers=auth(ADMIN))
    assert r.status_code == 400
    assert r.json()["kind"] == "capacity"
    assert fetch(User, ca).role == "company_admin"


def test_profile_update_reactivation_checks_capacity():
    make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=1)
    make_trainees(company_id, 1)
    sleeper = make_user("sleeper@example.com", company_id=company_id, is_active=False)
    body = {"first_name": "Sam", "last_name": "Sleeper", "is_active": True}
    r = client.put(f"/admin/users/{sleeper}", json=body, headers=auth(ADMIN))
    assert r.status_code == 400
    assert r.json()["kind"] == "capacity"
    assert fetch(User, sleeper).is_active is False


def test_profile_update_of_counted_trainee_at_capacity():
    make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=1)
    [trainee] = make_trainees(company_id, 1)
    r = client.put(f"/admin/users/{trainee}", json={"first_name": "Tia", "last_name": "Trainee"}, headers=auth(ADMIN))
    assert r.status_code == 200, r.text
    assert r.json()["user"]["company_id"] == company_id


def test_recovering_trainee_checks_capacity():
    make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=1)
    ghost = make_user("ghost@example.com", company_id=company_id, deleted_at=utcnow())
    make_trainees(company_id, 1)
    r = client.post(f"/admin/users/{ghost}/recover", headers=auth(ADMIN))
    assert r.status_code == 400
    assert r.json()["kind"] == "capacity"
    assert fetch(User, ghost).deleted_at is not None
    db = SessionLocal()
    try:
        assert companies.active_trainee_count(db, company_id) == 1
    finally:
        db.close()
