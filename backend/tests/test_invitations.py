from datetime import timedelta

import pytest

from backoffice.core.clock import utcnow
from backoffice.core.errors import ExpiredError, InvalidStateError
from backoffice.db.session import SessionLocal
from backoffice.models import Invitation, User
from backoffice.services import invitations
from helpers import auth, caller_for, client, fetch, invitation_token, make_company, make_trainees, make_user, update_row

ADMIN = "admin@example.com"


def setup_admin_and_company(max_trainees: int = 10):
    admin_id = make_user(ADMIN, role="site_admin")
    company_id = make_company("Acme Corp", max_trainees=max_trainees)
    return admin_id, company_id


def invite(email="new@example.com", role="trainee", company_id=None, as_email=ADMIN, **extra):
    body = {"email": email, "role": role, "company_id": company_id, **extra}
    return client.post("/invitations/", json=body, headers=auth(as_email))


def test_create_and_validate_invitation():
    _, company_id = setup_admin_and_company()
    r = invite(company_id=company_id, first_name="Nina", last_name="Newman")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["invitation"]["status"] == "pending"
    assert data["invitation"]["user_data"]["first_name"] == "Nina"
    assert data["email_sent"] is True
    assert "token" not in data["invitation"]

    token = invitation_token(data["invitation"]["id"])
    r = client.get("/invitations/validate", params={"token": token})
    assert r.status_code == 200, r.text
    assert r.json()["invitation"]["company_name"] == "Acme Corp"
    assert client.get("/invitations/verify", params={"token": token}).status_code == 200


def test_unknown_token_is_not_found():
    r = client.get("/invitations/validate", params={"token": "nope"})
    assert r.status_code == 404
    assert r.json()["kind"] == "not_found"


def test_invitation_expires_after_ttl():
    admin_id, company_id = setup_admin_and_company()
    now = utcnow()
    db = SessionLocal()
    try:
        inv, _ = invitations.create_invitation(db, caller_for(admin_id), "late@example.com", "trainee", company_id=company_id, now=now)
        assert invitations.validate_token(db, inv.token, now + timedelta(days=7)).id == inv.id
        with pytest.raises(ExpiredError):
            invitations.validate_token(db, inv.token, now + timedelta(days=8))
        assert invitations.effective_status(inv, now + timedelta(days=8)) == "expired"
    finally:
        db.close()


def test_expired_invitation_over_http():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    update_row(Invitation, inv_id, expires_at=utcnow() - timedelta(minutes=1))
    token = invitation_token(inv_id)

    r = client.get("/invitations/validate", params={"token": token})
    assert r.status_code == 410
    assert r.json()["kind"] == "expired"
    r = client.post(f"/invitations/{inv_id}/resend", headers=auth(ADMIN))
    assert r.status_code == 410


def test_resend_rotates_token_and_extends_expiry():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    update_row(Invitation, inv_id, expires_at=utcnow() + timedelta(days=1))
    old_token = invitation_token(inv_id)

    r = client.post(f"/invitations/{inv_id}/resend", headers=auth(ADMIN))
    assert r.status_code == 200, r.text
    new_token = invitation_token(inv_id)
    assert new_token != old_token
    assert fetch(Invitation, inv_id).expires_at > utcnow() + timedelta(days=6)
    assert client.get("/invitations/validate", params={"token": old_token}).status_code == 404
    assert client.get("/invitations/validate", params={"token": new_token}).status_code == 200


def test_resend_requires_pending():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    update_row(Invitation, inv_id, status="accepted")
    r = client.post(f"/invitations/{inv_id}/resend", headers=auth(ADMIN))
    assert r.status_code == 400
    assert r.json()["kind"] == "invalid_state"


def test_accept_creates_user_and_consumes_token():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id, first_name="Nina", last_name="Newman").json()["invitation"]["id"]
    token = invitation_token(inv_id)
    headers = auth("new@example.com", token_email="new@example.com")

    r = client.post("/invitations/accept", json={"token": token, "job_title": "Analyst"}, headers=headers)
    assert r.status_code == 200, r.text
    user = r.json()["user"]
    assert user["role"] == "trainee"
    assert user["company_id"] == company_id
    assert user["first_name"] == "Nina"
    assert user["job_title"] == "Analyst"
    assert user["profile_completed"] is True

    inv = fetch(Invitation, inv_id)
    assert inv.status == "accepted"
    assert inv.accepted_at is not None

    # single use
    r = client.post("/invitations/accept", json={"token": token}, headers=headers)
    assert r.status_code == 404
    # an accepted invitation still verifies, but no longer validates
    assert client.get("/invitations/verify", params={"token": token}).status_code == 200
    assert client.get("/invitations/validate", params={"token": token}).status_code == 404

    me = client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == "new@example.com"


def test_accept_rejects_other_email():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    r = client.post(
        "/invitations/accept",
        json={"token": invitation_token(inv_id)},
        headers=auth("intruder@example.com", token_email="intruder@example.com"),
    )
    assert r.status_code == 403
    assert fetch(Invitation, inv_id).status == "pending"


def test_accept_respects_company_capacity():
    _, company_id = setup_admin_and_company(max_trainees=2)
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    make_trainees(company_id, 2)
    r = client.post(
        "/invitations/accept",
        json={"token": invitation_token(inv_id)},
        headers=auth("new@example.com", token_email="new@example.com"),
    )
    assert r.status_code == 400
    assert r.json()["kind"] == "capacity"
    db = SessionLocal()
    try:
        assert db.query(User).filter(User.email == "new@example.com").first() is None
    finally:
        db.close()


def test_accept_requires_identity():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    r = client.post("/invitations/accept", json={"token": invitation_token(inv_id)})
    assert r.status_code == 401


def test_delete_accepted_invitation_conflicts():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    update_row(Invitation, inv_id, status="accepted")
    r = client.delete(f"/invitations/{inv_id}", headers=auth(ADMIN))
    assert r.status_code == 409
    assert r.json()["kind"] == "conflict"
    assert fetch(Invitation, inv_id) is not None


def test_delete_pending_invitation():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    r = client.delete(f"/invitations/{inv_id}", headers=auth(ADMIN))
    assert r.status_code == 200, r.text
    assert fetch(Invitation, inv_id) is None
    assert client.delete(f"/invitations/{inv_id}", headers=auth(ADMIN)).status_code == 404


def test_cancel_is_terminal():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    token = invitation_token(inv_id)
    r = client.post(f"/invitations/{inv_id}/cancel", headers=auth(ADMIN))
    assert r.status_code == 200, r.text
    assert r.json()["invitation"]["status"] == "cancelled"
    assert client.post(f"/invitations/{inv_id}/cancel", headers=auth(ADMIN)).status_code == 400
    assert client.post(f"/invitations/{inv_id}/resend", headers=auth(ADMIN)).status_code == 400
    assert client.get("/invitations/validate", params={"token": token}).status_code == 404


def test_cancel_service_rejects_non_pending():
    admin_id, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    update_row(Invitation, inv_id, status="accepted")
    db = SessionLocal()
    try:
        with pytest.raises(InvalidStateError):
            invitations.cancel(db, caller_for(admin_id), inv_id)
    finally:
        db.close()


def test_create_validation_and_conflicts():
    _, company_id = setup_admin_and_company()
    assert invite(role="trainee").status_code == 400  # trainee without company
    assert invite(role="wizard", company_id=company_id).status_code == 400
    assert invite(email="not-an-email", company_id=company_id).status_code == 400
    assert invite(company_id=999999).status_code == 404
    assert invite(company_id=company_id, first_name="A").status_code == 400

    assert invite(company_id=company_id).status_code == 200
    r = invite(company_id=company_id)
    assert r.status_code == 409
    assert invite(email=ADMIN, role="site_admin").status_code == 409


def test_check_email():
    _, company_id = setup_admin_and_company()
    invite(company_id=company_id)
    r = client.get("/invitations/check-email", params={"email": ADMIN}, headers=auth(ADMIN))
    assert r.json() == {"exists": True, "reason": "user_exists"}
    r = client.get("/invitations/check-email", params={"email": "NEW@example.com"}, headers=auth(ADMIN))
    assert r.json() == {"exists": True, "reason": "invitation_pending"}
    r = client.get("/invitations/check-email", params={"email": "free@example.com"}, headers=auth(ADMIN))
    assert r.json() == {"exists": False, "reason": None}


def test_company_admin_invites_only_trainees_into_own_company():
    _, company_id = setup_admin_and_company()
    other_id = make_company("Other Co")
    make_user("ca@example.com", role="company_admin", company_id=company_id)

    assert invite(company_id=other_id, as_email="ca@example.com").status_code == 403
    assert invite(role="company_admin", company_id=company_id, as_email="ca@example.com").status_code == 403
    r = invite(company_id=company_id, as_email="ca@example.com")
    assert r.status_code == 200, r.text

    r = client.post("/company/trainees/invite", json={"email": "t2@example.com"}, headers=auth("ca@example.com"))
    assert r.status_code == 200, r.text
    assert r.json()["invitation"]["company_id"] == company_id

    # listing is scoped to the admin's company
    invite(email="elsewhere@example.com", company_id=other_id)
    r = client.get("/invitations/", headers=auth("ca@example.com"))
    assert r.status_code == 200
    assert {i["email"] for i in r.json()["items"]} == {"new@example.com", "t2@example.com"}


def test_company_admin_cannot_manage_other_company_invitation():
    _, company_id = setup_admin_and_company()
    other_id = make_company("Other Co")
    make_user("ca@example.com", role="company_admin", company_id=other_id)
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    assert client.post(f"/invitations/{inv_id}/resend", headers=auth("ca@example.com")).status_code == 403
    assert client.delete(f"/invitations/{inv_id}", headers=auth("ca@example.com")).status_code == 403


def test_trainee_cannot_invite():
    _, company_id = setup_admin_and_company()
    make_user("t@example.com", company_id=company_id)
    r = invite(company_id=company_id, as_email="t@example.com")
    assert r.status_code == 403
    assert r.json()["kind"] == "authorization"


def test_list_derives_expired_status():
    _, company_id = setup_admin_and_company()
    fresh = invite(email="fresh@example.com", company_id=company_id).json()["invitation"]["id"]
    stale = invite(email="stale@example.com", company_id=company_id).json()["invitation"]["id"]
    update_row(Invitation, stale, expires_at=utcnow() - timedelta(days=1))

    r = client.get("/invitations/", params={"status": "expired"}, headers=auth(ADMIN))
    assert r.status_code == 200
    assert [i["id"] for i in r.json()["items"]] == [stale]
    assert r.json()["items"][0]["status"] == "expired"

    r = client.get("/invitations/", params={"status": "pending"}, headers=auth(ADMIN))
    assert [i["id"] for i in r.json()["items"]] == [fresh]


def test_invitation_search_treats_wildcards_literally():
    _, company_id = setup_admin_and_company()
    invite("plain@example.com", company_id=company_id)
    invite("odd_name@example.com", company_id=company_id)
    r = client.get("/invitations/", params={"search": "%"}, headers=auth(ADMIN))
    assert r.status_code == 200, r.text
    assert r.json()["total"] == 0
    r = client.get("/invitations/", params={"search": "odd_"}, headers=auth(ADMIN))
    assert [i["email"] for i in r.json()["items"]] == ["odd_name@example.com"]


def test_accept_by_deactivated_account_is_refused():
    _, company_id = setup_admin_and_company()
    inv_id = invite(company_id=company_id).json()["invitation"]["id"]
    user_id = make_user("new@example.com", role="company_admin", is_active=False)
    r = client.post(
        "/invitations/accept",
        json={"token": invitation_token(inv_id)},
        headers=auth("new@example.com", token_email="new@example.com"),
    )
    assert r.status_code == 403
    assert fetch(Invitation, inv_id).status == "pending"
    assert fetch(User, user_id).role == "company_admin"
