from types import SimpleNamespace

import pytest

from backoffice.services.roles import CallerContext, Role, authorize, can_manage, role_level


def caller(role, company_id=None):
    return CallerContext(external_id="ext-x", role=role, company_id=company_id)


@pytest.mark.parametrize("role", list(Role))
def test_role_authorizes_itself(role):
    assert authorize(caller(role), role)


@pytest.mark.parametrize("role", list(Role))
def test_site_admin_authorized_for_everything(role):
    assert authorize(caller(Role.SITE_ADMIN), role)


def test_hierarchy_is_ordered():
    assert role_level(Role.TRAINEE) < role_level(Role.COMPANY_ADMIN) < role_level(Role.SITE_ADMIN)
    assert not authorize(caller(Role.TRAINEE), Role.COMPANY_ADMIN)
    assert not authorize(caller(Role.COMPANY_ADMIN), Role.SITE_ADMIN)
    assert authorize(caller(Role.COMPANY_ADMIN), "trainee")


def test_unresolved_caller_fails_closed():
    assert not authorize(None, Role.TRAINEE)
    assert not authorize(caller(None), Role.TRAINEE)
    assert not authorize(caller(Role.SITE_ADMIN), "superuser")


def test_can_manage_scopes_company_admins_to_their_company():
    target_same = SimpleNamespace(company_id=1)
    target_other = SimpleNamespace(company_id=2)
    assert can_manage(caller(Role.SITE_ADMIN), target_other)
    assert can_manage(caller(Role.COMPANY_ADMIN, company_id=1), target_same)
    assert not can_manage(caller(Role.COMPANY_ADMIN, company_id=1), target_other)
    # a company admin without a company manages nobody, not even company-less targets
    assert not can_manage(caller(Role.COMPANY_ADMIN), SimpleNamespace(company_id=None))
    assert not can_manage(caller(Role.TRAINEE, company_id=1), target_same)
