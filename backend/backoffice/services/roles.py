"""Role hierarchy and capability checks.

Every workflow receives an explicit ``CallerContext`` built once per request by
``api.deps``; nothing here looks up ambient state.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    TRAINEE = "trainee"
    COMPANY_ADMIN = "company_admin"
    SITE_ADMIN = "site_admin"


ROLE_LEVELS = {
    Role.TRAINEE: 1,
    Role.COMPANY_ADMIN: 2,
    Role.SITE_ADMIN: 3,
}


def parse_role(value) -> Optional[Role]:
    """Return the Role for a stored/submitted value, or None when unknown."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class CallerContext:
    external_id: str
    email: Optional[str] = None
    user_id: Optional[int] = None
    role: Optional[Role] = None
    company_id: Optional[int] = None
    is_active: bool = True

    @property
    def ref(self) -> str:
        """Value stamped into deleted_by / audit actor columns."""
        return self.external_id


def role_level(role) -> int:
    parsed = parse_role(role)
    return ROLE_LEVELS[parsed] if parsed else 0


def authorize(caller: Optional[CallerContext], required_role) -> bool:
    """True iff the caller's level is at least the required level.

    An unresolvable caller or role always denies.
    """
    if caller is None or caller.role is None:
        return False
    required = role_level(required_role)
    if not required:
        return False
    return role_level(caller.role) >= required


def can_manage(caller: Optional[CallerContext], target) -> bool:
    """Site admins manage anyone; company admins only targets in their own company.

    ``target`` is anything with a ``company_id`` attribute (a User or Invitation).
    """
    if not authorize(caller, Role.COMPANY_ADMIN):
        return False
    if caller.role == Role.SITE_ADMIN:
        return True
    target_company = getattr(target, "company_id", None)
    return caller.company_id is not None and target_company == caller.company_id
