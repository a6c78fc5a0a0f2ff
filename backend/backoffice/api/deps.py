import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlalchemy.orm import Session

from backoffice.core.errors import AuthenticationError, AuthorizationError
from backoffice.core.security import decode_identity_token
from backoffice.db.session import get_db
from backoffice.models.user import User
from backoffice.services import users
from backoffice.services.audit import ClientInfo
from backoffice.services.roles import CallerContext, Role, authorize, parse_role

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """What the identity provider vouches for: an opaque subject and maybe an email."""
    external_id: str
    email: Optional[str] = None


def get_identity(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Identity:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized")
    try:
        payload = decode_identity_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        logger.info("Rejected identity token: %s", exc.__class__.__name__)
        raise AuthenticationError("Invalid token") from exc
    email = payload.get("email")
    return Identity(external_id=str(payload["sub"]), email=email.lower() if isinstance(email, str) else None)


def caller_from_user(identity: Identity, user: Optional[User]) -> CallerContext:
    """Build the per-request caller. Deactivated or soft-deleted accounts carry no role."""
    if user is None:
        return CallerContext(external_id=identity.external_id, email=identity.email, is_active=False)
    live = user.is_active and not user.is_deleted
    return CallerContext(
        external_id=identity.external_id,
        email=user.email,
        user_id=user.id,
        role=parse_role(user.role) if live else None,
        company_id=user.company_id,
        is_active=live,
    )


def get_current_caller(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)) -> CallerContext:
    user = users.get_by_external_id(db, identity.external_id)
    return caller_from_user(identity, user)


def require_role(required: Role):
    def checker(caller: CallerContext = Depends(get_current_caller)) -> CallerContext:
        if not authorize(caller, required):
            logger.warning("Caller %s denied, requires %s", caller.ref, required.value)
            raise AuthorizationError("Insufficient permissions")
        return caller
    return checker


def get_client_info(request: Request) -> ClientInfo:
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else request.headers.get("x-real-ip")
    if not ip and request.client:
        ip = request.client.host
    return ClientInfo(ip_address=ip, user_agent=request.headers.get("user-agent"))


def get_optional_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[CallerContext]:
    """Like get_current_caller, but an absent or bad token yields None instead of 401."""
    try:
        identity = get_identity(credentials)
    except AuthenticationError:
        return None
    return get_current_caller(identity, db)
