from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import secrets
import jwt

from backoffice.core.config import settings


def create_identity_token(subject: str, email: Optional[str] = None, expires_delta: Optional[timedelta] = None) -> str:
    """Mint a session token shaped like the identity provider's.

    Production tokens come from the provider; this exists for local runs and tests.
    """
    expire = datetime.now(tz=timezone.utc) + (expires_delta or timedelta(minutes=60))
    to_encode: dict[str, Any] = {"sub": str(subject), "exp": expire}
    if email:
        to_encode["email"] = email
    if settings.identity_audience:
        to_encode["aud"] = settings.identity_audience
    if settings.identity_issuer:
        to_encode["iss"] = settings.identity_issuer
    return jwt.encode(to_encode, settings.identity_secret_key, algorithm=settings.identity_algorithm)


def decode_identity_token(token: str) -> dict[str, Any]:
    """Verify signature/expiry and return the claims.
    Raises jwt.PyJWTError if invalid.
    """
    options = {"require": ["sub", "exp"]}
    kwargs: dict[str, Any] = {}
    if settings.identity_audience:
        kwargs["audience"] = settings.identity_audience
    if settings.identity_issuer:
        kwargs["issuer"] = settings.identity_issuer
    return jwt.decode(
        token,
        settings.identity_secret_key,
        algorithms=[settings.identity_algorithm],
        options=options,
        **kwargs,
    )


def generate_invitation_token() -> str:
    return secrets.token_urlsafe(32)
