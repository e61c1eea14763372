"""Authentication dependencies: user bearer tokens and the admin API key."""

import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header
from jose import ExpiredSignatureError, JWTError, jwt

from credit_ledger.common.exceptions import ForbiddenError, UnauthenticatedError


@dataclass
class UserContext:
    """Authenticated caller resolved from a bearer token."""
    user_id: str
    role: str = "user"


def create_access_token(
    user_id: str,
    role: str = "user",
    expires_minutes: int | None = None,
) -> str:
    """Issue a signed HS256 token for ``user_id`` (used by tests and tooling)."""
    from credit_ledger.common.config import get_settings

    settings = get_settings()
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UserContext:
    """Verify a token and return the caller, raising UnauthenticatedError."""
    from credit_ledger.common.config import get_settings

    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as e:
        raise UnauthenticatedError("Token has expired") from e
    except JWTError as e:
        raise UnauthenticatedError("Invalid token") from e

    user_id = claims.get("sub")
    if not user_id:
        raise UnauthenticatedError("Invalid token")
    return UserContext(user_id=str(user_id), role=claims.get("role", "user"))


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_user(
    authorization: Optional[str] = Header(None),
) -> UserContext:
    """FastAPI dependency: a valid bearer token is mandatory."""
    token = _bearer_token(authorization)
    if token is None:
        raise UnauthenticatedError()
    return decode_access_token(token)


async def optional_user(
    authorization: Optional[str] = Header(None),
) -> Optional[UserContext]:
    """FastAPI dependency: resolve the caller if a valid token is present.

    A missing or invalid token yields an anonymous caller, never an error.
    """
    token = _bearer_token(authorization)
    if token is None:
        return None
    try:
        return decode_access_token(token)
    except UnauthenticatedError:
        return None


async def require_api_key(
    x_ledger_api_key: Optional[str] = Header(None, alias="X-Ledger-Api-Key"),
) -> str:
    """FastAPI dependency that validates the admin API key from header."""
    from credit_ledger.common.config import get_settings

    settings = get_settings()
    if not x_ledger_api_key or not hmac.compare_digest(x_ledger_api_key, settings.api_key):
        raise ForbiddenError("Invalid API key")
    return x_ledger_api_key
