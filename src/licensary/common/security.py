"""Authorization gate: bearer tokens, password hashing, role checks."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Header

from licensary.common.config import LicensarySettings, get_settings
from licensary.common.exceptions import ForbiddenError, UnauthorizedError

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass
class CallerIdentity:
    """Authenticated subject resolved from a bearer token."""
    user_id: int
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


# ── Passwords ──

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


# ── Tokens ──

def create_access_token(
    user_id: int,
    settings: LicensarySettings | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    expires = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {"sub": str(user_id), "iat": now, "exp": expires}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: LicensarySettings | None = None) -> int:
    """Validate signature and expiry; return the subject user id."""
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise UnauthorizedError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise UnauthorizedError("Invalid authentication token") from exc

    try:
        return int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise UnauthorizedError("Invalid authentication token") from exc


def authenticate(
    authorization: Optional[str], settings: LicensarySettings | None = None,
) -> CallerIdentity:
    """Resolve a caller from an ``Authorization: Bearer <token>`` header value.

    The role is left at its default; it is never trusted from the token.
    """
    if not authorization:
        raise UnauthorizedError("Authentication token not provided")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise UnauthorizedError("Invalid authentication scheme")

    return CallerIdentity(user_id=decode_access_token(parts[1], settings))


# ── FastAPI dependencies ──

async def require_user(
    authorization: Optional[str] = Header(None),
) -> CallerIdentity:
    """FastAPI dependency that requires a valid bearer token."""
    return authenticate(authorization)


async def require_admin(
    identity: CallerIdentity = Depends(require_user),
) -> CallerIdentity:
    """FastAPI dependency that re-reads the caller's role and requires admin.

    The role lookup happens on every call so a downgrade takes effect
    without re-issuing tokens.
    """
    from licensary.deps import get_db, get_user_service

    svc = get_user_service()
    db = get_db()
    async with db.get_session() as session:
        user = await svc.get_user(session, identity.user_id)
    if user is None or user.role != ROLE_ADMIN:
        raise ForbiddenError()
    identity.role = user.role
    return identity
