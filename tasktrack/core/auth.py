"""
Authentication and permission gates for the HTTP surface.

Supports:
- JWT bearer tokens carrying the acting user id in ``sub``
- A per-request AuthorizationResolver; permission gates live in the services
  so library callers get the same checks
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.core.config import get_settings
from tasktrack.core.database import get_session
from tasktrack.core.errors import Unauthenticated
from tasktrack.services.authorization import AuthorizationResolver

log = structlog.get_logger()
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------


def create_jwt(user_id: int, *, expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT for ``user_id``."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    """Resolve the acting user from the bearer token."""
    if credentials is None:
        raise Unauthenticated("Authentication required")
    try:
        payload = decode_jwt(credentials.credentials)
        user_id = int(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise Unauthenticated("Invalid or expired token")
    structlog.contextvars.bind_contextvars(user_id=user_id)
    request.state.user_id = user_id
    return user_id


def get_resolver(session: AsyncSession = Depends(get_session)) -> AuthorizationResolver:
    return AuthorizationResolver(session)
