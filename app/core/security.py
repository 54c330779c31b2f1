"""Bearer-token authentication.

Tokens are issued by an external identity service; this module only verifies them.
`create_access_token` exists for tests and the local dev token script.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.middleware.http_logging import request_id_of
from app.core.middleware.routes import safe_route_label
from app.core.settings import Settings, get_settings

logger = logging.getLogger("app.auth")
bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticationError(Exception):
    """Raised when a bearer token is missing, malformed, expired or has no subject."""


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str


def create_access_token(
    *,
    subject: str,
    settings: Settings | None = None,
    expires_delta: timedelta | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    settings = settings or get_settings()
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims: dict[str, Any] = {**(extra_claims or {}), "sub": subject, "exp": expire}
    return jwt.encode(claims, settings.auth_secret_key, algorithm=settings.auth_algorithm)


def verify_access_token(token: str, *, settings: Settings | None = None) -> AuthenticatedUser:
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.auth_secret_key, algorithms=[settings.auth_algorithm])
    except JWTError as exc:
        raise AuthenticationError("Token verification failed") from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise AuthenticationError("Token has no subject")
    return AuthenticatedUser(user_id=subject)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> AuthenticatedUser:
    """Dependency for authenticated routes; exposes the user id on `request.state`."""

    try:
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise AuthenticationError("Missing bearer token")
        user = verify_access_token(credentials.credentials)
    except AuthenticationError as exc:
        # The reason is logged, never returned.
        logger.warning(
            "Authentication failed",
            extra={
                "request_id": request_id_of(request),
                "http_method": request.method,
                "request_path": safe_route_label(request=request),
                "status_code": 401,
                "error": str(exc),
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    request.state.user_id = user.user_id
    return user
