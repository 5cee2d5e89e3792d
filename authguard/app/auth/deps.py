from __future__ import annotations

import secrets

from fastapi import Depends, Header, HTTPException, Request

from authguard.app.auth.users import User, UserStore
from authguard.app.config.settings import Settings
from authguard.app.core.security import decode_access_token
from authguard.app.services.rate_limit import RateLimiter


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_user_store(request: Request) -> UserStore:
    return request.app.state.users


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _get_bearer_token(authorization: str | None) -> str | None:
    if not authorization or not isinstance(authorization, str):
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        token = parts[1].strip()
        return token or None
    return None


def get_current_user(
    authorization: str | None = Header(default=None),
    users: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_settings_dep),
) -> User:
    """Resolve the user from a bearer access token."""
    token = _get_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail={"code": "AUTH_REQUIRED", "message": "Authentication required"})

    try:
        payload = decode_access_token(token, secret=settings.jwt_secret)
    except ValueError as exc:
        code = "AUTH_INVALID"
        if str(exc) == "TOKEN_EXPIRED":
            code = "AUTH_EXPIRED"
        raise HTTPException(status_code=401, detail={"code": code, "message": "Invalid or expired token"}) from exc

    username = payload.get("sub")
    user = users.get_user_by_username(username) if username else None
    if not user or user.status != "active":
        raise HTTPException(status_code=401, detail={"code": "USER_INACTIVE", "message": "User account is inactive"})

    return user


def require_admin_key(
    x_admin_key: str | None = Header(default=None),
    settings: Settings = Depends(get_settings_dep),
) -> None:
    """Guard for operator endpoints; disabled entirely when no key is configured."""
    if not settings.admin_api_key:
        raise HTTPException(status_code=403, detail={"code": "ADMIN_DISABLED", "message": "Admin API is disabled"})
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(status_code=403, detail={"code": "ADMIN_REQUIRED", "message": "Admin access required"})
