"""Password hashing and access token helpers.

Token helpers take the signing secret and lifetime from the caller so each
app instance signs with its own settings.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
import uuid

import jwt
from jwt import InvalidTokenError, ExpiredSignatureError
from passlib.context import CryptContext

JWT_ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(username: str, role: str, *, secret: str, ttl_seconds: int) -> tuple[str, int]:
    """Sign a bearer token for ``username``; returns (token, expires_in)."""
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": username,
        "role": role,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM), ttl_seconds


def decode_access_token(token: str, *, secret: str) -> dict:
    """Return the token claims; raises ValueError("TOKEN_EXPIRED" | "TOKEN_INVALID")."""
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise ValueError("TOKEN_EXPIRED") from exc
    except InvalidTokenError as exc:
        raise ValueError("TOKEN_INVALID") from exc


__all__ = [
    "hash_password",
    "verify_password",
    "create_access_token",
    "decode_access_token",
]
