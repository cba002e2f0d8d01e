from __future__ import annotations

import os
import time

import jwt

ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60


def _signing_key() -> str:
    return os.getenv("JWT_SECRET") or os.getenv("SECRET_KEY") or "vinimai-development-jwt-secret-change-me"


def token_ttl_seconds() -> int:
    raw = (os.getenv("ACCESS_TOKEN_TTL_SECONDS") or "").strip()
    try:
        ttl = int(raw) if raw else DEFAULT_TTL_SECONDS
    except ValueError:
        ttl = DEFAULT_TTL_SECONDS
    return ttl if ttl > 0 else DEFAULT_TTL_SECONDS


def create_token(user_id: int, role: str = "buyer", ttl_seconds: int | None = None) -> str:
    """Bearer token for ``user_id``. The role claim is informational only."""
    issued = int(time.time())
    claims = {
        "sub": str(int(user_id)),
        "role": (role or "buyer").strip().lower(),
        "iat": issued,
        "exp": issued + int(ttl_seconds or token_ttl_seconds()),
    }
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, _signing_key(), algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})
    except jwt.PyJWTError:
        return None


def get_bearer_token(auth_header: str | None) -> str | None:
    scheme, _, token = (auth_header or "").strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
