from __future__ import annotations

from flask import g, request

from vinimai.errors import AuthenticationRequired, AuthorizationError
from vinimai.extensions import db
from vinimai.models import User
from vinimai.utils.jwt_utils import decode_token, get_bearer_token

_UNSET = object()


def _load_from_header() -> User | None:
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    try:
        uid = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    # Re-load the row; the stored role wins over the token claim.
    return db.session.get(User, uid)


def current_user() -> User | None:
    cached = getattr(g, "auth_user", _UNSET)
    if cached is not _UNSET:
        return cached
    user = _load_from_header()
    g.auth_user = user
    g.auth_user_id = int(user.id) if user else None
    g.auth_role = (user.role or "buyer").strip().lower() if user else None
    return user


def require_user() -> User:
    user = current_user()
    if user is None:
        raise AuthenticationRequired("Missing or invalid bearer token")
    return user


def require_role(*roles: str) -> User:
    user = require_user()
    role = (user.role or "").strip().lower()
    if role not in roles:
        if roles == ("admin",):
            raise AuthorizationError("Admin access required")
        raise AuthorizationError(f"Requires role: {', '.join(roles)}")
    return user
