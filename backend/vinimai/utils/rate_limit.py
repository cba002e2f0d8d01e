from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass

import redis
from flask import current_app, request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LimitTier:
    name: str
    limit: int
    window_seconds: int


# Sign-in attempts are counted per client address, everything else per subject.
AUTH_TIER = LimitTier("auth", 5, 15 * 60)
GENERAL_TIER = LimitTier("general", 100, 15 * 60)

_LOCK = threading.Lock()
# counter key -> (window number, hits)
_WINDOWS: dict[str, tuple[int, int]] = {}
_CLIENT = None
_CLIENT_RESOLVED = False
_COUNTS = {"redis": 0, "redis_errors": 0, "memory_rejections": 0}


def _flag(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def rate_limit_enabled() -> bool:
    return _flag("RATE_LIMIT_ENABLED", True)


def limits_active() -> bool:
    if not rate_limit_enabled():
        return False
    if current_app.config.get("TESTING"):
        return _flag("RATE_LIMIT_IN_TESTS", False)
    return True


def _redis_url() -> str:
    return (os.getenv("RATE_LIMIT_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()


def _redis():
    global _CLIENT, _CLIENT_RESOLVED
    with _LOCK:
        if _CLIENT_RESOLVED:
            return _CLIENT
        _CLIENT_RESOLVED = True
    url = _redis_url()
    if not url:
        return None
    try:
        client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=0.75, socket_timeout=0.75)
        client.ping()
    except redis.RedisError as exc:
        logger.warning("rate_limit_redis_unavailable err=%s", exc)
        return None
    with _LOCK:
        _CLIENT = client
    return client


def check_limit(key: str, tier: LimitTier) -> tuple[bool, int]:
    """Count one hit for ``key`` in the current fixed window of ``tier``.

    Returns ``(allowed, retry_after_seconds)``. With Redis the count is shared
    by every instance; without it each process counts on its own.
    """
    window = max(1, int(tier.window_seconds))
    now = int(time.time())
    number = now // window
    retry_after = max(1, window - now % window)
    counter_key = f"rl:v1:{tier.name}:{key}:{number}"

    client = _redis()
    if client is not None:
        try:
            hits = int(client.incr(counter_key))
            if hits == 1:
                client.expire(counter_key, window + 1)
        except redis.RedisError as exc:
            with _LOCK:
                _COUNTS["redis_errors"] += 1
            logger.warning("rate_limit_redis_error tier=%s err=%s", tier.name, exc)
        else:
            with _LOCK:
                _COUNTS["redis"] += 1
            return (hits <= tier.limit), (0 if hits <= tier.limit else retry_after)

    with _LOCK:
        seen_number, hits = _WINDOWS.get(counter_key, (number, 0))
        if seen_number != number:
            hits = 0
        if hits >= tier.limit:
            _COUNTS["memory_rejections"] += 1
            return False, retry_after
        _WINDOWS[counter_key] = (number, hits + 1)
        if len(_WINDOWS) > 50000:
            for stale in [k for k, (n, _h) in _WINDOWS.items() if n != number]:
                _WINDOWS.pop(stale, None)
    return True, 0


def reset_memory_windows() -> None:
    with _LOCK:
        _WINDOWS.clear()


def client_address() -> str:
    if _flag("TRUST_PROXY_HEADERS", False):
        forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
        if forwarded:
            return forwarded
        real_ip = (request.headers.get("X-Real-IP") or "").strip()
        if real_ip:
            return real_ip
    return (request.remote_addr or "").strip() or "unknown"


def tier_for_request(method: str, path: str) -> LimitTier | None:
    """Pick the tier guarding a request, or ``None`` for exempt requests."""
    if method == "OPTIONS" or not path.startswith("/api/") or path == "/api/health":
        return None
    if method == "POST" and path.startswith("/api/auth/"):
        return AUTH_TIER
    return GENERAL_TIER


def subject_for(tier: LimitTier, user_id: int | None) -> str:
    if tier is GENERAL_TIER and user_id is not None:
        return f"u:{int(user_id)}"
    return f"ip:{client_address()}"


def limiter_stats() -> dict:
    with _LOCK:
        return {
            "enabled": rate_limit_enabled(),
            "redis_configured": bool(_redis_url()),
            "redis_connected": _CLIENT is not None,
            "redis_checks": _COUNTS["redis"],
            "redis_errors": _COUNTS["redis_errors"],
            "memory_rejections": _COUNTS["memory_rejections"],
        }
