from __future__ import annotations

import hashlib
import hmac
import logging
import os
import secrets
import threading
import time

import redis

from vinimai.config import int_setting

logger = logging.getLogger(__name__)

_LOCK = threading.Lock()
# mobile -> (code_hash, expires_at)
_MEMORY: dict[str, tuple[str, float]] = {}
_CLIENT = None
_CLIENT_INIT_ATTEMPTED = False


def otp_ttl_seconds() -> int:
    return int_setting("OTP_TTL_SECONDS", 300, minimum=30, maximum=3600)


def _otp_redis_url() -> str:
    return (os.getenv("OTP_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()


def _get_client():
    global _CLIENT, _CLIENT_INIT_ATTEMPTED
    with _LOCK:
        if _CLIENT_INIT_ATTEMPTED:
            return _CLIENT
        _CLIENT_INIT_ATTEMPTED = True
    url = _otp_redis_url()
    if not url:
        return None
    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=0.75,
            socket_connect_timeout=0.75,
            health_check_interval=30,
        )
        client.ping()
        with _LOCK:
            _CLIENT = client
        return client
    except redis.RedisError:
        with _LOCK:
            _CLIENT = None
        return None


def _hash_code(mobile: str, code: str) -> str:
    secret = (os.getenv("SECRET_KEY") or "vinimai").encode("utf-8")
    return hmac.new(secret, f"{mobile}:{code}".encode("utf-8"), hashlib.sha256).hexdigest()


def _key(mobile: str) -> str:
    return f"otp:v1:{mobile}"


def issue_otp(mobile: str) -> str:
    """Generate and store a six digit code for ``mobile``, replacing any previous one."""
    code = f"{secrets.randbelow(1000000):06d}"
    ttl = otp_ttl_seconds()
    hashed = _hash_code(mobile, code)
    client = _get_client()
    if client is not None:
        try:
            client.set(_key(mobile), hashed, ex=ttl)
            return code
        except redis.RedisError as exc:
            logger.warning("otp_redis_write_failed err=%s", exc)
    with _LOCK:
        _MEMORY[mobile] = (hashed, time.time() + ttl)
        _purge_expired_locked()
    return code


def consume_otp(mobile: str, code: str) -> bool:
    """Single-use check. A matching code is removed; a mismatch leaves it in place."""
    candidate = _hash_code(mobile, (code or "").strip())
    client = _get_client()
    if client is not None:
        try:
            stored = client.get(_key(mobile))
            if stored and hmac.compare_digest(stored, candidate):
                client.delete(_key(mobile))
                return True
            return False
        except redis.RedisError as exc:
            logger.warning("otp_redis_read_failed err=%s", exc)
    with _LOCK:
        entry = _MEMORY.get(mobile)
        if not entry:
            return False
        stored, expires_at = entry
        if expires_at < time.time():
            _MEMORY.pop(mobile, None)
            return False
        if not hmac.compare_digest(stored, candidate):
            return False
        _MEMORY.pop(mobile, None)
        return True


def _purge_expired_locked() -> None:
    now = time.time()
    for mobile in [m for m, (_h, exp) in _MEMORY.items() if exp < now]:
        _MEMORY.pop(mobile, None)
