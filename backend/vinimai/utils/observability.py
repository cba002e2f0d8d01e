from __future__ import annotations

import hashlib
import json
import os
import time
import uuid
from datetime import datetime

import sentry_sdk
from flask import g, request
from sentry_sdk.integrations.flask import FlaskIntegration

REDACTED = "[REDACTED]"
SECRET_HEADERS = ("authorization", "cookie", "set-cookie", "x-api-key")
# Request body keys that must never leave the process.
SECRET_FIELDS = ("password", "otp", "signature", "razorpay_signature", "token")

CHECKOUT_CSP = "; ".join(
    (
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline' *.razorpay.com",
        "style-src 'self' 'unsafe-inline'",
        "img-src 'self' data: blob:",
        "connect-src 'self' *.razorpay.com",
        "frame-src *.razorpay.com",
    )
)


def get_request_id() -> str:
    return getattr(g, "request_id", "") or ""


def _address_digest(address: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{address}".encode("utf-8")).hexdigest()[:16]


def _scrub_event(event, hint):
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for name in list(headers):
        if name.lower() in SECRET_HEADERS:
            headers[name] = REDACTED
    body = req.get("data")
    if isinstance(body, dict):
        for name in list(body):
            if name.lower() in SECRET_FIELDS:
                body[name] = REDACTED
    return event


def init_sentry(app) -> None:
    """Turn on error reporting when SENTRY_DSN is configured."""
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    try:
        sample_rate = float((os.getenv("SENTRY_TRACES_SAMPLE_RATE") or "0").strip())
    except ValueError:
        sample_rate = 0.0
    sentry_sdk.init(
        dsn=dsn,
        environment=os.getenv("SENTRY_ENVIRONMENT") or os.getenv("VINIMAI_ENV") or "dev",
        release=os.getenv("GIT_SHA") or "unknown",
        integrations=[FlaskIntegration()],
        send_default_pii=False,
        traces_sample_rate=min(max(sample_rate, 0.0), 1.0),
        before_send=_scrub_event,
    )
    app.logger.info("sentry_enabled")


def install_request_observers(app) -> None:
    """Tag each request with an id and emit one JSON access line per response."""

    @app.before_request
    def _start_request():
        g.request_id = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _finish_request(response):
        rid = get_request_id() or uuid.uuid4().hex
        response.headers["X-Request-Id"] = rid
        started = getattr(g, "request_started_at", None)
        line = {
            "ts": datetime.utcnow().isoformat(),
            "request_id": rid,
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "latency_ms": round((time.perf_counter() - started) * 1000.0, 2) if started is not None else None,
            "user_id": getattr(g, "auth_user_id", None),
            "role": getattr(g, "auth_role", None),
            "client": _address_digest(request.remote_addr or "", app.config.get("SECRET_KEY", "vinimai")),
            "user_agent": (request.user_agent.string or "")[:180],
        }
        log = app.logger.warning if response.status_code >= 400 else app.logger.info
        log(json.dumps(line))
        return response


def install_security_headers(app, *, production: bool) -> None:
    headers = {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "X-XSS-Protection": "1; mode=block",
        "Content-Security-Policy": CHECKOUT_CSP,
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }
    if production:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    @app.after_request
    def _apply_security_headers(response):
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response
