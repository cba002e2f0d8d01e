from __future__ import annotations

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from vinimai.extensions import db
from vinimai.utils.observability import get_request_id


class DomainError(Exception):
    """Base for failures that translate into a structured API response.

    ``code`` is the stable machine-readable identifier, ``status`` the HTTP
    status the request boundary answers with.
    """

    code = "DOMAIN_ERROR"
    status = 400
    retryable = False

    def __init__(self, message: str = "", *, code: str | None = None, fields: dict | None = None, details: dict | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code:
            self.code = code
        self.fields = dict(fields or {})
        self.details = dict(details or {})

    def to_dict(self) -> dict:
        payload = {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "status": int(self.status),
        }
        if self.fields:
            payload["fields"] = self.fields
        if self.retryable:
            payload["retryable"] = True
        payload.update(self.details)
        return payload


class ValidationError(DomainError):
    code = "VALIDATION_FAILED"
    status = 400


class AuthenticationRequired(DomainError):
    code = "UNAUTHORIZED"
    status = 401


class AuthorizationError(DomainError):
    code = "FORBIDDEN"
    status = 403


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status = 404


class ConflictError(DomainError):
    code = "CONFLICT"
    status = 409


class UpstreamError(DomainError):
    code = "GATEWAY_ERROR"
    status = 502
    retryable = True


def require_fields(payload: dict, *names: str) -> None:
    missing = {}
    for name in names:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing[name] = "required"
    if missing:
        raise ValidationError("Missing required fields", fields=missing)


def _envelope(payload: dict, status: int):
    rid = (get_request_id() or "").strip()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), int(status)


def register_error_handlers(app) -> None:
    """Answer every /api failure with the same JSON envelope."""

    @app.errorhandler(DomainError)
    def _domain_error(error: DomainError):
        db.session.rollback()
        app.logger.info("domain_error code=%s status=%s path=%s", error.code, error.status, request.path)
        return _envelope(error.to_dict(), error.status)

    @app.errorhandler(HTTPException)
    def _http_error(error: HTTPException):
        if not request.path.startswith("/api/"):
            return error
        status = int(error.code or 500)
        return _envelope(
            {"ok": False, "error": error.name, "message": error.description or error.name, "status": status},
            status,
        )

    @app.errorhandler(Exception)
    def _unhandled_error(error: Exception):
        db.session.rollback()
        app.logger.exception("unhandled_exception path=%s", request.path)
        return _envelope(
            {"ok": False, "error": "InternalServerError", "message": "Internal server error", "status": 500},
            500,
        )
