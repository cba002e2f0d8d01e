from __future__ import annotations

import re

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from vinimai.errors import AuthenticationRequired, AuthorizationError, ValidationError, require_fields
from vinimai.extensions import db
from vinimai.models import User
from vinimai.utils.auth_context import require_user
from vinimai.utils.jwt_utils import create_token
from vinimai.utils.otp_cache import consume_otp, issue_otp, otp_ttl_seconds

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")

_MOBILE_RE = re.compile(r"^\+?\d{10,15}$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")
_SPECIAL_RE = re.compile(r"[^A-Za-z0-9]")

SELF_SERVICE_ROLES = ("buyer", "seller")


def _normalize_mobile(raw) -> str:
    value = re.sub(r"[\s-]", "", str(raw or ""))
    if not _MOBILE_RE.match(value):
        raise ValidationError("Enter a valid mobile number", fields={"mobile": "invalid"})
    return value


def password_problems(password: str) -> list[str]:
    problems = []
    if len(password or "") < 8:
        problems.append("at least 8 characters")
    if not re.search(r"[A-Z]", password or ""):
        problems.append("an uppercase letter")
    if not re.search(r"[a-z]", password or ""):
        problems.append("a lowercase letter")
    if not re.search(r"\d", password or ""):
        problems.append("a digit")
    if not _SPECIAL_RE.search(password or ""):
        problems.append("a special character")
    return problems


def _auth_payload(user: User, status: int = 200):
    token = create_token(int(user.id), role=user.role)
    return jsonify({"ok": True, "token": token, "user": user.to_dict()}), status


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    require_fields(data, "username", "mobile", "password")

    username = str(data.get("username") or "").strip()
    if not _USERNAME_RE.match(username):
        raise ValidationError("Username must be 3-64 letters, digits, dots, dashes or underscores", fields={"username": "invalid"})
    mobile = _normalize_mobile(data.get("mobile"))
    email = str(data.get("email") or "").strip().lower() or None
    if email and "@" not in email:
        raise ValidationError("Enter a valid email address", fields={"email": "invalid"})

    role = str(data.get("role") or "buyer").strip().lower()
    if role == "admin":
        raise AuthorizationError("Admin accounts cannot be self-registered")
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("role must be buyer or seller", fields={"role": "invalid"})

    password = str(data.get("password") or "")
    problems = password_problems(password)
    if problems:
        raise ValidationError("Password must contain " + ", ".join(problems), fields={"password": "weak"})

    if User.query.filter_by(mobile=mobile).first() is not None:
        raise ValidationError("Mobile number already registered", fields={"mobile": "taken"})
    if User.query.filter_by(username=username).first() is not None:
        raise ValidationError("Username already taken", fields={"username": "taken"})

    user = User(username=username, mobile=mobile, email=email, role=role, is_verified=False)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("Mobile number or username already registered", fields={"mobile": "taken"})
    current_app.logger.info("user_registered user_id=%s role=%s", user.id, role)
    return _auth_payload(user, 201)


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    require_fields(data, "mobile", "password")
    mobile = re.sub(r"[\s-]", "", str(data.get("mobile") or ""))
    user = User.query.filter_by(mobile=mobile).first()
    if user is None or not user.check_password(str(data.get("password") or "")):
        current_app.logger.info("login_failed mobile_suffix=%s", mobile[-4:])
        raise AuthenticationRequired("Invalid mobile number or password", code="INVALID_CREDENTIALS")
    return _auth_payload(user)


@auth_bp.post("/send-otp")
def send_otp():
    data = request.get_json(silent=True) or {}
    require_fields(data, "mobile")
    mobile = _normalize_mobile(data.get("mobile"))
    code = issue_otp(mobile)
    current_app.logger.info("otp_issued mobile_suffix=%s", mobile[-4:])
    out = {"ok": True, "message": "OTP sent", "expires_in": otp_ttl_seconds()}
    if not current_app.config.get("IS_PRODUCTION"):
        out["otp"] = code
    return jsonify(out), 200


@auth_bp.post("/verify-otp")
def verify_otp():
    data = request.get_json(silent=True) or {}
    require_fields(data, "mobile", "otp")
    mobile = _normalize_mobile(data.get("mobile"))
    if not consume_otp(mobile, str(data.get("otp") or "")):
        raise ValidationError("Invalid or expired OTP", fields={"otp": "invalid"})
    user = User.query.filter_by(mobile=mobile).first()
    if user is not None and not user.is_verified:
        user.is_verified = True
        db.session.add(user)
        db.session.commit()
    return jsonify({"ok": True, "verified": True, "user": user.to_dict() if user else None}), 200


@auth_bp.get("/me")
def me():
    user = require_user()
    return jsonify({"ok": True, "user": user.to_dict()}), 200
