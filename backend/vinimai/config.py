from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation

from vinimai.integrations.payments.factory import configured_provider_name, payment_health

PRODUCTION_ENVS = ("prod", "production")
DEFAULT_SQLITE_NAME = "vinimai.db"


def current_env() -> str:
    return (os.getenv("VINIMAI_ENV") or "dev").strip().lower()


def int_setting(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    return max(minimum, min(maximum, value))


def money_setting(name: str, default: str) -> Decimal:
    raw = (os.getenv(name) or "").strip() or default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        value = Decimal(default)
    return max(value, Decimal("0"))


def check_production_settings() -> None:
    """Refuse to boot a production instance with development secrets."""
    problems = []
    secret = (os.getenv("SECRET_KEY") or "").strip()
    if len(secret) < 16:
        problems.append("SECRET_KEY must be set and at least 16 chars")
    if not (os.getenv("JWT_SECRET") or "").strip():
        problems.append("JWT_SECRET must be set")
    if not (os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
        problems.append("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set")
    if configured_provider_name() == "razorpay" and payment_health()["missing"]:
        problems.append("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be set")
    if problems:
        raise RuntimeError("Unsafe production configuration: " + "; ".join(problems))


def database_url(instance_dir: str) -> str:
    url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not url:
        path = os.path.join(instance_dir, DEFAULT_SQLITE_NAME).replace(os.sep, "/")
        return f"sqlite:///{path}"
    # Hosted Postgres still hands out the legacy scheme.
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def engine_options(url: str) -> dict:
    options = {
        "pool_pre_ping": True,
        "pool_recycle": int_setting("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not url.startswith("sqlite"):
        options["pool_size"] = int_setting("DB_POOL_SIZE", 10, maximum=200)
        options["max_overflow"] = int_setting("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500)
        options["pool_timeout"] = int_setting("DB_POOL_TIMEOUT_SECONDS", 30, maximum=300)
    return options


def cors_origins(is_production: bool) -> list[str]:
    configured = [o.strip() for o in (os.getenv("CORS_ORIGINS") or "").split(",") if o.strip()]
    if configured or is_production:
        return configured
    return ["*"]


def build_config(instance_dir: str) -> dict:
    env = current_env()
    is_production = env in PRODUCTION_ENVS
    if is_production:
        check_production_settings()
    url = database_url(instance_dir)
    return {
        "SECRET_KEY": os.getenv("SECRET_KEY", "dev-secret"),
        "VINIMAI_ENV": env,
        "IS_PRODUCTION": is_production,
        "SQLALCHEMY_DATABASE_URI": url,
        "SQLALCHEMY_ENGINE_OPTIONS": engine_options(url),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "CORS_ORIGINS": cors_origins(is_production),
        "RETURN_WINDOW_DAYS": int_setting("RETURN_WINDOW_DAYS", 2, minimum=0, maximum=365),
        "RETURN_ON_SPOT_MINUTES": int_setting("RETURN_ON_SPOT_MINUTES", 60, minimum=0, maximum=1440),
        "RETURN_FEE_AMOUNT": money_setting("RETURN_FEE_AMOUNT", "100.00"),
    }
