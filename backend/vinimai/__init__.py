import os

import sentry_sdk
from flask import Flask, g, jsonify, request
from sqlalchemy import text

from vinimai.cli import register_cli
from vinimai.config import build_config
from vinimai.errors import register_error_handlers
from vinimai.extensions import cors, db, migrate
from vinimai.integrations.payments.factory import payment_health
from vinimai.segments.segment_admin import admin_bp
from vinimai.segments.segment_auth import auth_bp
from vinimai.segments.segment_notifications import notifications_bp
from vinimai.segments.segment_offers import offers_bp
from vinimai.segments.segment_orders import orders_bp
from vinimai.segments.segment_payments import payments_bp
from vinimai.segments.segment_products import products_bp
from vinimai.segments.segment_ratings import ratings_bp
from vinimai.segments.segment_returns import returns_bp
from vinimai.utils.auth_context import current_user
from vinimai.utils.observability import get_request_id, init_sentry, install_request_observers, install_security_headers
from vinimai.utils.rate_limit import check_limit, limiter_stats, limits_active, subject_for, tier_for_request

BLUEPRINTS = (
    auth_bp,
    products_bp,
    offers_bp,
    orders_bp,
    payments_bp,
    returns_bp,
    ratings_bp,
    notifications_bp,
    admin_bp,
)


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))
    os.makedirs(instance_dir, exist_ok=True)
    app.config.update(build_config(instance_dir))
    is_production = app.config["IS_PRODUCTION"]
    if "pool_size" in app.config["SQLALCHEMY_ENGINE_OPTIONS"]:
        opts = app.config["SQLALCHEMY_ENGINE_OPTIONS"]
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s",
            opts["pool_size"],
            opts["max_overflow"],
            opts["pool_timeout"],
        )

    cors.init_app(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}})
    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)
    install_security_headers(app, production=is_production)
    register_error_handlers(app)
    register_cli(app)
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)

    # Production schemas are managed by migrations only.
    if not is_production:
        with app.app_context():
            db.create_all()

    @app.get("/api/health")
    def health():
        payload = {
            "ok": True,
            "service": "vinimai-backend",
            "env": app.config["VINIMAI_ENV"],
            "db": "ok",
            "payments": payment_health(),
            "rate_limit": limiter_stats(),
            "git_sha": os.getenv("GIT_SHA") or "unknown",
        }
        try:
            db.session.execute(text("SELECT 1"))
        except Exception as exc:
            app.logger.warning("health_db_probe_failed err=%s", exc)
            payload.update({"ok": False, "db": "fail", "db_error": str(exc)[:300]})
            return jsonify(payload), 503
        return jsonify(payload), 200

    @app.before_request
    def _reset_db_session():
        db.session.rollback()

    @app.before_request
    def _capture_auth_context():
        user = current_user()
        sentry_sdk.set_user({"id": str(user.id)} if user else None)
        if user is not None:
            sentry_sdk.set_tag("auth_role", g.auth_role)

    @app.before_request
    def _enforce_rate_limits():
        if not limits_active():
            return None
        tier = tier_for_request((request.method or "GET").upper(), request.path or "")
        if tier is None:
            return None
        subject = subject_for(tier, getattr(g, "auth_user_id", None))
        allowed, retry_after = check_limit(subject, tier)
        if allowed:
            return None
        app.logger.warning("rate_limited tier=%s subject=%s", tier.name, subject)
        payload = {
            "ok": False,
            "error": "RATE_LIMITED",
            "message": "Too many requests, please try again later",
            "status": 429,
            "retry_after": retry_after,
        }
        rid = get_request_id()
        if rid:
            payload["trace_id"] = rid
        resp = jsonify(payload)
        resp.status_code = 429
        resp.headers["Retry-After"] = str(retry_after)
        return resp

    @app.teardown_request
    def _cleanup_db_session(exc):
        if exc is not None:
            db.session.rollback()
        db.session.remove()

    return app
