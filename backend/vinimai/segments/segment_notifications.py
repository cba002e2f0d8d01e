from __future__ import annotations

from flask import Blueprint, jsonify, request

from vinimai.services import notification_service
from vinimai.utils.auth_context import require_user

notifications_bp = Blueprint("notifications_bp", __name__, url_prefix="/api")


@notifications_bp.get("/notifications")
def list_notifications():
    user = require_user()
    unread_only = (request.args.get("unread") or "").strip().lower() in ("1", "true", "yes")
    rows = notification_service.list_for_user(user, unread_only=unread_only)
    return (
        jsonify(
            {
                "ok": True,
                "items": [x.to_dict() for x in rows],
                "unread": notification_service.unread_count(user),
            }
        ),
        200,
    )


@notifications_bp.put("/notifications/<int:notification_id>/read")
def mark_notification_read(notification_id: int):
    user = require_user()
    row = notification_service.mark_read(user, notification_id)
    return jsonify({"ok": True, "notification": row.to_dict()}), 200
