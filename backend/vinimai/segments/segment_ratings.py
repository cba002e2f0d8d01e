from __future__ import annotations

from flask import Blueprint, jsonify, request

from vinimai.errors import require_fields
from vinimai.services import rating_service
from vinimai.utils.auth_context import require_user

ratings_bp = Blueprint("ratings_bp", __name__, url_prefix="/api/ratings")


@ratings_bp.post("")
def create_rating():
    rater = require_user()
    data = request.get_json(silent=True) or {}
    require_fields(data, "order_id", "rating")
    row = rating_service.create_rating(rater, data.get("order_id"), data.get("rating"), data.get("comment"))
    return jsonify({"ok": True, "rating": row.to_dict()}), 201


@ratings_bp.get("/user/<int:user_id>")
def ratings_for_user(user_id: int):
    return jsonify({"ok": True, **rating_service.list_ratings_for_user(user_id)}), 200


@ratings_bp.get("/order/<int:order_id>")
def ratings_for_order(order_id: int):
    rows = rating_service.list_ratings_for_order(order_id)
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200
