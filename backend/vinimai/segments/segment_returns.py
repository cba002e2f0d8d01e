from __future__ import annotations

from flask import Blueprint, jsonify, request

from vinimai.errors import require_fields
from vinimai.services import return_service
from vinimai.utils.auth_context import require_user

returns_bp = Blueprint("returns_bp", __name__, url_prefix="/api/returns")


@returns_bp.post("")
def request_return():
    buyer = require_user()
    data = request.get_json(silent=True) or {}
    require_fields(data, "order_id", "reason", "return_type")
    row = return_service.request_return(
        buyer,
        data.get("order_id"),
        data.get("reason"),
        data.get("return_type"),
        bool(data.get("is_faulty")),
    )
    return jsonify({"ok": True, "return": row.to_dict()}), 201


@returns_bp.get("/order/<int:order_id>")
def returns_for_order(order_id: int):
    rows = return_service.list_returns_for_order(require_user(), order_id)
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200
