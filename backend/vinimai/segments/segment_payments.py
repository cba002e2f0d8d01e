from __future__ import annotations

from flask import Blueprint, jsonify, request

from vinimai.errors import require_fields
from vinimai.services import payment_service
from vinimai.utils.auth_context import require_role, require_user

payments_bp = Blueprint("payments_bp", __name__, url_prefix="/api/payments")


def _first(data: dict, *names):
    for name in names:
        value = data.get(name)
        if value is not None:
            return value
    return None


@payments_bp.post("/create-order")
def create_payment_order():
    actor = require_user()
    data = request.get_json(silent=True) or {}
    require_fields(data, "order_id")
    out = payment_service.create_payment_order(actor, data.get("order_id"), data.get("amount"))
    return jsonify({"ok": True, **out}), 200


@payments_bp.post("/verify")
def verify_payment():
    actor = require_user()
    data = request.get_json(silent=True) or {}
    require_fields(data, "order_id")
    # Checkout posts the gateway's own field names back unchanged.
    result = payment_service.verify_payment(
        actor,
        data.get("order_id"),
        _first(data, "gateway_order_id", "razorpay_order_id"),
        _first(data, "payment_id", "razorpay_payment_id"),
        _first(data, "signature", "razorpay_signature"),
    )
    return jsonify({"ok": True, **result}), 200


@payments_bp.post("/refund")
def refund_payment():
    admin = require_role("admin")
    data = request.get_json(silent=True) or {}
    require_fields(data, "payment_id")
    out = payment_service.refund_payment(
        admin,
        data.get("payment_id"),
        amount=data.get("amount"),
        reason=data.get("reason"),
        return_id=data.get("return_id"),
    )
    return jsonify({"ok": True, **out}), 200
