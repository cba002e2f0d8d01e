from __future__ import annotations

from flask import Blueprint, jsonify, request

from vinimai.errors import require_fields
from vinimai.services import order_service
from vinimai.utils.auth_context import require_user

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api/orders")


@orders_bp.post("")
def create_order():
    buyer = require_user()
    data = request.get_json(silent=True) or {}
    require_fields(data, "product_id", "delivery_address")
    order = order_service.create_order(
        buyer,
        data.get("product_id"),
        data.get("delivery_address"),
        final_price=data.get("final_price"),
        seller_id=data.get("seller_id"),
        offer_id=data.get("offer_id"),
    )
    return jsonify({"ok": True, "order": order.to_dict()}), 201


@orders_bp.get("/<int:order_id>")
def get_order(order_id: int):
    actor = require_user()
    order = order_service.get_order_for_actor(actor, order_id)
    history = [t.to_dict() for t in order_service.order_transitions(order)]
    return jsonify({"ok": True, "order": order.to_dict(), "transitions": history}), 200


@orders_bp.get("/buyer/<int:buyer_id>")
def orders_by_buyer(buyer_id: int):
    rows = order_service.list_orders_by_buyer(require_user(), buyer_id)
    return jsonify({"ok": True, "items": [o.to_dict() for o in rows]}), 200


@orders_bp.get("/seller/<int:seller_id>")
def orders_by_seller(seller_id: int):
    rows = order_service.list_orders_by_seller(require_user(), seller_id)
    return jsonify({"ok": True, "items": [o.to_dict() for o in rows]}), 200


@orders_bp.put("/<int:order_id>/status")
def update_status(order_id: int):
    actor = require_user()
    data = request.get_json(silent=True) or {}
    require_fields(data, "status")
    order = order_service.update_order_status(actor, order_id, data.get("status"))
    return jsonify({"ok": True, "order": order.to_dict()}), 200
