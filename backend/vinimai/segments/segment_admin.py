from __future__ import annotations

from flask import Blueprint, jsonify, request

from vinimai.errors import require_fields
from vinimai.services import moderation_service, order_service, return_service
from vinimai.utils.auth_context import require_role

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/admin")


def _body() -> dict:
    return request.get_json(silent=True) or {}


@admin_bp.get("/products/pending")
def pending_products():
    admin = require_role("admin")
    rows = moderation_service.list_pending_products(admin)
    return jsonify({"ok": True, "items": [p.to_dict(include_moderation=True) for p in rows]}), 200


@admin_bp.put("/products/<int:product_id>/approve")
def approve_product(product_id: int):
    product = moderation_service.approve_product(require_role("admin"), product_id)
    return jsonify({"ok": True, "product": product.to_dict(include_moderation=True)}), 200


@admin_bp.put("/products/<int:product_id>/reject")
def reject_product(product_id: int):
    admin = require_role("admin")
    product = moderation_service.reject_product(admin, product_id, _body().get("reason"))
    return jsonify({"ok": True, "product": product.to_dict(include_moderation=True)}), 200


@admin_bp.put("/products/<int:product_id>/request-edit")
def request_edit(product_id: int):
    admin = require_role("admin")
    data = _body()
    require_fields(data, "notes")
    proposed = {k: data[k] for k in ("title", "description", "price", "category", "images") if k in data}
    mod = moderation_service.request_product_edit(admin, product_id, data.get("notes"), proposed)
    return jsonify({"ok": True, "modification": mod.to_dict()}), 201


@admin_bp.put("/products/<int:product_id>/delist")
def delist_product(product_id: int):
    admin = require_role("admin")
    product = moderation_service.delist_product(admin, product_id, _body().get("reason"))
    return jsonify({"ok": True, "product": product.to_dict(include_moderation=True)}), 200


@admin_bp.delete("/products/<int:product_id>")
def delete_product(product_id: int):
    admin = require_role("admin")
    snapshot = moderation_service.delete_product(admin, product_id, _body().get("reason"))
    return jsonify({"ok": True, "deleted": snapshot}), 200


@admin_bp.get("/orders")
def all_orders():
    admin = require_role("admin")
    rows = order_service.list_all_orders(admin, status=request.args.get("status"))
    return jsonify({"ok": True, "items": [o.to_dict() for o in rows]}), 200


@admin_bp.get("/returns")
def all_returns():
    admin = require_role("admin")
    rows = return_service.list_all_returns(admin, status=request.args.get("status"))
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@admin_bp.put("/returns/<int:return_id>/approve")
def approve_return(return_id: int):
    admin = require_role("admin")
    row = return_service.decide_return(admin, return_id, True, _body().get("note"))
    return jsonify({"ok": True, "return": row.to_dict()}), 200


@admin_bp.put("/returns/<int:return_id>/reject")
def reject_return(return_id: int):
    admin = require_role("admin")
    row = return_service.decide_return(admin, return_id, False, _body().get("note"))
    return jsonify({"ok": True, "return": row.to_dict()}), 200


@admin_bp.get("/analytics")
def analytics():
    admin = require_role("admin")
    return jsonify({"ok": True, **order_service.admin_analytics(admin)}), 200
