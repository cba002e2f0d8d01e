from __future__ import annotations

from flask import Blueprint, jsonify, request

from vinimai.services import moderation_service
from vinimai.utils.auth_context import current_user, require_role, require_user

products_bp = Blueprint("products_bp", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    args = request.args
    rows = moderation_service.list_public_products(
        category=args.get("category"),
        search=args.get("search"),
        limit=args.get("limit", 20),
        offset=args.get("offset", 0),
    )
    return jsonify({"ok": True, "items": [p.to_dict() for p in rows]}), 200


@products_bp.get("/mine")
def my_products():
    seller = require_role("seller")
    rows = moderation_service.list_seller_products(seller)
    return jsonify({"ok": True, "items": [p.to_dict(include_moderation=True) for p in rows]}), 200


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    viewer = current_user()
    product = moderation_service.get_product_for_viewer(product_id, viewer)
    owner_view = viewer is not None and (viewer.is_admin or int(viewer.id) == int(product.seller_id))
    return jsonify({"ok": True, "product": product.to_dict(include_moderation=owner_view)}), 200


@products_bp.post("")
def create_product():
    seller = require_role("seller")
    product = moderation_service.submit_product(seller, request.get_json(silent=True) or {})
    return jsonify({"ok": True, "product": product.to_dict(include_moderation=True)}), 201


@products_bp.post("/<int:product_id>/resubmit")
def resubmit_product(product_id: int):
    seller = require_role("seller")
    product = moderation_service.resubmit_product(seller, product_id, request.get_json(silent=True) or {})
    return jsonify({"ok": True, "product": product.to_dict(include_moderation=True)}), 200


@products_bp.get("/<int:product_id>/modifications")
def product_modifications(product_id: int):
    actor = require_user()
    rows = moderation_service.list_modifications(actor, product_id)
    return jsonify({"ok": True, "items": [m.to_dict() for m in rows]}), 200
