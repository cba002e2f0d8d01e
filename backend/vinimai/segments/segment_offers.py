from __future__ import annotations

from flask import Blueprint, jsonify, request

from vinimai.errors import require_fields
from vinimai.services import offer_service
from vinimai.utils.auth_context import require_user

offers_bp = Blueprint("offers_bp", __name__, url_prefix="/api/offers")


def _offer_response(offer, status: int = 200):
    return jsonify({"ok": True, "offer": offer.to_dict()}), status


@offers_bp.post("")
def create_offer():
    buyer = require_user()
    data = request.get_json(silent=True) or {}
    require_fields(data, "product_id", "amount")
    offer = offer_service.create_offer(buyer, data.get("product_id"), data.get("amount"), data.get("message"))
    return _offer_response(offer, 201)


@offers_bp.get("/buyer/<int:buyer_id>")
def offers_by_buyer(buyer_id: int):
    actor = require_user()
    rows = offer_service.list_offers_by_buyer(actor, buyer_id)
    return jsonify({"ok": True, "items": [o.to_dict() for o in rows]}), 200


@offers_bp.get("/seller/<int:seller_id>")
def offers_by_seller(seller_id: int):
    actor = require_user()
    rows = offer_service.list_offers_by_seller(actor, seller_id)
    return jsonify({"ok": True, "items": [o.to_dict() for o in rows]}), 200


@offers_bp.get("/product/<int:product_id>")
def offers_by_product(product_id: int):
    rows = offer_service.list_offers_by_product(product_id)
    return jsonify({"ok": True, "items": [o.to_dict() for o in rows]}), 200


@offers_bp.put("/<int:offer_id>/accept")
def accept_offer(offer_id: int):
    return _offer_response(offer_service.accept_offer(require_user(), offer_id))


@offers_bp.put("/<int:offer_id>/reject")
def reject_offer(offer_id: int):
    return _offer_response(offer_service.reject_offer(require_user(), offer_id))


@offers_bp.put("/<int:offer_id>/counter")
def counter_offer(offer_id: int):
    actor = require_user()
    data = request.get_json(silent=True) or {}
    require_fields(data, "counter_amount")
    offer = offer_service.counter_offer(actor, offer_id, data.get("counter_amount"), data.get("message"))
    return _offer_response(offer)


@offers_bp.put("/<int:offer_id>/counter/accept")
def accept_counter(offer_id: int):
    return _offer_response(offer_service.respond_to_counter(require_user(), offer_id, True))


@offers_bp.put("/<int:offer_id>/counter/reject")
def reject_counter(offer_id: int):
    return _offer_response(offer_service.respond_to_counter(require_user(), offer_id, False))
