from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa

from vinimai.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from vinimai.extensions import db
from vinimai.models import Offer, Product, User
from vinimai.services import notification_service
from vinimai.utils.fees import format_money, parse_money

logger = logging.getLogger(__name__)


class OfferStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"

    TERMINAL = {ACCEPTED, REJECTED}
    # One negotiation round: the seller may counter once, the buyer settles it.
    ALLOWED = {
        PENDING: {ACCEPTED, REJECTED, COUNTERED},
        COUNTERED: {ACCEPTED, REJECTED},
        ACCEPTED: set(),
        REJECTED: set(),
    }


def _get_offer(offer_id: int) -> Offer:
    try:
        oid = int(offer_id)
    except (TypeError, ValueError):
        raise NotFoundError("Offer not found")
    offer = db.session.get(Offer, oid)
    if not offer:
        raise NotFoundError("Offer not found")
    return offer


def _product_title(product_id: int) -> str:
    product = db.session.get(Product, int(product_id))
    return product.title if product else "your item"


def agreed_amount(offer: Offer) -> Decimal:
    if offer.status == OfferStatus.ACCEPTED and offer.counter_amount is not None:
        return Decimal(offer.counter_amount)
    return Decimal(offer.amount)


def create_offer(buyer: User, product_id, amount, message: str | None = None) -> Offer:
    if buyer is None:
        raise AuthorizationError("Login required")
    parsed = parse_money(amount, "amount")
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise ValidationError("product_id is required", fields={"product_id": "required"})
    product = db.session.get(Product, pid)
    if not product or not product.is_public:
        raise NotFoundError("Product not found or not available")
    if int(product.seller_id) == int(buyer.id):
        raise ValidationError("You cannot make an offer on your own product", fields={"product_id": "own_product"})

    offer = Offer(
        product_id=int(product.id),
        buyer_id=int(buyer.id),
        seller_id=int(product.seller_id),
        amount=parsed,
        message=(message or "").strip() or None,
        status=OfferStatus.PENDING,
    )
    db.session.add(offer)
    db.session.commit()
    logger.info("offer_created offer_id=%s product_id=%s buyer_id=%s", offer.id, product.id, buyer.id)

    notification_service.notify(
        offer.seller_id,
        "New Offer Received",
        f'You received an offer of Rs.{format_money(parsed)} for "{product.title}"',
        "offer_received",
    )
    return offer


def _transition(offer: Offer, target: str, *, extra: dict | None = None) -> None:
    current = offer.status
    allowed_from = [s for s, targets in OfferStatus.ALLOWED.items() if target in targets]
    if current not in allowed_from:
        raise ConflictError(
            f"Offer is already {current}",
            details={"current_status": current},
        )
    now = datetime.utcnow()
    values = {"status": target, "updated_at": now}
    if target in OfferStatus.TERMINAL:
        values["decided_at"] = now
    values.update(extra or {})
    res = db.session.execute(
        sa.update(Offer)
        .where(Offer.id == int(offer.id), Offer.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if int(res.rowcount or 0) != 1:
        db.session.rollback()
        db.session.refresh(offer)
        raise ConflictError(
            f"Offer is already {offer.status}",
            details={"current_status": offer.status},
        )
    db.session.commit()
    db.session.refresh(offer)


def _require_seller(actor: User, offer: Offer) -> None:
    if actor is None or int(actor.id) != int(offer.seller_id):
        raise AuthorizationError("Only the seller can decide on this offer")


def _require_pending(offer: Offer) -> None:
    if offer.status != OfferStatus.PENDING:
        raise ConflictError(f"Offer is already {offer.status}", details={"current_status": offer.status})


def _require_open_product(offer: Offer) -> None:
    """A product carries at most one accepted offer, and only while it is for sale."""
    product = db.session.get(Product, int(offer.product_id))
    if product is None or not product.is_public:
        raise ConflictError("Product is no longer available", details={"current_status": offer.status})
    rival = (
        Offer.query.filter(
            Offer.product_id == int(offer.product_id),
            Offer.id != int(offer.id),
            Offer.status == OfferStatus.ACCEPTED,
        )
        .with_entities(Offer.id)
        .first()
    )
    if rival is not None:
        raise ConflictError(
            "Another offer on this product has already been accepted",
            details={"current_status": offer.status, "accepted_offer_id": int(rival.id)},
        )


def accept_offer(actor: User, offer_id: int) -> Offer:
    offer = _get_offer(offer_id)
    _require_seller(actor, offer)
    _require_pending(offer)
    _require_open_product(offer)
    _transition(offer, OfferStatus.ACCEPTED)
    logger.info("offer_accepted offer_id=%s", offer.id)

    notification_service.notify(
        offer.buyer_id,
        "Offer Accepted",
        f'Your offer of Rs.{format_money(offer.amount)} for "{_product_title(offer.product_id)}" was accepted! Please proceed with payment.',
        "offer_accepted",
    )
    return offer


def reject_offer(actor: User, offer_id: int) -> Offer:
    offer = _get_offer(offer_id)
    _require_seller(actor, offer)
    _require_pending(offer)
    _transition(offer, OfferStatus.REJECTED)
    logger.info("offer_rejected offer_id=%s", offer.id)

    notification_service.notify(
        offer.buyer_id,
        "Offer Rejected",
        f'Your offer of Rs.{format_money(offer.amount)} for "{_product_title(offer.product_id)}" was declined.',
        "offer_rejected",
    )
    return offer


def counter_offer(actor: User, offer_id: int, counter_amount, message: str | None = None) -> Offer:
    offer = _get_offer(offer_id)
    _require_seller(actor, offer)
    parsed = parse_money(counter_amount, "counter_amount")
    _require_pending(offer)
    _transition(
        offer,
        OfferStatus.COUNTERED,
        extra={"counter_amount": parsed, "counter_message": (message or "").strip() or None},
    )
    logger.info("offer_countered offer_id=%s", offer.id)

    notification_service.notify(
        offer.buyer_id,
        "Counter Offer Received",
        f'The seller countered with Rs.{format_money(parsed)} for "{_product_title(offer.product_id)}".',
        "offer_countered",
    )
    return offer


def respond_to_counter(actor: User, offer_id: int, accept: bool) -> Offer:
    offer = _get_offer(offer_id)
    if actor is None or int(actor.id) != int(offer.buyer_id):
        raise AuthorizationError("Only the buyer can respond to a counter offer")
    if offer.status != OfferStatus.COUNTERED:
        raise ConflictError(f"Offer is {offer.status}, not countered", details={"current_status": offer.status})
    if accept:
        _require_open_product(offer)
    target = OfferStatus.ACCEPTED if accept else OfferStatus.REJECTED
    _transition(offer, target)
    logger.info("offer_counter_%s offer_id=%s", "accepted" if accept else "rejected", offer.id)

    title = _product_title(offer.product_id)
    if accept:
        notification_service.notify(
            offer.seller_id,
            "Counter Offer Accepted",
            f'The buyer accepted your counter of Rs.{format_money(offer.counter_amount)} for "{title}".',
            "offer_counter_accepted",
        )
    else:
        notification_service.notify(
            offer.seller_id,
            "Counter Offer Declined",
            f'The buyer declined your counter offer for "{title}".',
            "offer_counter_rejected",
        )
    return offer


def _check_party_listing(actor: User, user_id: int) -> None:
    if actor is None or not (actor.is_admin or int(actor.id) == int(user_id)):
        raise AuthorizationError("You can only view your own offers")


def list_offers_by_buyer(actor: User, buyer_id: int) -> list[Offer]:
    _check_party_listing(actor, buyer_id)
    return Offer.query.filter_by(buyer_id=int(buyer_id)).order_by(Offer.created_at.desc(), Offer.id.desc()).all()


def list_offers_by_seller(actor: User, seller_id: int) -> list[Offer]:
    _check_party_listing(actor, seller_id)
    return Offer.query.filter_by(seller_id=int(seller_id)).order_by(Offer.created_at.desc(), Offer.id.desc()).all()


def list_offers_by_product(product_id: int) -> list[Offer]:
    return Offer.query.filter_by(product_id=int(product_id)).order_by(Offer.created_at.desc(), Offer.id.desc()).all()
