from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa

from vinimai.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from vinimai.extensions import db
from vinimai.models import Offer, Order, OrderTransition, Product, User
from vinimai.services import notification_service
from vinimai.services.offer_service import OfferStatus, agreed_amount
from vinimai.utils.fees import compute_fees, format_money, parse_money

logger = logging.getLogger(__name__)


class OrderStatus:
    PLACED = "placed"
    CONFIRMED = "confirmed"
    PICKED_UP = "picked_up"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"

    FLOW = (PLACED, CONFIRMED, PICKED_UP, OUT_FOR_DELIVERY, DELIVERED)
    # Targets reachable through a manual status update. Confirmation only
    # happens through payment verification.
    MANUAL_TARGETS = (PICKED_UP, OUT_FOR_DELIVERY, DELIVERED)
    LABELS = {
        PLACED: "placed",
        CONFIRMED: "confirmed",
        PICKED_UP: "picked up",
        OUT_FOR_DELIVERY: "out for delivery",
        DELIVERED: "delivered",
    }

    @classmethod
    def rank(cls, status: str) -> int:
        try:
            return cls.FLOW.index(status)
        except ValueError:
            return -1


def get_order(order_id) -> Order:
    try:
        oid = int(order_id)
    except (TypeError, ValueError):
        raise NotFoundError("Order not found")
    order = db.session.get(Order, oid)
    if not order:
        raise NotFoundError("Order not found")
    return order


def is_party(actor: User, order: Order) -> bool:
    return actor is not None and int(actor.id) in (int(order.buyer_id), int(order.seller_id))


def record_transition(order: Order, from_status: str, to_status: str, *, actor_user_id: int | None, reason: str = "") -> OrderTransition:
    row = OrderTransition(
        order_id=int(order.id),
        from_status=from_status or "",
        to_status=to_status,
        actor_user_id=actor_user_id,
        reason=(reason or "")[:240],
        created_at=datetime.utcnow(),
    )
    db.session.add(row)
    return row


def create_order(
    buyer: User,
    product_id,
    delivery_address: str,
    *,
    final_price=None,
    seller_id=None,
    offer_id=None,
) -> Order:
    if buyer is None:
        raise AuthorizationError("Login required")
    address = (delivery_address or "").strip() if isinstance(delivery_address, str) else ""
    if not address:
        raise ValidationError("Delivery address is required", fields={"delivery_address": "required"})
    client_price = parse_money(final_price, "final_price") if final_price is not None else None

    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise ValidationError("product_id is required", fields={"product_id": "required"})
    product = db.session.get(Product, pid)
    if not product:
        raise NotFoundError("Product not found")
    if seller_id is not None:
        try:
            claimed_seller = int(seller_id)
        except (TypeError, ValueError):
            claimed_seller = None
        if claimed_seller != int(product.seller_id):
            raise ValidationError("seller_id does not match the product", fields={"seller_id": "mismatch"})
    if int(product.seller_id) == int(buyer.id):
        raise ValidationError("You cannot buy your own product", fields={"product_id": "own_product"})

    offer = None
    if offer_id is not None:
        try:
            offer = db.session.get(Offer, int(offer_id))
        except (TypeError, ValueError):
            offer = None
        if not offer or int(offer.buyer_id) != int(buyer.id) or int(offer.product_id) != int(product.id):
            raise ValidationError("Offer does not belong to this buyer and product", fields={"offer_id": "invalid"})
        if offer.status != OfferStatus.ACCEPTED:
            raise ConflictError("Offer has not been accepted", details={"current_status": offer.status})
        price = agreed_amount(offer)
    else:
        price = Decimal(product.price)

    if client_price is not None and client_price != price:
        raise ValidationError(
            f"final_price must be {format_money(price)}",
            fields={"final_price": "mismatch"},
        )

    fees = compute_fees(price)

    res = db.session.execute(
        sa.update(Product)
        .where(
            Product.id == int(product.id),
            Product.status == "approved",
            Product.is_available.is_(True),
        )
        .values(is_available=False, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if int(res.rowcount or 0) != 1:
        db.session.rollback()
        raise ConflictError("Product is no longer available", details={"product_id": int(product.id)})

    order = Order(
        buyer_id=int(buyer.id),
        seller_id=int(product.seller_id),
        product_id=int(product.id),
        offer_id=int(offer.id) if offer else None,
        final_price=fees.amount,
        buyer_fee=fees.buyer_fee,
        seller_fee=fees.seller_fee,
        platform_fee=fees.platform_fee,
        status=OrderStatus.PLACED,
        delivery_address=address,
    )
    db.session.add(order)
    db.session.flush()
    record_transition(order, "", OrderStatus.PLACED, actor_user_id=int(buyer.id), reason="order_placed")

    open_offers = Offer.query.filter(
        Offer.product_id == int(product.id),
        Offer.status.in_((OfferStatus.PENDING, OfferStatus.COUNTERED, OfferStatus.ACCEPTED)),
    )
    if offer is not None:
        open_offers = open_offers.filter(Offer.id != int(offer.id))
    losing_buyers = sorted({int(o.buyer_id) for o in open_offers.all() if int(o.buyer_id) != int(buyer.id)})
    now = datetime.utcnow()
    open_offers.update(
        {"status": OfferStatus.REJECTED, "decided_at": now, "updated_at": now},
        synchronize_session=False,
    )
    db.session.commit()
    logger.info(
        "order_placed order_id=%s product_id=%s buyer_id=%s final_price=%s",
        order.id,
        product.id,
        buyer.id,
        format_money(order.final_price),
    )

    notification_service.notify(
        order.seller_id,
        "New Order",
        f'"{product.title}" was ordered for Rs.{format_money(order.final_price)}.',
        "order_received",
    )
    for uid in losing_buyers:
        notification_service.notify(
            uid,
            "Offer Rejected",
            f'"{product.title}" has been sold to another buyer.',
            "offer_rejected",
        )
    return order


def update_order_status(actor: User, order_id, status: str) -> Order:
    target = (status or "").strip().lower()
    if target not in OrderStatus.MANUAL_TARGETS:
        raise ValidationError(
            f"status must be one of: {', '.join(OrderStatus.MANUAL_TARGETS)}",
            fields={"status": "invalid"},
        )
    order = get_order(order_id)
    if actor is None or not (actor.is_admin or int(actor.id) == int(order.seller_id)):
        raise AuthorizationError("Only the seller or an admin can update this order")

    current = order.status
    if OrderStatus.rank(current) < OrderStatus.rank(OrderStatus.CONFIRMED):
        raise ConflictError("Order has not been paid yet", details={"current_status": current})
    if OrderStatus.rank(target) <= OrderStatus.rank(current):
        raise ConflictError(f"Order is already {current}", details={"current_status": current})

    now = datetime.utcnow()
    values = {"status": target, "updated_at": now}
    if target == OrderStatus.DELIVERED:
        values["delivered_at"] = now
    res = db.session.execute(
        sa.update(Order)
        .where(Order.id == int(order.id), Order.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if int(res.rowcount or 0) != 1:
        db.session.rollback()
        db.session.refresh(order)
        raise ConflictError(f"Order is already {order.status}", details={"current_status": order.status})
    record_transition(order, current, target, actor_user_id=int(actor.id), reason="status_update")
    db.session.commit()
    db.session.refresh(order)
    logger.info("order_status_updated order_id=%s %s->%s actor_id=%s", order.id, current, target, actor.id)

    notification_service.notify(
        order.buyer_id,
        "Order Status Updated",
        f"Your order #{order.id} is now {OrderStatus.LABELS[target]}.",
        "order_status",
    )
    return order


def get_order_for_actor(actor: User, order_id) -> Order:
    order = get_order(order_id)
    if not (actor.is_admin or is_party(actor, order)):
        raise AuthorizationError("You are not a party to this order")
    return order


def order_transitions(order: Order) -> list[OrderTransition]:
    return OrderTransition.query.filter_by(order_id=int(order.id)).order_by(OrderTransition.id.asc()).all()


def list_orders_by_buyer(actor: User, buyer_id) -> list[Order]:
    if not (actor.is_admin or int(actor.id) == int(buyer_id)):
        raise AuthorizationError("You can only view your own orders")
    return Order.query.filter_by(buyer_id=int(buyer_id)).order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_orders_by_seller(actor: User, seller_id) -> list[Order]:
    if not (actor.is_admin or int(actor.id) == int(seller_id)):
        raise AuthorizationError("You can only view your own orders")
    return Order.query.filter_by(seller_id=int(seller_id)).order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_all_orders(admin: User, *, status: str | None = None) -> list[Order]:
    if not admin.is_admin:
        raise AuthorizationError("Admin access required")
    q = Order.query
    if status:
        q = q.filter(Order.status == status.strip().lower())
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def _sum(column, *criteria) -> Decimal:
    value = db.session.execute(sa.select(sa.func.coalesce(sa.func.sum(column), 0)).where(*criteria)).scalar()
    return Decimal(str(value or 0))


def admin_analytics(admin: User) -> dict:
    if not admin.is_admin:
        raise AuthorizationError("Admin access required")
    paid = Order.status != OrderStatus.PLACED
    total_orders = Order.query.count()
    completed = Order.query.filter(Order.status == OrderStatus.DELIVERED).count()
    return {
        "total_users": User.query.count(),
        "total_products": Product.query.count(),
        "pending_products": Product.query.filter(Product.status == "pending").count(),
        "total_orders": int(total_orders),
        "active_orders": int(total_orders - completed),
        "completed_orders": int(completed),
        "platform_revenue": format_money(_sum(Order.platform_fee, paid)),
        "gross_merchandise_value": format_money(_sum(Order.final_price, paid)),
    }
