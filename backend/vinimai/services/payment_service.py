from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from vinimai.errors import AuthorizationError, ConflictError, NotFoundError, UpstreamError, ValidationError
from vinimai.extensions import db
from vinimai.integrations.common import IntegrationMisconfiguredError
from vinimai.integrations.payments.factory import build_payments_provider, gateway_credentials
from vinimai.models import Order, PaymentAttempt, PaymentConfirmation, User
from vinimai.services import notification_service
from vinimai.services.order_service import OrderStatus, get_order, record_transition
from vinimai.services.return_service import ReturnStatus, get_return, mark_return_processed
from vinimai.utils.fees import format_money, money_major_to_minor, money_minor_to_major, parse_money

logger = logging.getLogger(__name__)

CURRENCY = "INR"


def compute_signature(gateway_order_id: str, payment_id: str, secret: str | None = None) -> str:
    """HMAC-SHA256 hex digest the gateway attaches to a completed checkout."""
    key = secret if secret is not None else gateway_credentials()[1]
    message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(key.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signature_matches(gateway_order_id: str, payment_id: str, signature: str, secret: str | None = None) -> bool:
    expected = compute_signature(gateway_order_id, payment_id, secret)
    return hmac.compare_digest(expected, (signature or "").strip())


def _provider():
    try:
        return build_payments_provider()
    except IntegrationMisconfiguredError as exc:
        logger.error("payments_provider_misconfigured err=%s", exc)
        raise UpstreamError("Payment gateway is not configured", code="GATEWAY_MISCONFIGURED")


def create_payment_order(actor: User, order_id, amount=None) -> dict:
    order = get_order(order_id)
    if actor is None or int(actor.id) != int(order.buyer_id):
        raise AuthorizationError("Only the buyer can pay for this order")
    if order.status != OrderStatus.PLACED:
        raise ConflictError(f"Order is already {order.status}", details={"current_status": order.status})
    total = order.buyer_total
    if amount is not None and parse_money(amount, "amount") != total:
        raise ValidationError(f"amount must be {format_money(total)}", fields={"amount": "mismatch"})

    provider = _provider()
    result = provider.create_order(
        amount_minor=money_major_to_minor(total),
        currency=CURRENCY,
        receipt=f"order_{order.id}",
        notes={"order_id": str(order.id)},
    )
    # The mock gateway hands back the same id for a repeated checkout.
    if PaymentAttempt.query.filter_by(gateway_order_id=result.gateway_order_id[:64]).first() is None:
        db.session.add(
            PaymentAttempt(
                order_id=int(order.id),
                gateway_order_id=result.gateway_order_id[:64],
                amount_minor=int(result.amount),
                currency=result.currency or CURRENCY,
            )
        )
        db.session.commit()
    logger.info("gateway_order_created order_id=%s gateway_order_id=%s amount_minor=%s", order.id, result.gateway_order_id, result.amount)
    return {
        "order_id": int(order.id),
        "gateway_order_id": result.gateway_order_id,
        "amount": int(result.amount),
        "currency": result.currency,
        "key_id": provider.key_id,
    }


def verify_payment(actor: User, order_id, gateway_order_id: str, payment_id: str, signature: str) -> dict:
    missing = {}
    for name, value in (("gateway_order_id", gateway_order_id), ("payment_id", payment_id), ("signature", signature)):
        if not isinstance(value, str) or not value.strip():
            missing[name] = "required"
    if missing:
        raise ValidationError("Missing payment details", fields=missing)
    gateway_order_id = gateway_order_id.strip()
    payment_id = payment_id.strip()

    order = get_order(order_id)
    if actor is None or int(actor.id) != int(order.buyer_id):
        raise AuthorizationError("Only the buyer can verify this payment")

    if not signature_matches(gateway_order_id, payment_id, signature):
        logger.warning("payment_signature_mismatch order_id=%s payment_id=%s", order.id, payment_id)
        return {"success": False, "message": "Payment verification failed", "order": order.to_dict()}

    if PaymentConfirmation.query.filter_by(payment_id=payment_id).first() is not None:
        raise ConflictError("Payment already processed", details={"current_status": order.status})

    attempt = PaymentAttempt.query.filter_by(gateway_order_id=gateway_order_id).first()
    if (
        attempt is None
        or int(attempt.order_id) != int(order.id)
        or int(attempt.amount_minor) != money_major_to_minor(order.buyer_total)
    ):
        logger.warning("payment_gateway_order_mismatch order_id=%s gateway_order_id=%s", order.id, gateway_order_id)
        raise ConflictError(
            "Payment does not match a checkout issued for this order",
            code="PAYMENT_ORDER_MISMATCH",
            details={"current_status": order.status},
        )

    previous = order.status
    confirmation = PaymentConfirmation(
        order_id=int(order.id),
        gateway_order_id=gateway_order_id[:64],
        payment_id=payment_id[:64],
        amount=order.buyer_total,
    )
    try:
        db.session.add(confirmation)
        res = db.session.execute(
            sa.update(Order)
            .where(Order.id == int(order.id), Order.status == OrderStatus.PLACED)
            .values(status=OrderStatus.CONFIRMED, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if int(res.rowcount or 0) != 1:
            db.session.rollback()
            db.session.refresh(order)
            raise ConflictError(f"Order is already {order.status}", details={"current_status": order.status})
        record_transition(order, previous, OrderStatus.CONFIRMED, actor_user_id=int(actor.id), reason=f"payment:{payment_id}"[:240])
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        db.session.refresh(order)
        raise ConflictError("Payment already processed", details={"current_status": order.status})
    db.session.refresh(order)
    logger.info("payment_verified order_id=%s payment_id=%s", order.id, payment_id)

    notification_service.notify(
        order.buyer_id,
        "Payment Successful",
        f"Payment for order #{order.id} was received. Your order is confirmed.",
        "payment_confirmed",
    )
    notification_service.notify(
        order.seller_id,
        "Payment Received",
        f"Order #{order.id} has been paid. Please prepare it for pickup.",
        "payment_confirmed",
    )
    return {"success": True, "order": order.to_dict(), "payment": confirmation.to_dict()}


def refund_payment(actor: User, payment_id: str, amount=None, reason: str | None = None, return_id=None) -> dict:
    if actor is None or not actor.is_admin:
        raise AuthorizationError("Admin access required")
    pid = (payment_id or "").strip() if isinstance(payment_id, str) else ""
    if not pid:
        raise ValidationError("payment_id is required", fields={"payment_id": "required"})
    confirmation = PaymentConfirmation.query.filter_by(payment_id=pid).first()
    if confirmation is None:
        raise NotFoundError("Payment not found")

    ret = None
    if return_id is not None:
        ret = get_return(return_id)
        if int(ret.order_id) != int(confirmation.order_id):
            raise ValidationError("Return does not belong to this payment's order", fields={"return_id": "mismatch"})
        if ret.status != ReturnStatus.APPROVED:
            raise ConflictError(f"Return is {ret.status}, not approved", details={"current_status": ret.status})

    if amount is not None:
        refund_major = parse_money(amount, "amount")
    elif ret is not None:
        refund_major = parse_money(ret.refund_amount, "amount")
    else:
        refund_major = parse_money(confirmation.amount, "amount")
    if refund_major > confirmation.amount:
        raise ValidationError("Refund exceeds the amount paid", fields={"amount": "too_large"})

    notes = {
        "reason": (reason or "").strip() or "Refund requested",
        "order_id": str(confirmation.order_id),
    }
    result = _provider().refund(payment_id=pid, amount_minor=money_major_to_minor(refund_major), notes=notes)
    logger.info("refund_issued payment_id=%s refund_id=%s amount_minor=%s", pid, result.refund_id, result.amount)

    if ret is not None:
        try:
            mark_return_processed(ret, result.refund_id)
            db.session.commit()
        except ConflictError:
            # Money has left the gateway without a local record.
            logger.error(
                "refund_unrecorded payment_id=%s refund_id=%s return_id=%s amount_minor=%s",
                pid,
                result.refund_id,
                ret.id,
                result.amount,
            )
            raise
        db.session.refresh(ret)
        notification_service.notify(
            ret.requested_by,
            "Refund Processed",
            f"A refund of Rs.{format_money(money_minor_to_major(result.amount))} for order #{ret.order_id} has been issued.",
            "refund_processed",
        )

    return {
        "refund_id": result.refund_id,
        "status": result.status,
        "amount": format_money(money_minor_to_major(result.amount)),
        "return": ret.to_dict() if ret is not None else None,
    }
