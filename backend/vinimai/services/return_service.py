from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

import sqlalchemy as sa
from flask import current_app

from vinimai.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from vinimai.extensions import db
from vinimai.models import RETURN_TYPES, Order, ReturnRequest, User
from vinimai.services import notification_service
from vinimai.services.order_service import OrderStatus, get_order, is_party
from vinimai.utils.fees import format_money, quantize_money

logger = logging.getLogger(__name__)


class ReturnStatus:
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"

    OPEN = (REQUESTED, APPROVED)


def _window_days() -> int:
    return int(current_app.config.get("RETURN_WINDOW_DAYS", 2))


def _on_spot_minutes() -> int:
    return int(current_app.config.get("RETURN_ON_SPOT_MINUTES", 60))


def _return_fee() -> Decimal:
    return max(Decimal(str(current_app.config.get("RETURN_FEE_AMOUNT", "100.00"))), Decimal("0"))


def refund_amount_for(order: Order, *, is_faulty: bool) -> Decimal:
    total = Decimal(order.buyer_total)
    if is_faulty:
        return quantize_money(total)
    return quantize_money(max(total - _return_fee(), Decimal("0")))


def _check_window(order: Order, return_type: str, now: datetime) -> None:
    if return_type == "on_spot":
        if order.status == OrderStatus.OUT_FOR_DELIVERY:
            return
        if order.status != OrderStatus.DELIVERED:
            raise ConflictError("On-spot returns are only possible at delivery", details={"current_status": order.status})
        delivered_at = order.delivered_at or order.updated_at
        if delivered_at and now - delivered_at > timedelta(minutes=_on_spot_minutes()):
            raise ValidationError("The on-spot return window has passed", fields={"return_type": "window_closed"})
        return

    if order.status != OrderStatus.DELIVERED:
        raise ConflictError("Returns are only possible after delivery", details={"current_status": order.status})
    delivered_at = order.delivered_at or order.updated_at
    if delivered_at and now - delivered_at > timedelta(days=_window_days()):
        raise ValidationError(
            f"Returns must be requested within {_window_days()} days of delivery",
            fields={"order_id": "window_closed"},
        )


def request_return(buyer: User, order_id, reason: str, return_type: str, is_faulty: bool = False) -> ReturnRequest:
    clean_reason = (reason or "").strip() if isinstance(reason, str) else ""
    kind = (return_type or "").strip().lower()
    errors = {}
    if not clean_reason:
        errors["reason"] = "required"
    if kind not in RETURN_TYPES:
        errors["return_type"] = "invalid"
    if errors:
        raise ValidationError("Invalid return request", fields=errors)

    order = get_order(order_id)
    if buyer is None or int(buyer.id) != int(order.buyer_id):
        raise AuthorizationError("Only the buyer can request a return")

    _check_window(order, kind, datetime.utcnow())

    existing = ReturnRequest.query.filter(
        ReturnRequest.order_id == int(order.id),
        ReturnRequest.status.in_(ReturnStatus.OPEN),
    ).first()
    if existing is not None:
        raise ConflictError("A return is already open for this order", details={"return_id": int(existing.id), "current_status": existing.status})

    faulty = bool(is_faulty)
    row = ReturnRequest(
        order_id=int(order.id),
        requested_by=int(buyer.id),
        reason=clean_reason,
        return_type=kind,
        is_faulty=faulty,
        status=ReturnStatus.REQUESTED,
        refund_amount=refund_amount_for(order, is_faulty=faulty),
    )
    db.session.add(row)
    db.session.commit()
    logger.info("return_requested return_id=%s order_id=%s type=%s faulty=%s", row.id, order.id, kind, faulty)

    notification_service.notify_role(
        "admin",
        "Return Requested",
        f"Order #{order.id}: {clean_reason} (refund Rs.{format_money(row.refund_amount)})",
        "return_request",
    )
    notification_service.notify(
        order.seller_id,
        "Return Requested",
        f"The buyer requested a return for order #{order.id}.",
        "return_request",
    )
    return row


def get_return(return_id) -> ReturnRequest:
    try:
        rid = int(return_id)
    except (TypeError, ValueError):
        raise NotFoundError("Return not found")
    row = db.session.get(ReturnRequest, rid)
    if not row:
        raise NotFoundError("Return not found")
    return row


def decide_return(admin: User, return_id, approve: bool, note: str | None = None) -> ReturnRequest:
    if admin is None or not admin.is_admin:
        raise AuthorizationError("Admin access required")
    row = get_return(return_id)
    target = ReturnStatus.APPROVED if approve else ReturnStatus.REJECTED
    now = datetime.utcnow()
    res = db.session.execute(
        sa.update(ReturnRequest)
        .where(ReturnRequest.id == int(row.id), ReturnRequest.status == ReturnStatus.REQUESTED)
        .values(status=target, decided_at=now, decision_note=(note or "").strip() or None)
        .execution_options(synchronize_session=False)
    )
    if int(res.rowcount or 0) != 1:
        db.session.rollback()
        db.session.refresh(row)
        raise ConflictError(f"Return is already {row.status}", details={"current_status": row.status})
    db.session.commit()
    db.session.refresh(row)
    logger.info("return_decided return_id=%s status=%s admin_id=%s", row.id, target, admin.id)

    if approve:
        message = f"Your return for order #{row.order_id} was approved. A refund of Rs.{format_money(row.refund_amount)} will be processed."
    else:
        message = f"Your return for order #{row.order_id} was rejected."
        if row.decision_note:
            message += f" Reason: {row.decision_note}"
    notification_service.notify(
        row.requested_by,
        "Return Approved" if approve else "Return Rejected",
        message,
        "return_approved" if approve else "return_rejected",
    )
    return row


def mark_return_processed(row: ReturnRequest, refund_id: str) -> ReturnRequest:
    """Record a completed gateway refund. The caller commits."""
    res = db.session.execute(
        sa.update(ReturnRequest)
        .where(ReturnRequest.id == int(row.id), ReturnRequest.status == ReturnStatus.APPROVED)
        .values(status=ReturnStatus.PROCESSED, refund_id=(refund_id or "")[:64], processed_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if int(res.rowcount or 0) != 1:
        db.session.rollback()
        db.session.refresh(row)
        raise ConflictError(f"Return is {row.status}, not approved", details={"current_status": row.status})
    return row


def list_returns_for_order(actor: User, order_id) -> list[ReturnRequest]:
    order = get_order(order_id)
    if not (actor.is_admin or is_party(actor, order)):
        raise AuthorizationError("You are not a party to this order")
    return ReturnRequest.query.filter_by(order_id=int(order.id)).order_by(ReturnRequest.requested_at.desc(), ReturnRequest.id.desc()).all()


def list_all_returns(admin: User, *, status: str | None = None) -> list[ReturnRequest]:
    if not admin.is_admin:
        raise AuthorizationError("Admin access required")
    q = ReturnRequest.query
    if status:
        q = q.filter(ReturnRequest.status == status.strip().lower())
    return q.order_by(ReturnRequest.requested_at.desc(), ReturnRequest.id.desc()).all()
