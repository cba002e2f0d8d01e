from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError

from vinimai.errors import AuthorizationError, ConflictError, ValidationError
from vinimai.extensions import db
from vinimai.models import Rating, User
from vinimai.services import notification_service
from vinimai.services.order_service import OrderStatus, get_order

logger = logging.getLogger(__name__)


def _parse_score(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("rating must be an integer from 1 to 5", fields={"rating": "invalid"})
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise ValidationError("rating must be an integer from 1 to 5", fields={"rating": "invalid"})
    if isinstance(value, float) and value != score:
        raise ValidationError("rating must be an integer from 1 to 5", fields={"rating": "invalid"})
    if score < 1 or score > 5:
        raise ValidationError("rating must be an integer from 1 to 5", fields={"rating": "out_of_range"})
    return score


def create_rating(rater: User, order_id, rating, comment: str | None = None) -> Rating:
    score = _parse_score(rating)
    order = get_order(order_id)
    if rater is None or int(rater.id) not in (int(order.buyer_id), int(order.seller_id)):
        raise AuthorizationError("Only the buyer or seller of this order can rate it")
    if order.status != OrderStatus.DELIVERED:
        raise ConflictError("Orders can be rated once delivered", details={"current_status": order.status})
    rated_id = int(order.seller_id) if int(rater.id) == int(order.buyer_id) else int(order.buyer_id)

    if Rating.query.filter_by(order_id=int(order.id), rater_id=int(rater.id)).first() is not None:
        raise ConflictError("You have already rated this order")

    row = Rating(
        order_id=int(order.id),
        rater_id=int(rater.id),
        rated_id=rated_id,
        rating=score,
        comment=(comment or "").strip() or None,
    )
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("You have already rated this order")
    logger.info("rating_created order_id=%s rater_id=%s rated_id=%s", order.id, rater.id, rated_id)

    notification_service.notify(
        rated_id,
        "New Rating",
        f"You received a {score}-star rating for order #{order.id}.",
        "rating_received",
    )
    return row


def list_ratings_for_user(user_id) -> dict:
    uid = int(user_id)
    rows = Rating.query.filter_by(rated_id=uid).order_by(Rating.created_at.desc(), Rating.id.desc()).all()
    average = None
    if rows:
        avg = Decimal(sum(int(r.rating) for r in rows)) / Decimal(len(rows))
        average = str(avg.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    return {
        "user_id": uid,
        "count": len(rows),
        "average": average,
        "ratings": [r.to_dict() for r in rows],
    }


def list_ratings_for_order(order_id) -> list[Rating]:
    return Rating.query.filter_by(order_id=int(order_id)).order_by(Rating.id.asc()).all()
