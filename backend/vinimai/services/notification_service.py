from __future__ import annotations

import logging
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from vinimai.errors import NotFoundError
from vinimai.extensions import db
from vinimai.models import Notification, User

logger = logging.getLogger(__name__)

INBOX_LIMIT = 100


def _store(row: Notification) -> Notification | None:
    try:
        db.session.add(row)
        db.session.commit()
        return row
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning(
            "notification_write_failed type=%s user_id=%s role=%s err=%s",
            row.type,
            row.user_id,
            row.audience_role,
            exc,
        )
        return None


def notify(user_id: int | None, title: str, message: str, type: str) -> Notification | None:
    """Create one notification for ``user_id``.

    Called after the causing change is committed. A failed write is logged and
    rolled back; it never propagates to the caller.
    """
    if user_id is None:
        return None
    return _store(
        Notification(
            user_id=int(user_id),
            title=(title or "")[:160],
            message=message or "",
            type=(type or "")[:48],
            is_read=False,
            created_at=datetime.utcnow(),
        )
    )


def notify_role(role: str, title: str, message: str, type: str) -> Notification | None:
    return _store(
        Notification(
            audience_role=(role or "admin").strip().lower(),
            title=(title or "")[:160],
            message=message or "",
            type=(type or "")[:48],
            is_read=False,
            created_at=datetime.utcnow(),
        )
    )


def _visible_to(user: User):
    role = (user.role or "buyer").strip().lower()
    return sa.or_(Notification.user_id == int(user.id), Notification.audience_role == role)


def list_for_user(user: User, *, limit: int = INBOX_LIMIT, unread_only: bool = False) -> list[Notification]:
    q = Notification.query.filter(_visible_to(user))
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    safe_limit = max(1, min(int(limit or INBOX_LIMIT), INBOX_LIMIT))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(safe_limit).all()


def unread_count(user: User) -> int:
    return int(Notification.query.filter(_visible_to(user), Notification.is_read.is_(False)).count())


def mark_read(user: User, notification_id: int) -> Notification:
    row = db.session.get(Notification, int(notification_id))
    role = (user.role or "buyer").strip().lower()
    visible = row is not None and (
        (row.user_id is not None and int(row.user_id) == int(user.id))
        or (row.user_id is None and (row.audience_role or "") == role)
    )
    if not visible:
        raise NotFoundError("Notification not found")
    if row.is_read:
        return row
    row.mark_read()
    db.session.add(row)
    db.session.commit()
    return row
