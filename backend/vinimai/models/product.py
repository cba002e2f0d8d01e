from datetime import datetime
import json

import sqlalchemy as sa

from vinimai.extensions import db
from vinimai.utils.fees import format_money

CATEGORIES = ("electronics", "fashion", "home_garden", "sports", "books", "other")


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    category = db.Column(db.String(32), nullable=False, index=True)

    # Ordered list of image references, JSON encoded.
    images_json = db.Column(db.Text, nullable=False, default="[]", server_default="[]")

    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Moderation gate: pending | approved | rejected
    status = db.Column(db.String(16), nullable=False, default="pending", server_default="pending", index=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    # Independent of status: false once sold or delisted.
    is_available = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.true(), index=True)
    delisted_at = db.Column(db.DateTime, nullable=True)
    delist_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def images(self) -> list[str]:
        raw = (self.images_json or "").strip()
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            return []
        return [str(x) for x in data] if isinstance(data, list) else []

    @images.setter
    def images(self, value) -> None:
        self.images_json = json.dumps([str(x) for x in (value or [])])

    @property
    def is_public(self) -> bool:
        return (self.status or "") == "approved" and bool(self.is_available)

    def to_dict(self, *, include_moderation: bool = False) -> dict:
        out = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": format_money(self.price),
            "category": self.category,
            "images": self.images,
            "seller_id": self.seller_id,
            "status": self.status,
            "is_available": bool(self.is_available),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_moderation:
            out["rejection_reason"] = self.rejection_reason or None
            out["delisted_at"] = self.delisted_at.isoformat() if self.delisted_at else None
            out["delist_reason"] = self.delist_reason or None
        return out
