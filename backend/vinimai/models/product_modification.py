from datetime import datetime
import json

from vinimai.extensions import db
from vinimai.utils.fees import format_money


class ProductModification(db.Model):
    """Admin "request changes" record for a pending product.

    Advisory only: it never touches the live product. The seller's resubmit
    applies the revised fields and consumes the open records.
    """

    __tablename__ = "product_modifications"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    notes = db.Column(db.Text, nullable=False)

    # Optional proposed values.
    title = db.Column(db.String(200), nullable=True)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=True)
    category = db.Column(db.String(32), nullable=True)
    images_json = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    requested_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    resolved_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        images = None
        if self.images_json:
            try:
                images = json.loads(self.images_json)
            except ValueError:
                images = None
        return {
            "id": self.id,
            "product_id": self.product_id,
            "requested_by": self.requested_by,
            "notes": self.notes,
            "title": self.title,
            "description": self.description,
            "price": format_money(self.price) if self.price is not None else None,
            "category": self.category,
            "images": images,
            "status": self.status,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }
