from datetime import datetime

from vinimai.extensions import db
from vinimai.utils.fees import format_money


class Offer(db.Model):
    __tablename__ = "offers"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # Copied from the product at creation time.
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    message = db.Column(db.Text, nullable=True)

    # pending | accepted | rejected | countered
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    counter_amount = db.Column(db.Numeric(10, 2), nullable=True)
    counter_message = db.Column(db.Text, nullable=True)

    decided_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "amount": format_money(self.amount),
            "message": self.message or None,
            "status": self.status,
            "counter_amount": format_money(self.counter_amount) if self.counter_amount is not None else None,
            "counter_message": self.counter_message or None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
