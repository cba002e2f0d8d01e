from datetime import datetime

from vinimai.extensions import db
from vinimai.utils.fees import format_money


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    offer_id = db.Column(db.Integer, db.ForeignKey("offers.id"), nullable=True)

    final_price = db.Column(db.Numeric(10, 2), nullable=False)
    buyer_fee = db.Column(db.Numeric(10, 2), nullable=False)
    seller_fee = db.Column(db.Numeric(10, 2), nullable=False)
    platform_fee = db.Column(db.Numeric(10, 2), nullable=False)

    # placed -> confirmed -> picked_up -> out_for_delivery -> delivered
    status = db.Column(db.String(24), nullable=False, default="placed", index=True)
    delivery_address = db.Column(db.Text, nullable=False)

    delivered_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def buyer_total(self):
        return self.final_price + self.buyer_fee

    @property
    def seller_receives(self):
        return self.final_price - self.seller_fee

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "product_id": self.product_id,
            "offer_id": self.offer_id,
            "final_price": format_money(self.final_price),
            "buyer_fee": format_money(self.buyer_fee),
            "seller_fee": format_money(self.seller_fee),
            "platform_fee": format_money(self.platform_fee),
            "buyer_total": format_money(self.buyer_total),
            "seller_receives": format_money(self.seller_receives),
            "status": self.status,
            "delivery_address": self.delivery_address,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class OrderTransition(db.Model):
    __tablename__ = "order_transitions"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    from_status = db.Column(db.String(24), nullable=False, default="")
    to_status = db.Column(db.String(24), nullable=False)
    actor_user_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(240), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "from_status": self.from_status or "",
            "to_status": self.to_status or "",
            "actor_user_id": int(self.actor_user_id) if self.actor_user_id is not None else None,
            "reason": self.reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
