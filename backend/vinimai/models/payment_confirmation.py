from datetime import datetime

from vinimai.extensions import db
from vinimai.utils.fees import format_money


class PaymentConfirmation(db.Model):
    """A gateway payment that has been honoured. Each payment id is consumed once."""

    __tablename__ = "payment_confirmations"
    __table_args__ = (
        db.UniqueConstraint("payment_id", name="uq_payment_confirmations_payment_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    gateway_order_id = db.Column(db.String(64), nullable=False, index=True)
    payment_id = db.Column(db.String(64), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "gateway_order_id": self.gateway_order_id,
            "payment_id": self.payment_id,
            "amount": format_money(self.amount),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PaymentAttempt(db.Model):
    """A gateway order issued for a local order. Verification only honours these."""

    __tablename__ = "payment_attempts"
    __table_args__ = (
        db.UniqueConstraint("gateway_order_id", name="uq_payment_attempts_gateway_order_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    gateway_order_id = db.Column(db.String(64), nullable=False)
    amount_minor = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="INR")
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
