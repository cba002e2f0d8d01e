from datetime import datetime

from vinimai.extensions import db
from vinimai.utils.fees import format_money

RETURN_TYPES = ("on_spot", "within_days")


class ReturnRequest(db.Model):
    __tablename__ = "returns"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    reason = db.Column(db.Text, nullable=False)
    return_type = db.Column(db.String(16), nullable=False)
    is_faulty = db.Column(db.Boolean, nullable=False, default=False)

    # requested | approved | rejected | processed
    status = db.Column(db.String(16), nullable=False, default="requested", index=True)
    refund_amount = db.Column(db.Numeric(10, 2), nullable=False)
    refund_id = db.Column(db.String(64), nullable=True)
    decision_note = db.Column(db.Text, nullable=True)

    requested_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    decided_at = db.Column(db.DateTime, nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "requested_by": self.requested_by,
            "reason": self.reason,
            "return_type": self.return_type,
            "is_faulty": bool(self.is_faulty),
            "status": self.status,
            "refund_amount": format_money(self.refund_amount),
            "refund_id": self.refund_id or None,
            "decision_note": self.decision_note or None,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }
