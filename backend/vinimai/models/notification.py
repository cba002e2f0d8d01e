from datetime import datetime

from vinimai.extensions import db


class Notification(db.Model):
    __tablename__ = "notifications"
    __table_args__ = (
        db.CheckConstraint(
            "user_id IS NOT NULL OR audience_role IS NOT NULL",
            name="ck_notifications_recipient",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    # Exactly one recipient form: a user, or every user holding a role.
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    audience_role = db.Column(db.String(16), nullable=True, index=True)

    title = db.Column(db.String(160), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(48), nullable=False)  # offer_received | product_approved | ...

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def mark_read(self, read_at: datetime | None = None) -> datetime:
        if self.is_read and self.read_at:
            return self.read_at
        stamped = read_at or datetime.utcnow()
        self.is_read = True
        self.read_at = stamped
        return stamped

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "audience_role": self.audience_role or None,
            "title": self.title or "",
            "message": self.message or "",
            "type": self.type or "",
            "is_read": bool(self.is_read),
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
