from datetime import datetime

from vinimai.extensions import db


class Rating(db.Model):
    __tablename__ = "ratings"
    __table_args__ = (
        db.UniqueConstraint("order_id", "rater_id", name="uq_ratings_order_rater"),
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_ratings_range"),
        db.CheckConstraint("rater_id <> rated_id", name="ck_ratings_distinct_parties"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    rater_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    rated_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "rater_id": self.rater_id,
            "rated_id": self.rated_id,
            "rating": int(self.rating),
            "comment": self.comment or None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
