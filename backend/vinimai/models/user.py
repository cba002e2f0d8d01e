from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from vinimai.extensions import db

ROLES = ("buyer", "seller", "admin")


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), unique=True, index=True, nullable=False)
    # Primary login credential.
    mobile = db.Column(db.String(20), unique=True, index=True, nullable=False)
    email = db.Column(db.String(255), nullable=True)

    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default="buyer")
    is_verified = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    @property
    def is_seller(self) -> bool:
        return (self.role or "").strip().lower() == "seller"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "mobile": self.mobile,
            "email": self.email or None,
            "role": self.role or "buyer",
            "is_verified": bool(self.is_verified),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
