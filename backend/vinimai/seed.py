from __future__ import annotations

from decimal import Decimal

from vinimai.extensions import db
from vinimai.models import Product, User

SAMPLE_USERS = (
    {"username": "admin", "mobile": "9999999999", "email": "admin@vinimai.com", "role": "admin"},
    {"username": "seller1", "mobile": "9876543210", "email": "seller1@example.com", "role": "seller"},
    {"username": "buyer1", "mobile": "9876543211", "email": "buyer1@example.com", "role": "buyer"},
)

SAMPLE_PRODUCTS = (
    (
        "iPhone 14 Pro Max - Excellent Condition",
        "Like new iPhone 14 Pro Max, 256GB, Space Black. Used for six months. Original box, charger and an unused screen protector.",
        "85000",
        "electronics",
    ),
    (
        "Nike Air Jordan 1 - Size 9",
        "Authentic Nike Air Jordan 1 in excellent condition. Size 9 US. Worn only a few times. Original box included.",
        "12000",
        "fashion",
    ),
    (
        "MacBook Air M2 - 13 inch",
        "MacBook Air with M2 chip, 8GB RAM, 256GB SSD. Perfect working condition.",
        "95000",
        "electronics",
    ),
    (
        "Wooden Study Table with Drawer",
        "Solid wood study table in great condition with one drawer for storage.",
        "8500",
        "home_garden",
    ),
    (
        "Cricket Bat - English Willow",
        "Grade 2 English willow bat, knocked in and ready to play.",
        "6500",
        "sports",
    ),
    (
        "The Pragmatic Programmer",
        "20th anniversary edition, paperback, no markings.",
        "650",
        "books",
    ),
)


def seed_sample_data(password: str) -> tuple[int, int]:
    """Insert demo accounts and approved listings. Returns ``(users, products)`` created."""
    created_users = 0
    by_username = {}
    for row in SAMPLE_USERS:
        user = User.query.filter_by(mobile=row["mobile"]).first()
        if user is None:
            user = User(is_verified=True, **row)
            user.set_password(password)
            db.session.add(user)
            created_users += 1
        by_username[row["username"]] = user
    db.session.flush()

    seller = by_username["seller1"]
    for title, description, price, category in SAMPLE_PRODUCTS:
        db.session.add(
            Product(
                title=title,
                description=description,
                price=Decimal(price),
                category=category,
                images_json="[]",
                seller_id=int(seller.id),
                status="approved",
                is_available=True,
            )
        )
    db.session.commit()
    return created_users, len(SAMPLE_PRODUCTS)
