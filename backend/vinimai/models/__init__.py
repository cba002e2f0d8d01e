from vinimai.models.user import User, ROLES
from vinimai.models.product import Product, CATEGORIES
from vinimai.models.product_modification import ProductModification
from vinimai.models.offer import Offer
from vinimai.models.order import Order, OrderTransition
from vinimai.models.payment_confirmation import PaymentAttempt, PaymentConfirmation
from vinimai.models.return_request import ReturnRequest, RETURN_TYPES
from vinimai.models.notification import Notification
from vinimai.models.rating import Rating

__all__ = [
    "User",
    "ROLES",
    "Product",
    "CATEGORIES",
    "ProductModification",
    "Offer",
    "Order",
    "OrderTransition",
    "PaymentAttempt",
    "PaymentConfirmation",
    "ReturnRequest",
    "RETURN_TYPES",
    "Notification",
    "Rating",
]
