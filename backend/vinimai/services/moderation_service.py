from __future__ import annotations

import json
import logging
from datetime import datetime

import sqlalchemy as sa

from vinimai.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from vinimai.extensions import db
from vinimai.models import CATEGORIES, Offer, Order, Product, ProductModification, User
from vinimai.services import notification_service
from vinimai.utils.fees import parse_money

logger = logging.getLogger(__name__)


class ProductStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


MAX_IMAGES = 10
MAX_PAGE = 100


def _require_admin(actor: User) -> None:
    if actor is None or not actor.is_admin:
        raise AuthorizationError("Admin access required")


def _get_product(product_id: int) -> Product:
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise NotFoundError("Product not found")
    product = db.session.get(Product, pid)
    if not product:
        raise NotFoundError("Product not found")
    return product


def _clean_text(payload: dict, name: str, *, limit: int, required: bool, errors: dict):
    raw = payload.get(name)
    if raw is None:
        if required:
            errors[name] = "required"
        return None
    value = str(raw).strip()
    if not value:
        if required:
            errors[name] = "required"
        return None
    if len(value) > limit:
        errors[name] = "too_long"
        return None
    return value


def _validate_fields(payload: dict, *, partial: bool) -> dict:
    """Normalize product fields. ``partial`` accepts any subset of them."""
    errors: dict = {}
    out: dict = {}

    title = _clean_text(payload, "title", limit=200, required=not partial, errors=errors)
    if title is not None:
        out["title"] = title
    description = _clean_text(payload, "description", limit=5000, required=not partial, errors=errors)
    if description is not None:
        out["description"] = description

    if payload.get("price") is not None or not partial:
        try:
            out["price"] = parse_money(payload.get("price"), "price")
        except ValidationError as exc:
            errors.update(exc.fields)

    if payload.get("category") is not None or not partial:
        category = str(payload.get("category") or "").strip().lower()
        if category not in CATEGORIES:
            errors["category"] = "invalid"
        else:
            out["category"] = category

    if "images" in payload or not partial:
        images = payload.get("images") or []
        if not isinstance(images, list) or not all(isinstance(x, str) and x.strip() for x in images):
            errors["images"] = "invalid"
        elif len(images) > MAX_IMAGES:
            errors["images"] = "too_many"
        else:
            out["images"] = [x.strip() for x in images]

    if errors:
        raise ValidationError("Invalid product data", fields=errors)
    return out


def submit_product(seller: User, payload: dict) -> Product:
    if seller is None or not seller.is_seller:
        raise AuthorizationError("Only sellers can list products")
    fields = _validate_fields(payload or {}, partial=False)
    product = Product(
        title=fields["title"],
        description=fields["description"],
        price=fields["price"],
        category=fields["category"],
        seller_id=int(seller.id),
        status=ProductStatus.PENDING,
        is_available=True,
    )
    product.images = fields["images"]
    db.session.add(product)
    db.session.commit()
    logger.info("product_submitted product_id=%s seller_id=%s", product.id, seller.id)

    notification_service.notify_role(
        "admin",
        "New Product Pending Approval",
        f'"{product.title}" by {seller.username} is waiting for review.',
        "product_approval",
    )
    return product


def _conditional_status_update(product: Product, *, expected: str, values: dict) -> None:
    res = db.session.execute(
        sa.update(Product)
        .where(Product.id == int(product.id), Product.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if int(res.rowcount or 0) != 1:
        db.session.rollback()
        db.session.refresh(product)
        raise ConflictError(
            f"Product is {product.status}, expected {expected}",
            details={"current_status": product.status},
        )


def approve_product(admin: User, product_id: int) -> Product:
    _require_admin(admin)
    product = _get_product(product_id)
    _conditional_status_update(
        product,
        expected=ProductStatus.PENDING,
        values={"status": ProductStatus.APPROVED, "rejection_reason": None, "updated_at": datetime.utcnow()},
    )
    db.session.commit()
    db.session.refresh(product)
    logger.info("product_approved product_id=%s admin_id=%s", product.id, admin.id)

    notification_service.notify(
        product.seller_id,
        "Product Approved",
        f'Your product "{product.title}" has been approved and is now live!',
        "product_approved",
    )
    return product


def reject_product(admin: User, product_id: int, reason: str | None = None) -> Product:
    _require_admin(admin)
    product = _get_product(product_id)
    clean_reason = (reason or "").strip() or None
    _conditional_status_update(
        product,
        expected=ProductStatus.PENDING,
        values={"status": ProductStatus.REJECTED, "rejection_reason": clean_reason, "updated_at": datetime.utcnow()},
    )
    db.session.commit()
    db.session.refresh(product)
    logger.info("product_rejected product_id=%s admin_id=%s", product.id, admin.id)

    reason_text = clean_reason or "It did not meet our listing guidelines."
    notification_service.notify(
        product.seller_id,
        "Product Rejected",
        f'Your product "{product.title}" was rejected. Reason: {reason_text}',
        "product_rejected",
    )
    return product


def request_product_edit(admin: User, product_id: int, notes: str, proposed: dict | None = None) -> ProductModification:
    _require_admin(admin)
    product = _get_product(product_id)
    clean_notes = (notes or "").strip()
    if not clean_notes:
        raise ValidationError("Describe the changes you need", fields={"notes": "required"})
    if product.status != ProductStatus.PENDING:
        raise ConflictError(
            "Edits can only be requested for pending products",
            details={"current_status": product.status},
        )
    fields = _validate_fields(proposed or {}, partial=True)
    mod = ProductModification(
        product_id=int(product.id),
        requested_by=int(admin.id),
        notes=clean_notes,
        title=fields.get("title"),
        description=fields.get("description"),
        price=fields.get("price"),
        category=fields.get("category"),
        images_json=json.dumps(fields["images"]) if "images" in fields else None,
        status="pending",
    )
    db.session.add(mod)
    db.session.commit()
    logger.info("product_edit_requested product_id=%s modification_id=%s", product.id, mod.id)

    notification_service.notify(
        product.seller_id,
        "Changes Requested",
        f'An admin requested changes to "{product.title}": {clean_notes}',
        "product_edit_requested",
    )
    return mod


def _open_modifications(product_id: int) -> list[ProductModification]:
    return (
        ProductModification.query.filter_by(product_id=int(product_id), status="pending")
        .order_by(ProductModification.requested_at.asc())
        .all()
    )


def resubmit_product(seller: User, product_id: int, payload: dict | None) -> Product:
    product = _get_product(product_id)
    if seller is None or int(product.seller_id) != int(seller.id):
        raise AuthorizationError("Only the listing's seller can resubmit it")
    fields = _validate_fields(payload or {}, partial=True)

    open_mods = _open_modifications(product.id)
    if product.status == ProductStatus.REJECTED:
        expected = ProductStatus.REJECTED
    elif product.status == ProductStatus.PENDING and open_mods:
        expected = ProductStatus.PENDING
    else:
        raise ConflictError(
            "Only rejected products or products with requested changes can be resubmitted",
            details={"current_status": product.status},
        )

    values = {
        "status": ProductStatus.PENDING,
        "rejection_reason": None,
        "updated_at": datetime.utcnow(),
    }
    for name in ("title", "description", "price", "category"):
        if name in fields:
            values[name] = fields[name]
    if "images" in fields:
        values["images_json"] = json.dumps(fields["images"])

    _conditional_status_update(product, expected=expected, values=values)
    now = datetime.utcnow()
    for mod in open_mods:
        mod.status = "approved"
        mod.resolved_at = now
        db.session.add(mod)
    db.session.commit()
    db.session.refresh(product)
    logger.info("product_resubmitted product_id=%s consumed=%s", product.id, len(open_mods))

    notification_service.notify_role(
        "admin",
        "Product Resubmitted",
        f'"{product.title}" was revised and is waiting for review again.',
        "product_resubmitted",
    )
    return product


def delist_product(admin: User, product_id: int, reason: str | None = None) -> Product:
    _require_admin(admin)
    product = _get_product(product_id)
    clean_reason = (reason or "").strip() or None
    now = datetime.utcnow()
    res = db.session.execute(
        sa.update(Product)
        .where(
            Product.id == int(product.id),
            Product.status == ProductStatus.APPROVED,
            Product.is_available.is_(True),
        )
        .values(is_available=False, delisted_at=now, delist_reason=clean_reason, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if int(res.rowcount or 0) != 1:
        db.session.rollback()
        db.session.refresh(product)
        raise ConflictError(
            "Only live products can be delisted",
            details={"current_status": product.status, "is_available": bool(product.is_available)},
        )
    db.session.commit()
    db.session.refresh(product)
    logger.info("product_delisted product_id=%s admin_id=%s", product.id, admin.id)

    suffix = f" Reason: {clean_reason}" if clean_reason else ""
    notification_service.notify(
        product.seller_id,
        "Product Delisted",
        f'Your product "{product.title}" has been removed from the marketplace.{suffix}',
        "product_delisted",
    )
    return product


def delete_product(admin: User, product_id: int, reason: str | None = None) -> dict:
    _require_admin(admin)
    product = _get_product(product_id)
    if Order.query.filter_by(product_id=int(product.id)).first() is not None:
        raise ConflictError(
            "Products with orders cannot be deleted",
            details={"current_status": product.status},
        )
    snapshot = {"id": int(product.id), "title": product.title, "seller_id": int(product.seller_id)}
    clean_reason = (reason or "").strip()

    # The seller hears about it before the row disappears.
    suffix = f" Reason: {clean_reason}" if clean_reason else ""
    notification_service.notify(
        snapshot["seller_id"],
        "Product Deleted",
        f'Your product "{snapshot["title"]}" was deleted by an administrator.{suffix}',
        "product_deleted",
    )

    Offer.query.filter_by(product_id=snapshot["id"]).delete(synchronize_session=False)
    ProductModification.query.filter_by(product_id=snapshot["id"]).delete(synchronize_session=False)
    db.session.delete(product)
    db.session.commit()
    logger.info("product_deleted product_id=%s admin_id=%s", snapshot["id"], admin.id)
    return snapshot


def list_public_products(*, category: str | None = None, search: str | None = None, limit: int = 20, offset: int = 0) -> list[Product]:
    q = Product.query.filter(Product.status == ProductStatus.APPROVED, Product.is_available.is_(True))
    cat = (category or "").strip().lower()
    if cat:
        q = q.filter(Product.category == cat)
    term = (search or "").strip()
    if term:
        literal = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        like = f"%{literal}%"
        q = q.filter(
            sa.or_(
                Product.title.ilike(like, escape="\\"),
                Product.description.ilike(like, escape="\\"),
            )
        )
    try:
        safe_limit = max(1, min(int(limit), MAX_PAGE))
    except (TypeError, ValueError):
        safe_limit = 20
    try:
        safe_offset = max(0, int(offset))
    except (TypeError, ValueError):
        safe_offset = 0
    return q.order_by(Product.created_at.desc(), Product.id.desc()).offset(safe_offset).limit(safe_limit).all()


def get_product_for_viewer(product_id: int, viewer: User | None) -> Product:
    product = _get_product(product_id)
    if product.is_public:
        return product
    if viewer is not None and (viewer.is_admin or int(viewer.id) == int(product.seller_id)):
        return product
    raise NotFoundError("Product not found")


def list_seller_products(seller: User) -> list[Product]:
    return Product.query.filter_by(seller_id=int(seller.id)).order_by(Product.created_at.desc(), Product.id.desc()).all()


def list_pending_products(admin: User) -> list[Product]:
    _require_admin(admin)
    return Product.query.filter_by(status=ProductStatus.PENDING).order_by(Product.created_at.asc(), Product.id.asc()).all()


def list_modifications(actor: User, product_id: int) -> list[ProductModification]:
    product = _get_product(product_id)
    if not (actor.is_admin or int(actor.id) == int(product.seller_id)):
        raise AuthorizationError("Not allowed to view this product's change requests")
    return (
        ProductModification.query.filter_by(product_id=int(product.id))
        .order_by(ProductModification.requested_at.desc(), ProductModification.id.desc())
        .all()
    )
