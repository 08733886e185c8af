# backend/managepme/services/products_service.py
"""
Products Service

Price changes and the opening stock both leave a trail: every change of
purchase_price or sale_price appends a PriceHistory row, and an initial
stock is booked as an ENTRY movement rather than written into the cache.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Category, PriceHistory, Product
from managepme.validation import LIKE_ESCAPE, ModelValidationPolicy, contains_pattern, validate_payload
from .concurrency import run_with_retry
from .errors import ConflictError, NotFoundError, ValidationError
from .pagination import paginate
from . import stock_service


CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "purchase_price", "sale_price",
        "stock_current", "stock_min", "unit", "category_id", "is_active",
    },
    required_on_create={"sku", "name", "sale_price"},
)

# Stock is never patched directly: use movements
UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=CREATE_POLICY.writable_fields - {"stock_current"},
)

PRICE_FIELDS = ("purchase_price", "sale_price")


def _ensure_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise NotFoundError("Category not found")


def _ensure_unique_sku(sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(f"SKU {sku} already exists", details={"sku": sku})


def create_product(data: dict, user_id: int | None = None) -> Product:
    patch = validate_payload(model=Product, payload=data, policy=CREATE_POLICY, partial=False)
    initial_stock = patch.pop("stock_current", None) or 0
    if initial_stock < 0:
        raise ValidationError("stock_current must be >= 0")
    if patch.get("stock_min") is not None and patch["stock_min"] < 0:
        raise ValidationError("stock_min must be >= 0")

    def _op() -> Product:
        _ensure_unique_sku(patch["sku"])
        _ensure_category(patch.get("category_id"))

        product = Product(stock_current=0, **patch)
        db.session.add(product)
        db.session.flush()

        db.session.add(PriceHistory(
            product_id=product.id,
            purchase_price=product.purchase_price or 0,
            sale_price=product.sale_price,
            reason="Prix initial",
        ))

        if initial_stock:
            stock_service.apply_stock_movement(
                product,
                "ENTRY",
                initial_stock,
                unit_price=product.purchase_price,
                reference="INIT",
                reference_id=product.id,
                user_id=user_id,
                reason="Stock initial",
            )

        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, data: dict, reason: str | None = None) -> Product:
    patch = validate_payload(model=Product, payload=data, policy=UPDATE_POLICY, partial=True)
    if patch.get("stock_min") is not None and patch["stock_min"] < 0:
        raise ValidationError("stock_min must be >= 0")

    def _op() -> Product:
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")
        if "sku" in patch:
            _ensure_unique_sku(patch["sku"], exclude_id=product.id)
        if "category_id" in patch:
            _ensure_category(patch["category_id"])

        price_changed = any(
            f in patch and patch[f] is not None and patch[f] != getattr(product, f)
            for f in PRICE_FIELDS
        )

        for key, value in patch.items():
            setattr(product, key, value)

        if price_changed:
            db.session.add(PriceHistory(
                product_id=product.id,
                purchase_price=product.purchase_price,
                sale_price=product.sale_price,
                reason=reason or "Modification de prix",
            ))

        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def find_by_barcode(code: str) -> Product:
    """Lookup by barcode, falling back to SKU (scanners often print the SKU)."""
    code = (code or "").strip()
    if not code:
        raise ValidationError("barcode is required")
    product = (
        db.session.query(Product)
        .filter(or_(Product.barcode == code, Product.sku == code))
        .order_by(Product.is_active.desc(), Product.id.asc())
        .first()
    )
    if not product:
        raise NotFoundError(f"No product with barcode {code}")
    return product


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category_id:
        query = query.filter(Product.category_id == category_id)
    if search:
        term = contains_pattern(search.strip())
        query = query.filter(or_(
            Product.name.ilike(term, escape=LIKE_ESCAPE),
            Product.sku.ilike(term, escape=LIKE_ESCAPE),
            Product.barcode.ilike(term, escape=LIKE_ESCAPE),
        ))
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page, limit, lambda p: p.to_dict())


def deactivate_product(product_id: int) -> Product:
    """Soft delete: history (sales, movements) keeps pointing at the row."""
    def _op() -> Product:
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")
        product.is_active = False
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_price_history(product_id: int) -> list[PriceHistory]:
    get_product(product_id)
    return (
        db.session.query(PriceHistory)
        .filter_by(product_id=product_id)
        .order_by(PriceHistory.created_at.desc(), PriceHistory.id.desc())
        .all()
    )
