# Overview: Product categories (create, list with counts, detail, rename/reparent, delete).

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Category, Product
from managepme.validation import ModelValidationPolicy, as_number, validate_payload
from .concurrency import run_with_retry
from .errors import ConflictError, NotFoundError, StateTransitionError, ValidationError


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "parent_id"},
    required_on_create={"name"},
)

DETAIL_PRODUCT_LIMIT = 10


def _clean_name(patch: dict) -> None:
    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise ValidationError("name cannot be empty")
        patch["name"] = name


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category.id).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError(f"Category {name} already exists")


def _ensure_parent(parent_id: int | None, category_id: int | None = None) -> None:
    """Parent must exist and must not be the category itself or one of its descendants."""
    if parent_id is None:
        return
    parent = db.session.get(Category, parent_id)
    if parent is None:
        raise NotFoundError("Parent category not found", details={"parent_id": parent_id})
    if category_id is None:
        return
    node = parent
    while node is not None:
        if node.id == category_id:
            raise ValidationError("A category cannot be its own ancestor", details={"parent_id": parent_id})
        node = node.parent


def _counts() -> tuple[dict[int, int], dict[int, int]]:
    products = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.category_id.isnot(None))
        .group_by(Product.category_id)
        .all()
    )
    children = dict(
        db.session.query(Category.parent_id, func.count(Category.id))
        .filter(Category.parent_id.isnot(None))
        .group_by(Category.parent_id)
        .all()
    )
    return products, children


def create_category(data: dict) -> Category:
    patch = validate_payload(model=Category, payload=data, policy=CATEGORY_POLICY, partial=False)
    _clean_name(patch)

    def _op() -> Category:
        _ensure_unique_name(patch["name"])
        _ensure_parent(patch.get("parent_id"))
        category = Category(**patch)
        db.session.add(category)
        db.session.commit()
        return category

    return run_with_retry(_op)


def list_categories() -> list[dict]:
    """Every category by name, with product and sub-category counts."""
    products, children = _counts()
    categories = db.session.query(Category).order_by(Category.name.asc(), Category.id.asc()).all()
    return [
        {
            **c.to_dict(),
            "product_count": products.get(c.id, 0),
            "children_count": children.get(c.id, 0),
        }
        for c in categories
    ]


def get_category(category_id: int) -> dict:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")

    product_count = db.session.query(func.count(Product.id)).filter(Product.category_id == category_id).scalar()
    products = (
        db.session.query(Product)
        .filter(Product.category_id == category_id)
        .order_by(Product.name.asc(), Product.id.asc())
        .limit(DETAIL_PRODUCT_LIMIT)
        .all()
    )
    return {
        **category.to_dict(),
        "children": [child.to_dict() for child in category.children],
        "products": [
            {
                "id": p.id,
                "sku": p.sku,
                "name": p.name,
                "sale_price": as_number(p.sale_price),
                "stock_current": p.stock_current,
            }
            for p in products
        ],
        "product_count": int(product_count or 0),
        "children_count": len(category.children),
    }


def update_category(category_id: int, data: dict) -> Category:
    patch = validate_payload(model=Category, payload=data, policy=CATEGORY_POLICY, partial=True)
    _clean_name(patch)

    def _op() -> Category:
        category = db.session.get(Category, category_id)
        if not category:
            raise NotFoundError("Category not found")
        if "name" in patch:
            _ensure_unique_name(patch["name"], exclude_id=category_id)
        if "parent_id" in patch:
            _ensure_parent(patch["parent_id"], category_id)
        for key, value in patch.items():
            setattr(category, key, value)
        db.session.commit()
        return category

    return run_with_retry(_op)


def delete_category(category_id: int) -> None:
    """Only an empty category (no products, no sub-categories) can be deleted."""
    def _op() -> None:
        category = db.session.get(Category, category_id)
        if not category:
            raise NotFoundError("Category not found")
        in_use = db.session.query(Product.id).filter(Product.category_id == category_id).first()
        if in_use or category.children:
            raise StateTransitionError(
                "Category still has products or sub-categories",
                details={"category_id": category_id},
            )
        db.session.delete(category)
        db.session.commit()

    return run_with_retry(_op)
