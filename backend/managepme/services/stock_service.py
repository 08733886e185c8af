"""
Stock ledger: the only code path that changes Product.stock_current.

WHY: stock_current is a cached running total over StockMovement rows.
Keeping the cache update and the ledger append in one function, inside
the caller's unit of work, makes SUM(movements) == stock_current hold
after every commit.

DESIGN:
- Callers lock the products first (lock_products, ascending id order so
  two operations on overlapping products cannot deadlock)
- apply_stock_movement never commits; the surrounding operation does
- Product.version_id turns a lost update on engines without row locks
  into a StaleDataError, which run_with_retry retries
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockMovement
from managepme.validation import parse_choice, parse_int, quantize_money
from .concurrency import lock_for_update, run_with_retry
from .errors import InsufficientStockError, NotFoundError, ValidationError
from .pagination import paginate


MOVEMENT_TYPES = {"ENTRY", "SALE", "ADJUSTMENT", "DAMAGE", "LOSS", "REFUND"}
DAMAGE_TYPES = {"DAMAGE", "LOSS"}


def lock_products(product_ids, *, require_active: bool = False) -> dict[int, Product]:
    """
    Load and lock the given products in ascending id order.

    Raises NotFoundError for missing (or, with require_active, inactive)
    products.
    """
    ids = sorted({int(pid) for pid in product_ids})
    if not ids:
        return {}

    rows = (
        lock_for_update(db.session.query(Product).filter(Product.id.in_(ids)))
        .order_by(Product.id.asc())
        .all()
    )
    products = {p.id: p for p in rows}

    for pid in ids:
        product = products.get(pid)
        if product is None:
            raise NotFoundError(f"Product {pid} not found", details={"product_id": pid})
        if require_active and not product.is_active:
            raise NotFoundError(f"Product {product.name} is inactive", details={"product_id": pid})
    return products


def check_available(products: dict[int, Product], requested: dict[int, int]) -> None:
    """Raise InsufficientStockError for the first product short of stock."""
    for pid in sorted(requested):
        qty = requested[pid]
        product = products[pid]
        if product.stock_current < qty:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}",
                details={
                    "product_id": pid,
                    "requested_quantity": qty,
                    "available": product.stock_current,
                },
            )


def apply_stock_movement(
    product: Product,
    movement_type: str,
    quantity: int,
    *,
    unit_price=None,
    reference: str | None = None,
    reference_id: int | None = None,
    supplier_id: int | None = None,
    user_id: int | None = None,
    reason: str | None = None,
) -> StockMovement:
    """
    Change stock_current by a signed quantity and append the matching movement.

    Does not commit. Raises InsufficientStockError if stock would go negative.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}")
    if quantity == 0:
        raise ValidationError("Movement quantity cannot be zero")

    new_stock = product.stock_current + quantity
    if new_stock < 0:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}",
            details={
                "product_id": product.id,
                "requested_quantity": -quantity,
                "available": product.stock_current,
            },
        )

    price = quantize_money(unit_price) if unit_price is not None else None
    movement = StockMovement(
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        unit_price=price,
        total_value=quantize_money(price * abs(quantity)) if price is not None else None,
        reference=reference,
        reference_id=reference_id,
        supplier_id=supplier_id,
        user_id=user_id,
        reason=reason,
    )
    product.stock_current = new_stock
    db.session.add(movement)
    return movement


def create_damage(product_id: int, movement_type: str, quantity, reason: str | None, user_id: int | None) -> StockMovement:
    """
    Record a damage or loss entry (signed quantity).

    Negative quantities remove stock and are refused beyond what is on hand;
    positive quantities put found goods back.
    """
    movement_type = parse_choice(movement_type, "type", DAMAGE_TYPES)
    qty = parse_int(quantity, "quantity")
    if qty == 0:
        raise ValidationError("Quantity cannot be zero")

    def _op() -> StockMovement:
        product = lock_products([product_id])[product_id]
        movement = apply_stock_movement(
            product,
            movement_type,
            qty,
            unit_price=product.purchase_price,
            reference=movement_type,
            user_id=user_id,
            reason=reason,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


@dataclass
class MovementFilters:
    product_id: int | None = None
    type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 1
    limit: int = 50


def get_movements(filters: MovementFilters | None = None) -> dict:
    filters = filters or MovementFilters()
    query = db.session.query(StockMovement)
    if filters.product_id:
        query = query.filter(StockMovement.product_id == filters.product_id)
    if filters.type:
        query = query.filter(StockMovement.type == filters.type.upper())
    if filters.start_date:
        query = query.filter(StockMovement.created_at >= filters.start_date)
    if filters.end_date:
        query = query.filter(StockMovement.created_at <= filters.end_date)

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    return paginate(query, filters.page, filters.limit, lambda m: m.to_dict())


def get_low_stock_products() -> list[Product]:
    """Active products at or below their minimum, lowest stock first."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock_current <= Product.stock_min)
        .order_by(Product.stock_current.asc(), Product.id.asc())
        .all()
    )


def get_product_stock_history(product_id: int) -> dict:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    movements = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .all()
    )
    return {
        "product": product.to_dict(),
        "movements": [m.to_dict() for m in movements],
    }


def ledger_quantity(product_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(StockMovement.product_id == product_id)
        .scalar()
    )


def reconcile_stock(product_id: int) -> dict:
    """Compare the cached stock with the ledger sum (read-only)."""
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    ledger = ledger_quantity(product_id)
    return {
        "product_id": product_id,
        "stock_current": product.stock_current,
        "ledger_quantity": ledger,
        "difference": product.stock_current - ledger,
        "consistent": product.stock_current == ledger,
    }
