"""
Purchase Service - supplier orders and receipt reconciliation

WHY: Goods enter stock only when received. A receipt states the quantity
received so far per line (not an increment), so the same call handles
first receipts, follow-up deliveries and corrections.

DESIGN:
- delta = new received_qty - previous received_qty
  - delta > 0: ENTRY movement valued at the line's unit price
  - delta < 0: ADJUSTMENT movement removing the over-counted units, so the
    ledger still sums to the cached stock
- Status is recomputed from every line after the update:
  RECEIVED if all lines are complete, PARTIAL if any line has units,
  otherwise unchanged
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..models import Product, Purchase, PurchaseItem, Supplier
from managepme.validation import (
    parse_int,
    parse_optional_amount,
    parse_optional_datetime,
    parse_quantity,
    quantize_money,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .errors import (
    CancelledDocumentError,
    ConflictError,
    InvalidQuantityError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from .pagination import paginate
from . import stock_service


PURCHASE_STATUSES = {"PENDING", "PARTIAL", "RECEIVED", "CANCELLED", "RETURNED"}


def _text(value, field: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text or None


def create_purchase(data: dict, user_id: int | None) -> Purchase:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    if data.get("supplier_id") is None:
        raise ValidationError("supplier_id is required")
    supplier_id = parse_int(data.get("supplier_id"), "supplier_id", minimum=1)

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one item is required")

    lines = []
    for raw in raw_items:
        if not isinstance(raw, dict) or raw.get("product_id") is None:
            raise ValidationError("Each item needs a product_id")
        lines.append((
            parse_int(raw.get("product_id"), "product_id", minimum=1),
            parse_quantity(raw.get("quantity")),
            parse_optional_amount(raw.get("unit_price"), "unit_price"),
        ))

    reference = _text(data.get("reference"), "reference", 64)
    invoice_number = _text(data.get("invoice_number"), "invoice_number", 64)
    invoice_date = parse_optional_datetime(data.get("invoice_date"), "invoice_date")
    delivery_date = parse_optional_datetime(data.get("delivery_date"), "delivery_date")
    notes = _text(data.get("notes"), "notes")

    def _op() -> Purchase:
        if db.session.get(Supplier, supplier_id) is None:
            raise NotFoundError("Supplier not found", details={"supplier_id": supplier_id})

        ids = {pid for pid, _, _ in lines}
        products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}
        missing = sorted(ids - products.keys())
        if missing:
            raise NotFoundError("One or more products not found", details={"product_ids": missing})

        if reference and db.session.query(Purchase.id).filter_by(reference=reference).first():
            raise ConflictError(f"Purchase reference {reference} already exists")

        purchase = Purchase(
            reference=reference or next_document_number("PURCHASE"),
            supplier_id=supplier_id,
            status="PENDING",
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            delivery_date=delivery_date,
            notes=notes,
            user_id=user_id,
        )

        total = Decimal("0")
        for product_id, quantity, unit_price in lines:
            price = unit_price if unit_price is not None else quantize_money(products[product_id].purchase_price or 0)
            line_total = quantize_money(price * quantity)
            purchase.items.append(PurchaseItem(
                product_id=product_id,
                quantity=quantity,
                received_qty=0,
                unit_price=price,
                total_price=line_total,
            ))
            total += line_total

        purchase.total_amount = quantize_money(total)
        db.session.add(purchase)
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def _parse_receipt_lines(items) -> dict[int, int]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")
    received: dict[int, int] = {}
    for raw in items:
        if not isinstance(raw, dict) or raw.get("item_id") is None:
            raise ValidationError("Each item needs an item_id")
        item_id = parse_int(raw.get("item_id"), "item_id", minimum=1)
        if item_id in received:
            raise ValidationError(f"Item {item_id} appears twice in the receipt")
        if raw.get("received_quantity") is None:
            raise ValidationError("received_quantity is required")
        received[item_id] = parse_int(raw.get("received_quantity"), "received_quantity")
    return received


def _recompute_status(purchase: Purchase) -> str:
    if all(item.received_qty == item.quantity for item in purchase.items):
        return "RECEIVED"
    if any(item.received_qty > 0 for item in purchase.items):
        return "PARTIAL"
    return purchase.status


def receive_purchase(purchase_id: int, data: dict, user_id: int | None) -> Purchase:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    received = _parse_receipt_lines(data.get("items"))
    delivery_date = parse_optional_datetime(data.get("delivery_date"), "delivery_date")
    notes = _text(data.get("notes"), "notes")

    def _op() -> Purchase:
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase:
            raise NotFoundError("Purchase not found")
        if purchase.status == "CANCELLED":
            raise CancelledDocumentError("Cannot receive a cancelled purchase")

        items = {item.id: item for item in purchase.items}
        for item_id, qty in received.items():
            item = items.get(item_id)
            if item is None:
                raise NotFoundError(f"Purchase item {item_id} not found", details={"item_id": item_id})
            if qty < 0 or qty > item.quantity:
                raise InvalidQuantityError(
                    "Invalid received quantity",
                    details={"item_id": item_id, "received_quantity": qty, "ordered_quantity": item.quantity},
                )

        deltas = {item_id: qty - items[item_id].received_qty for item_id, qty in received.items()}
        products = stock_service.lock_products(
            [items[item_id].product_id for item_id, delta in deltas.items() if delta]
        )

        for item_id in sorted(received):
            item = items[item_id]
            delta = deltas[item_id]
            if delta > 0:
                stock_service.apply_stock_movement(
                    products[item.product_id],
                    "ENTRY",
                    delta,
                    unit_price=item.unit_price,
                    reference=purchase.reference,
                    reference_id=purchase.id,
                    supplier_id=purchase.supplier_id,
                    user_id=user_id,
                    reason=f"Réception {purchase.reference}",
                )
            elif delta < 0:
                stock_service.apply_stock_movement(
                    products[item.product_id],
                    "ADJUSTMENT",
                    delta,
                    unit_price=item.unit_price,
                    reference=purchase.reference,
                    reference_id=purchase.id,
                    supplier_id=purchase.supplier_id,
                    user_id=user_id,
                    reason=f"Correction réception {purchase.reference}",
                )
            item.received_qty = received[item_id]

        purchase.status = _recompute_status(purchase)
        if delivery_date is not None:
            purchase.delivery_date = delivery_date
        if notes is not None:
            purchase.notes = notes

        db.session.commit()
        return purchase

    return run_with_retry(_op)


def cancel_purchase(purchase_id: int) -> Purchase:
    """Only a purchase with nothing received can be cancelled."""
    def _op() -> Purchase:
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase:
            raise NotFoundError("Purchase not found")
        if purchase.status == "CANCELLED":
            raise CancelledDocumentError("Purchase is already cancelled")
        if any(item.received_qty > 0 for item in purchase.items):
            raise StateTransitionError("Cannot cancel a purchase with received items")
        purchase.status = "CANCELLED"
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if not purchase:
        raise NotFoundError("Purchase not found")
    return purchase


@dataclass
class PurchaseFilters:
    supplier_id: int | None = None
    status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 1
    limit: int = 50


def list_purchases(filters: PurchaseFilters | None = None) -> dict:
    filters = filters or PurchaseFilters()
    query = db.session.query(Purchase)
    if filters.supplier_id:
        query = query.filter(Purchase.supplier_id == filters.supplier_id)
    if filters.status:
        query = query.filter(Purchase.status == filters.status.upper())
    if filters.start_date:
        query = query.filter(Purchase.created_at >= filters.start_date)
    if filters.end_date:
        query = query.filter(Purchase.created_at <= filters.end_date)
    query = query.order_by(Purchase.created_at.desc(), Purchase.id.desc())
    return paginate(query, filters.page, filters.limit, lambda p: p.to_dict())
