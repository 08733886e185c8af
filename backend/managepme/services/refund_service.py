"""
Refund (Avoir) Service

WHY: Returns are booked as credit notes against a COMPLETED sale. The sale
record keeps its totals and amount_paid; the Avoir is its own document.

DESIGN:
- SaleItem.refunded_quantity is the running total across all Avoirs; a
  request is capped at quantity - refunded_quantity, so repeated partial
  refunds can never return more than was sold
- Line refund = unit_price * quantity; invoices add back the same tax rate
- When every line is fully returned the sale becomes REFUNDED
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Sale, SaleRefund
from managepme.validation import parse_int, quantize_money
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_avoir_number
from .errors import (
    CancelledDocumentError,
    InvalidQuantityError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from .pricing_service import tax_rate_for
from . import stock_service


@dataclass(frozen=True)
class RefundLine:
    sale_item_id: int
    quantity: int

    @classmethod
    def from_dict(cls, raw) -> "RefundLine":
        if not isinstance(raw, dict):
            raise ValidationError("Each refund item must be an object")
        if raw.get("sale_item_id") is None:
            raise ValidationError("sale_item_id is required")
        return cls(
            sale_item_id=parse_int(raw.get("sale_item_id"), "sale_item_id", minimum=1),
            quantity=parse_int(raw.get("quantity"), "quantity"),
        )


def _parse_lines(items) -> list[RefundLine]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")
    return [item if isinstance(item, RefundLine) else RefundLine.from_dict(item) for item in items]


def create_refund(sale_id: int, items, user_id: int | None, reason: str | None = None) -> SaleRefund:
    lines = _parse_lines(items)

    def _op() -> SaleRefund:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")
        if sale.status == "CANCELLED":
            raise CancelledDocumentError("Cannot refund a cancelled sale")
        if sale.status != "COMPLETED":
            raise StateTransitionError(f"Cannot refund sale with status {sale.status}")

        sale_items = {item.id: item for item in sale.items}

        # Sum per line first: the same line may appear twice in one request
        requested: dict[int, int] = {}
        for line in lines:
            if line.sale_item_id not in sale_items:
                raise NotFoundError(
                    f"Sale item {line.sale_item_id} does not belong to this sale",
                    details={"sale_item_id": line.sale_item_id},
                )
            if line.quantity < 1:
                raise InvalidQuantityError(
                    "Refund quantity must be >= 1",
                    details={"sale_item_id": line.sale_item_id},
                )
            requested[line.sale_item_id] = requested.get(line.sale_item_id, 0) + line.quantity

        for item_id, qty in requested.items():
            item = sale_items[item_id]
            if qty > item.refundable_quantity:
                raise InvalidQuantityError(
                    f"Refund quantity for {item.product.name if item.product else item_id} exceeds the refundable quantity",
                    details={
                        "sale_item_id": item_id,
                        "requested_quantity": qty,
                        "refundable_quantity": item.refundable_quantity,
                    },
                )

        avoir_number = next_avoir_number()
        products = stock_service.lock_products([sale_items[i].product_id for i in requested])

        snapshot = []
        subtotal = 0
        for item_id in sorted(requested):
            item = sale_items[item_id]
            qty = requested[item_id]
            line_total = quantize_money(item.unit_price * qty)

            stock_service.apply_stock_movement(
                products[item.product_id],
                "REFUND",
                qty,
                unit_price=item.unit_price,
                reference=avoir_number,
                reference_id=sale.id,
                user_id=user_id,
                reason=reason or f"Avoir sur {sale.document_number}",
            )
            item.refunded_quantity = (item.refunded_quantity or 0) + qty

            snapshot.append({
                "sale_item_id": item.id,
                "product_id": item.product_id,
                "product_name": products[item.product_id].name,
                "quantity": qty,
                "unit_price": float(item.unit_price),
                "total_price": float(line_total),
            })
            subtotal += line_total

        refund_amount = quantize_money(subtotal + subtotal * tax_rate_for(sale.type))

        refund = SaleRefund(
            sale_id=sale.id,
            avoir_number=avoir_number,
            reason=reason,
            refund_amount=refund_amount,
            refunded_items=snapshot,
            user_id=user_id,
        )
        db.session.add(refund)

        if all(item.refundable_quantity == 0 for item in sale.items):
            sale.status = "REFUNDED"

        db.session.commit()
        return refund

    return run_with_retry(_op)


def list_refunds(sale_id: int | None = None) -> list[SaleRefund]:
    query = db.session.query(SaleRefund)
    if sale_id is not None:
        if db.session.get(Sale, sale_id) is None:
            raise NotFoundError("Sale not found")
        query = query.filter(SaleRefund.sale_id == sale_id)
    return query.order_by(SaleRefund.created_at.desc(), SaleRefund.id.desc()).all()


def get_refund(refund_id: int) -> SaleRefund:
    refund = db.session.get(SaleRefund, refund_id)
    if not refund:
        raise NotFoundError("Avoir not found")
    return refund
