"""
Pricing/Tax calculator for sales and quotes.

WHY: One pure function prices every document (ticket, invoice, quote) so
the arithmetic cannot drift between checkout and quote conversion.

DESIGN:
- line_total = unit_price * quantity - line_discount
- line_margin = (unit_price - purchase_price) * quantity - line_discount
- tax = (subtotal - document_discount) * rate; rate is 0.20 for INVOICE
  (B2B) and 0 for TICKET (B2C), not configurable per product
- margin = sum(line_margin); the document discount is not subtracted again
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping

from managepme.validation import parse_amount, parse_int, parse_optional_amount, parse_quantity, quantize_money
from .errors import NotFoundError, ValidationError


SALE_TYPES = ("TICKET", "INVOICE")

TAX_RATES = {
    "TICKET": Decimal("0"),
    "INVOICE": Decimal("0.20"),
}


def tax_rate_for(sale_type: str) -> Decimal:
    try:
        return TAX_RATES[sale_type]
    except KeyError:
        raise ValidationError(f"type must be one of: {', '.join(SALE_TYPES)}")


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    unit_price: Decimal | None = None
    discount: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, raw) -> "OrderLine":
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        product_id = raw.get("product_id")
        if product_id is None:
            raise ValidationError("product_id is required")
        return cls(
            product_id=parse_int(product_id, "product_id", minimum=1),
            quantity=parse_quantity(raw.get("quantity")),
            unit_price=parse_optional_amount(raw.get("unit_price"), "unit_price"),
            discount=parse_amount(raw.get("discount") or 0, "discount"),
        )


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total_price: Decimal
    purchase_price: Decimal
    margin: Decimal


@dataclass(frozen=True)
class PricingResult:
    lines: list[PricedLine] = field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    margin: Decimal = Decimal("0")


def price_lines(
    lines: list[OrderLine],
    products: Mapping[int, object],
    *,
    sale_type: str,
    discount=0,
) -> PricingResult:
    """
    Price a document from its order lines and a product price snapshot.

    products maps product_id to anything exposing sale_price and
    purchase_price (Product rows in practice). Deterministic: identical
    inputs always give identical results; nothing is read or written.
    """
    rate = tax_rate_for(sale_type)
    document_discount = parse_amount(discount or 0, "discount")

    if not lines:
        raise ValidationError("At least one item is required")

    priced: list[PricedLine] = []
    subtotal = Decimal("0")
    margin = Decimal("0")

    for line in lines:
        if line.quantity is None or line.quantity < 1:
            raise ValidationError("quantity must be >= 1", details={"product_id": line.product_id})
        if line.discount < 0:
            raise ValidationError("discount must be >= 0", details={"product_id": line.product_id})

        product = products.get(line.product_id)
        if product is None:
            raise NotFoundError(f"Product {line.product_id} not found")

        unit_price = line.unit_price if line.unit_price is not None else Decimal(product.sale_price)
        if unit_price < 0:
            raise ValidationError("unit_price must be >= 0", details={"product_id": line.product_id})
        purchase_price = Decimal(product.purchase_price or 0)
        if line.discount > unit_price * line.quantity:
            raise ValidationError("discount cannot exceed the line amount", details={"product_id": line.product_id})

        line_total = quantize_money(unit_price * line.quantity - line.discount)
        line_margin = quantize_money((unit_price - purchase_price) * line.quantity - line.discount)

        priced.append(PricedLine(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=quantize_money(unit_price),
            discount=quantize_money(line.discount),
            total_price=line_total,
            purchase_price=quantize_money(purchase_price),
            margin=line_margin,
        ))
        subtotal += line_total
        margin += line_margin

    if document_discount > subtotal:
        raise ValidationError(
            "discount cannot exceed the subtotal",
            details={"subtotal": float(subtotal), "discount": float(document_discount)},
        )

    taxable = subtotal - document_discount
    tax = quantize_money(taxable * rate)

    return PricingResult(
        lines=priced,
        subtotal=quantize_money(subtotal),
        discount=document_discount,
        tax=tax,
        total=quantize_money(taxable + tax),
        margin=quantize_money(margin),
    )
