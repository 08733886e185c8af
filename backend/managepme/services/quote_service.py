"""
Quote (Devis) Service

WHY: A quote is priced like an invoice (20% tax, B2B) but moves no stock.
Converting it checks out an INVOICE sold on credit and marks the quote
CONVERTED in the same unit of work, so a quote maps to at most one sale.

DESIGN:
- Conversion is refused when status is CONVERTED or converted_sale_id is
  already set; the unique constraint on converted_sale_id backs this up
- Partial conversion bills a subset of lines, each at 1..ordered quantity;
  line discounts and the quote discount are prorated to what is billed
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..models import Client, Product, Quote, QuoteItem
from managepme.time_utils import utcnow
from managepme.validation import (
    parse_amount,
    parse_choice,
    parse_int,
    parse_optional_datetime,
    parse_optional_int,
    quantize_money,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .errors import (
    AlreadyConvertedError,
    InvalidQuantityError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from .pagination import paginate
from .pricing_service import OrderLine, price_lines
from .sales_service import SaleRequest, _create_sale_locked
from . import currency_service


QUOTE_STATUSES = {"DRAFT", "SENT", "ACCEPTED", "REFUSED", "EXPIRED", "CONVERTED"}
MANUAL_STATUSES = QUOTE_STATUSES - {"CONVERTED"}
EXPIRABLE_STATUSES = ("DRAFT", "SENT")


def create_quote(data: dict, user_id: int | None) -> Quote:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one item is required")
    lines = [OrderLine.from_dict(raw) for raw in raw_items]
    client_id = parse_optional_int(data.get("client_id"), "client_id", minimum=1)
    discount = parse_amount(data.get("discount") or 0, "discount")
    valid_until = parse_optional_datetime(data.get("valid_until"), "valid_until")
    currency = data.get("currency_code")
    notes = data.get("notes")

    def _op() -> Quote:
        if client_id is not None and db.session.get(Client, client_id) is None:
            raise NotFoundError("Client not found", details={"client_id": client_id})

        ids = {line.product_id for line in lines}
        products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}
        for line in lines:
            if line.product_id not in products:
                raise NotFoundError(f"Product {line.product_id} not found")

        pricing = price_lines(lines, products, sale_type="INVOICE", discount=discount)

        quote = Quote(
            quote_number=next_document_number("QUOTE"),
            client_id=client_id,
            user_id=user_id,
            status="DRAFT",
            subtotal=pricing.subtotal,
            discount=pricing.discount,
            tax=pricing.tax,
            total=pricing.total,
            margin=pricing.margin,
            currency_code=(currency.strip().upper() if isinstance(currency, str) and currency.strip()
                           else currency_service.get_default_currency_code()),
            valid_until=valid_until,
            notes=str(notes).strip() if notes else None,
        )
        for priced in pricing.lines:
            quote.items.append(QuoteItem(
                product_id=priced.product_id,
                quantity=priced.quantity,
                unit_price=priced.unit_price,
                discount=priced.discount,
                total_price=priced.total_price,
                purchase_price=priced.purchase_price,
                margin=priced.margin,
            ))
        db.session.add(quote)
        db.session.commit()
        return quote

    return run_with_retry(_op)


def update_quote_status(quote_id: int, status: str) -> Quote:
    new_status = parse_choice(status, "status", MANUAL_STATUSES)

    def _op() -> Quote:
        quote = lock_for_update(db.session.query(Quote).filter_by(id=quote_id)).first()
        if not quote:
            raise NotFoundError("Quote not found")
        if quote.status == "CONVERTED" or quote.converted_sale_id is not None:
            raise AlreadyConvertedError("A converted quote cannot be modified")
        quote.status = new_status
        db.session.commit()
        return quote

    return run_with_retry(_op)


def _billed_lines(quote: Quote, quantities) -> list[OrderLine]:
    items = {item.id: item for item in quote.items}
    if not quantities:
        chosen = [(item, item.quantity) for item in quote.items]
    else:
        if not isinstance(quantities, list):
            raise ValidationError("quantities must be a list")
        seen: dict[int, int] = {}
        for raw in quantities:
            if not isinstance(raw, dict) or raw.get("quote_item_id") is None:
                raise ValidationError("Each quantity needs a quote_item_id")
            item_id = parse_int(raw.get("quote_item_id"), "quote_item_id", minimum=1)
            item = items.get(item_id)
            if item is None:
                raise NotFoundError(f"Unknown quote line: {item_id}")
            qty = parse_int(raw.get("quantity"), "quantity")
            if qty < 1 or qty > item.quantity:
                raise InvalidQuantityError(
                    f"Quantity for {item.product.name if item.product else item_id} must be between 1 and {item.quantity}",
                    details={"quote_item_id": item_id, "ordered_quantity": item.quantity},
                )
            seen[item_id] = qty
        chosen = [(items[item_id], qty) for item_id, qty in sorted(seen.items())]

    if not chosen:
        raise ValidationError("No line to invoice")

    return [
        OrderLine(
            product_id=item.product_id,
            quantity=qty,
            unit_price=item.unit_price,
            discount=item.discount if qty == item.quantity else quantize_money(item.discount * qty / item.quantity),
        )
        for item, qty in chosen
    ]


def _billed_discount(quote: Quote, lines: list[OrderLine]) -> Decimal:
    """The quote discount scaled to the share of its subtotal being billed."""
    billed = sum((line.unit_price * line.quantity - line.discount for line in lines), Decimal("0"))
    if not quote.discount or not quote.subtotal or billed >= quote.subtotal:
        return quote.discount or Decimal("0")
    return quantize_money(quote.discount * billed / quote.subtotal)


def convert_quote_to_sale(quote_id: int, user_id: int | None, quantities=None):
    """
    Check out the quote as an INVOICE on CREDIT and mark it CONVERTED.

    Returns the new Sale. Stock checks apply exactly as at the counter.
    """
    def _op():
        quote = lock_for_update(db.session.query(Quote).filter_by(id=quote_id)).first()
        if not quote:
            raise NotFoundError("Quote not found")
        if quote.status == "CONVERTED" or quote.converted_sale_id is not None:
            raise AlreadyConvertedError(
                "Quote has already been converted",
                details={"converted_sale_id": quote.converted_sale_id},
            )
        if quote.status == "REFUSED":
            raise StateTransitionError("A refused quote cannot be converted")
        if quote.client_id is None:
            raise ValidationError("A client is required to convert a quote into a credit invoice")

        lines = _billed_lines(quote, quantities)
        request = SaleRequest(
            items=lines,
            type="INVOICE",
            payment_method="CREDIT",
            client_id=quote.client_id,
            discount=_billed_discount(quote, lines),
            currency_code=quote.currency_code,
        )
        sale = _create_sale_locked(request, user_id)

        quote.status = "CONVERTED"
        quote.converted_sale_id = sale.id
        quote.converted_at = utcnow()
        db.session.commit()
        return sale

    return run_with_retry(_op)


def expire_quotes(now: datetime | None = None) -> int:
    """DRAFT/SENT quotes past valid_until become EXPIRED; returns how many."""
    now = now or utcnow()

    def _op() -> int:
        quotes = (
            db.session.query(Quote)
            .filter(
                Quote.status.in_(EXPIRABLE_STATUSES),
                Quote.valid_until.isnot(None),
                Quote.valid_until < now,
            )
            .all()
        )
        for quote in quotes:
            quote.status = "EXPIRED"
        db.session.commit()
        return len(quotes)

    return run_with_retry(_op)


def get_quote(quote_id: int) -> Quote:
    quote = db.session.get(Quote, quote_id)
    if not quote:
        raise NotFoundError("Quote not found")
    return quote


@dataclass
class QuoteFilters:
    client_id: int | None = None
    status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 1
    limit: int = 50


def list_quotes(filters: QuoteFilters | None = None) -> dict:
    filters = filters or QuoteFilters()
    query = db.session.query(Quote)
    if filters.client_id:
        query = query.filter(Quote.client_id == filters.client_id)
    if filters.status:
        query = query.filter(Quote.status == filters.status.upper())
    if filters.start_date:
        query = query.filter(Quote.created_at >= filters.start_date)
    if filters.end_date:
        query = query.filter(Quote.created_at <= filters.end_date)
    query = query.order_by(Quote.created_at.desc(), Quote.id.desc())
    return paginate(query, filters.page, filters.limit, lambda q: q.to_dict())
