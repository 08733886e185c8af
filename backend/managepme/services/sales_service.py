"""
Sales Service - checkout and cancellation

WHY: A sale is created COMPLETED in one unit of work: priced, numbered,
stock decremented and ledger appended together. Either everything is
committed or nothing is.

DESIGN:
- Products are locked in ascending id order before the stock check, so
  two checkouts on the same product serialize instead of both passing
- Document numbers come from document_sequences (TKT-/INV-), allocated in
  the same transaction as the sale
- Payment capture: CREDIT sales start unpaid; other methods take the
  tendered cash and card, capped at the total (cash over-tender becomes
  change_due)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import CashRegister, Client, Sale, SaleItem
from managepme.time_utils import utcnow
from managepme.validation import (
    parse_amount,
    parse_choice,
    parse_optional_amount,
    parse_optional_datetime,
    parse_optional_int,
    quantize_money,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .errors import (
    AlreadyCancelledError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from .pagination import paginate
from .pricing_service import OrderLine, SALE_TYPES, price_lines
from . import currency_service, stock_service


PAYMENT_METHODS = {"CASH", "CARD", "MIXED", "CREDIT", "OTHER"}
SALE_STATUSES = {"PENDING", "COMPLETED", "CANCELLED", "REFUNDED"}

CANCEL_REASON = "Annulation de vente"


@dataclass
class SaleRequest:
    items: list[OrderLine]
    type: str = "TICKET"
    payment_method: str = "CASH"
    client_id: int | None = None
    cash_amount: Decimal | None = None
    card_amount: Decimal | None = None
    discount: Decimal = Decimal("0")
    due_date: datetime | None = None
    currency_code: str | None = None
    cash_register_id: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SaleRequest":
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("At least one item is required")
        currency = data.get("currency_code")
        return cls(
            items=[OrderLine.from_dict(raw) for raw in raw_items],
            type=parse_choice(data.get("type"), "type", set(SALE_TYPES), default="TICKET"),
            payment_method=parse_choice(data.get("payment_method"), "payment_method", PAYMENT_METHODS, default="CASH"),
            client_id=parse_optional_int(data.get("client_id"), "client_id", minimum=1),
            cash_amount=parse_optional_amount(data.get("cash_amount"), "cash_amount"),
            card_amount=parse_optional_amount(data.get("card_amount"), "card_amount"),
            discount=parse_amount(data.get("discount") or 0, "discount"),
            due_date=parse_optional_datetime(data.get("due_date"), "due_date"),
            currency_code=currency.strip().upper() if isinstance(currency, str) and currency.strip() else None,
            cash_register_id=parse_optional_int(data.get("cash_register_id"), "cash_register_id", minimum=1),
        )


@dataclass(frozen=True)
class PaymentCapture:
    cash_amount: Decimal | None
    card_amount: Decimal | None
    amount_paid: Decimal
    change_due: Decimal


def capture_payment(request: SaleRequest, total: Decimal) -> PaymentCapture:
    """
    Split the tendered amounts into what settles the sale and the change.

    Card can never be over-tendered; cash can, and the excess is change.
    """
    if request.payment_method == "CREDIT":
        return PaymentCapture(None, None, Decimal("0"), Decimal("0"))

    cash = request.cash_amount
    card = request.card_amount
    if cash is None and card is None:
        if request.payment_method == "CARD":
            card = total
        else:
            cash = total

    card_value = card or Decimal("0")
    if card_value > total:
        raise ValidationError(
            "card_amount cannot exceed the sale total",
            details={"card_amount": float(card_value), "total": float(total)},
        )

    tendered = (cash or Decimal("0")) + card_value
    amount_paid = min(tendered, total)
    change_due = tendered - amount_paid if cash else Decimal("0")
    return PaymentCapture(cash, card, quantize_money(amount_paid), quantize_money(change_due))


def _require_open_register(register_id: int) -> CashRegister:
    register = lock_for_update(db.session.query(CashRegister).filter_by(id=register_id)).first()
    if not register:
        raise NotFoundError("Cash register not found")
    if register.status != "OPEN":
        raise StateTransitionError("Cash register is closed", details={"cash_register_id": register_id})
    return register


def _create_sale_locked(request: SaleRequest, user_id: int | None) -> Sale:
    """
    Validate, price and persist a sale inside the caller's unit of work.

    Does not commit. Every check runs before the first write.
    """
    if request.client_id is not None and db.session.get(Client, request.client_id) is None:
        raise NotFoundError("Client not found", details={"client_id": request.client_id})
    if request.payment_method == "CREDIT" and request.client_id is None:
        raise ValidationError("A client is required for credit sales")
    if request.cash_register_id is not None:
        _require_open_register(request.cash_register_id)

    requested: dict[int, int] = {}
    for line in request.items:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    products = stock_service.lock_products(requested.keys(), require_active=True)
    stock_service.check_available(products, requested)

    pricing = price_lines(request.items, products, sale_type=request.type, discount=request.discount)
    payment = capture_payment(request, pricing.total)

    due_date = request.due_date
    if due_date is None and request.type == "INVOICE":
        due_date = utcnow() + timedelta(days=current_app.config["INVOICE_DUE_DAYS"])

    sale = Sale(
        document_number=next_document_number(request.type),
        type=request.type,
        status="COMPLETED",
        client_id=request.client_id,
        user_id=user_id,
        cash_register_id=request.cash_register_id,
        subtotal=pricing.subtotal,
        discount=pricing.discount,
        tax=pricing.tax,
        total=pricing.total,
        margin=pricing.margin,
        payment_method=request.payment_method,
        cash_amount=payment.cash_amount,
        card_amount=payment.card_amount,
        amount_paid=payment.amount_paid,
        change_due=payment.change_due,
        due_date=due_date,
        currency_code=request.currency_code or currency_service.get_default_currency_code(),
    )
    for priced in pricing.lines:
        sale.items.append(SaleItem(
            product_id=priced.product_id,
            quantity=priced.quantity,
            unit_price=priced.unit_price,
            discount=priced.discount,
            total_price=priced.total_price,
            purchase_price=priced.purchase_price,
            margin=priced.margin,
            refunded_quantity=0,
        ))
    db.session.add(sale)
    db.session.flush()

    for item in sale.items:
        stock_service.apply_stock_movement(
            products[item.product_id],
            "SALE",
            -item.quantity,
            unit_price=item.unit_price,
            reference=sale.document_number,
            reference_id=sale.id,
            user_id=user_id,
            reason=f"Vente {sale.document_number}",
        )

    return sale


def create_sale(data, user_id: int | None) -> Sale:
    """Checkout: returns the committed COMPLETED sale."""
    request = data if isinstance(data, SaleRequest) else SaleRequest.from_dict(data)

    def _op() -> Sale:
        sale = _create_sale_locked(request, user_id)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def cancel_sale(sale_id: int, user_id: int | None) -> Sale:
    """
    COMPLETED -> CANCELLED, putting back the quantities still out.

    Lines already returned through an Avoir were restocked then; only
    quantity - refunded_quantity is restored here.
    """
    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")
        if sale.status == "CANCELLED":
            raise AlreadyCancelledError("Sale is already cancelled", details={"sale_id": sale_id})
        if sale.status != "COMPLETED":
            raise StateTransitionError(f"Cannot cancel sale with status {sale.status}")

        products = stock_service.lock_products([item.product_id for item in sale.items])
        for item in sale.items:
            outstanding = item.quantity - (item.refunded_quantity or 0)
            if outstanding <= 0:
                continue
            stock_service.apply_stock_movement(
                products[item.product_id],
                "ADJUSTMENT",
                outstanding,
                unit_price=item.unit_price,
                reference=sale.document_number,
                reference_id=sale.id,
                user_id=user_id,
                reason=CANCEL_REASON,
            )

        sale.status = "CANCELLED"
        sale.cancelled_at = utcnow()
        sale.cancelled_by_user_id = user_id
        db.session.commit()
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


@dataclass
class SaleFilters:
    start_date: datetime | None = None
    end_date: datetime | None = None
    client_id: int | None = None
    user_id: int | None = None
    type: str | None = None
    status: str | None = None
    cash_register_id: int | None = None
    page: int = 1
    limit: int = 50


def list_sales(filters: SaleFilters | None = None) -> dict:
    filters = filters or SaleFilters()
    query = db.session.query(Sale)
    if filters.start_date:
        query = query.filter(Sale.created_at >= filters.start_date)
    if filters.end_date:
        query = query.filter(Sale.created_at <= filters.end_date)
    if filters.client_id:
        query = query.filter(Sale.client_id == filters.client_id)
    if filters.user_id:
        query = query.filter(Sale.user_id == filters.user_id)
    if filters.type:
        query = query.filter(Sale.type == filters.type.upper())
    if filters.status:
        query = query.filter(Sale.status == filters.status.upper())
    if filters.cash_register_id:
        query = query.filter(Sale.cash_register_id == filters.cash_register_id)

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, filters.page, filters.limit, lambda s: s.to_dict())
