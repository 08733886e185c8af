"""
Sales lifecycle tests.

Verifies:
- Checkout prices the sale, numbers it and decrements stock atomically
- Insufficient stock and validation failures leave no trace
- Cancellation restores stock once and only once
- The stock ledger always sums to the cached stock
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from managepme.extensions import db
from managepme.models import Product, Sale, StockMovement
from managepme.services import refund_service, register_service, sales_service, stock_service
from managepme.services.errors import (
    AlreadyCancelledError,
    InsufficientStockError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from managepme.time_utils import utcnow

from conftest import USER_ID


def _ticket(product, quantity=4, **extra):
    data = {
        "type": "TICKET",
        "payment_method": "CASH",
        "items": [{"product_id": product.id, "quantity": quantity, "unit_price": 20, "discount": 5}],
    }
    data.update(extra)
    return data


def test_ticket_sale_decrements_stock(product):
    sale = sales_service.create_sale(_ticket(product), USER_ID)

    assert sale.status == "COMPLETED"
    assert sale.document_number == "TKT-000001"
    assert sale.total == Decimal("75.000")
    assert sale.tax == Decimal("0.000")
    assert sale.margin == Decimal("27.000")
    assert sale.amount_paid == Decimal("75.000")
    assert db.session.get(Product, product.id).stock_current == 6

    movement = db.session.query(StockMovement).filter_by(type="SALE").one()
    assert movement.quantity == -4
    assert movement.reference == sale.document_number
    assert movement.reference_id == sale.id


def test_invoice_sale_taxed_and_due_in_thirty_days(product, customer):
    before = utcnow()
    sale = sales_service.create_sale(
        _ticket(product, type="INVOICE", payment_method="CREDIT", client_id=customer.id),
        USER_ID,
    )

    assert sale.document_number == "INV-000001"
    assert sale.tax == Decimal("15.000")
    assert sale.total == Decimal("90.000")
    assert sale.amount_paid == Decimal("0.000")
    assert before + timedelta(days=29) < sale.due_date <= utcnow() + timedelta(days=30)


def test_ticket_and_invoice_sequences_are_independent(product):
    first = sales_service.create_sale(_ticket(product, quantity=1), USER_ID)
    second = sales_service.create_sale(_ticket(product, quantity=1), USER_ID)
    invoice = sales_service.create_sale(_ticket(product, quantity=1, type="INVOICE"), USER_ID)

    assert first.document_number == "TKT-000001"
    assert second.document_number == "TKT-000002"
    assert invoice.document_number == "INV-000001"


def test_cash_over_tender_gives_change(product):
    sale = sales_service.create_sale(_ticket(product, cash_amount=100), USER_ID)

    assert sale.amount_paid == Decimal("75.000")
    assert sale.change_due == Decimal("25.000")


def test_mixed_payment_splits_cash_and_card(product):
    sale = sales_service.create_sale(
        _ticket(product, payment_method="MIXED", cash_amount=30, card_amount=45),
        USER_ID,
    )

    assert sale.amount_paid == Decimal("75.000")
    assert sale.change_due == Decimal("0.000")


def test_card_cannot_be_over_tendered(product):
    with pytest.raises(ValidationError):
        sales_service.create_sale(_ticket(product, payment_method="CARD", card_amount=80), USER_ID)


def test_insufficient_stock_is_rejected_without_side_effects(product):
    with pytest.raises(InsufficientStockError) as exc:
        sales_service.create_sale(_ticket(product, quantity=11), USER_ID)

    assert "Café moulu 250g" in exc.value.message
    assert exc.value.details["available"] == 10
    assert db.session.query(Sale).count() == 0
    assert db.session.get(Product, product.id).stock_current == 10
    assert stock_service.ledger_quantity(product.id) == 10


def test_same_product_on_two_lines_is_checked_in_total(product):
    data = {
        "items": [
            {"product_id": product.id, "quantity": 6},
            {"product_id": product.id, "quantity": 5},
        ],
    }
    with pytest.raises(InsufficientStockError):
        sales_service.create_sale(data, USER_ID)


def test_failure_after_first_line_rolls_everything_back(product, other_product):
    data = {
        "items": [
            {"product_id": product.id, "quantity": 2},
            {"product_id": other_product.id, "quantity": 50},
        ],
    }
    with pytest.raises(InsufficientStockError):
        sales_service.create_sale(data, USER_ID)

    assert db.session.get(Product, product.id).stock_current == 10
    assert db.session.query(StockMovement).filter_by(type="SALE").count() == 0


def test_unknown_product_and_client(product):
    with pytest.raises(NotFoundError):
        sales_service.create_sale({"items": [{"product_id": 999, "quantity": 1}]}, USER_ID)
    with pytest.raises(NotFoundError):
        sales_service.create_sale(_ticket(product, client_id=999), USER_ID)


def test_inactive_product_cannot_be_sold(product):
    from managepme.services import products_service
    products_service.deactivate_product(product.id)

    with pytest.raises(NotFoundError):
        sales_service.create_sale(_ticket(product, quantity=1), USER_ID)


def test_credit_sale_requires_client(product):
    with pytest.raises(ValidationError):
        sales_service.create_sale(_ticket(product, payment_method="CREDIT"), USER_ID)


@pytest.mark.parametrize("payload", [
    {},
    {"items": []},
    {"items": [{"product_id": 1, "quantity": -1}]},
    {"items": [{"product_id": 1, "quantity": 1}], "type": "RECEIPT"},
    {"items": [{"product_id": 1, "quantity": 1}], "payment_method": "BARTER"},
])
def test_malformed_requests(payload):
    with pytest.raises(ValidationError):
        sales_service.create_sale(payload, USER_ID)


class TestCancellation:
    def test_cancel_restores_stock(self, product):
        sale = sales_service.create_sale(_ticket(product), USER_ID)

        cancelled = sales_service.cancel_sale(sale.id, USER_ID)

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_by_user_id == USER_ID
        assert cancelled.cancelled_at is not None
        assert db.session.get(Product, product.id).stock_current == 10
        movement = db.session.query(StockMovement).filter_by(reason=sales_service.CANCEL_REASON).one()
        assert movement.type == "ADJUSTMENT"
        assert movement.quantity == 4

    def test_second_cancel_is_refused(self, product):
        sale = sales_service.create_sale(_ticket(product), USER_ID)
        sales_service.cancel_sale(sale.id, USER_ID)

        with pytest.raises(AlreadyCancelledError):
            sales_service.cancel_sale(sale.id, USER_ID)

        assert db.session.get(Product, product.id).stock_current == 10

    def test_cancel_after_partial_refund_restores_only_outstanding_units(self, product):
        sale = sales_service.create_sale(_ticket(product), USER_ID)
        refund_service.create_refund(sale.id, [{"sale_item_id": sale.items[0].id, "quantity": 1}], USER_ID)

        sales_service.cancel_sale(sale.id, USER_ID)

        assert db.session.get(Product, product.id).stock_current == 10
        assert stock_service.ledger_quantity(product.id) == 10

    def test_fully_refunded_sale_cannot_be_cancelled(self, product):
        sale = sales_service.create_sale(_ticket(product), USER_ID)
        refund_service.create_refund(sale.id, [{"sale_item_id": sale.items[0].id, "quantity": 4}], USER_ID)

        with pytest.raises(StateTransitionError):
            sales_service.cancel_sale(sale.id, USER_ID)

    def test_cancel_unknown_sale(self):
        with pytest.raises(NotFoundError):
            sales_service.cancel_sale(12345, USER_ID)


def test_ledger_matches_cached_stock_after_mixed_operations(product, other_product):
    a = sales_service.create_sale({"items": [{"product_id": product.id, "quantity": 3}]}, USER_ID)
    sales_service.create_sale(
        {"items": [{"product_id": product.id, "quantity": 2}, {"product_id": other_product.id, "quantity": 1}]},
        USER_ID,
    )
    refund_service.create_refund(a.id, [{"sale_item_id": a.items[0].id, "quantity": 1}], USER_ID)
    stock_service.create_damage(product.id, "DAMAGE", -1, "Paquet déchiré", USER_ID)

    for p in (product, other_product):
        report = stock_service.reconcile_stock(p.id)
        assert report["consistent"] is True

    assert db.session.get(Product, product.id).stock_current == 5


def test_sale_attached_to_open_register(product):
    register = register_service.open_register(USER_ID, 50)
    sale = sales_service.create_sale(_ticket(product, cash_register_id=register.id), USER_ID)
    assert sale.cash_register_id == register.id


def test_sale_on_closed_register_is_refused(product):
    register = register_service.open_register(USER_ID, 50)
    register_service.close_register(register.id, USER_ID, 50)

    with pytest.raises(StateTransitionError):
        sales_service.create_sale(_ticket(product, cash_register_id=register.id), USER_ID)


def test_list_sales_filters_and_paginates(product, customer):
    sales_service.create_sale(_ticket(product, quantity=1), USER_ID)
    sales_service.create_sale(_ticket(product, quantity=1, type="INVOICE", client_id=customer.id), USER_ID)
    sales_service.create_sale(_ticket(product, quantity=1), 2)

    page = sales_service.list_sales(sales_service.SaleFilters(type="ticket", limit=1))
    assert page["total"] == 2
    assert page["total_pages"] == 2
    assert len(page["data"]) == 1

    by_client = sales_service.list_sales(sales_service.SaleFilters(client_id=customer.id))
    assert [s["document_number"] for s in by_client["data"]] == ["INV-000001"]

    by_user = sales_service.list_sales(sales_service.SaleFilters(user_id=2))
    assert by_user["total"] == 1
