"""
Refund (Avoir) tests.

Verifies:
- Refund amount and restock for a partial return
- Cumulative cap across several Avoirs
- Avoir numbering per day
- Refused states (cancelled sale, foreign line, bad quantities)
"""

from decimal import Decimal

import pytest

from managepme.extensions import db
from managepme.models import Product, Sale, StockMovement
from managepme.services import refund_service, sales_service
from managepme.services.errors import (
    CancelledDocumentError,
    InvalidQuantityError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from managepme.time_utils import today

from conftest import USER_ID


@pytest.fixture
def sale(product):
    return sales_service.create_sale(
        {"items": [{"product_id": product.id, "quantity": 4, "unit_price": 20, "discount": 5}]},
        USER_ID,
    )


def _line(sale):
    return sale.items[0]


def test_partial_refund_restocks_and_values_units(sale, product):
    refund = refund_service.create_refund(
        sale.id, [{"sale_item_id": _line(sale).id, "quantity": 2}], USER_ID, reason="Emballage abîmé"
    )

    assert refund.refund_amount == Decimal("40.000")
    assert refund.reason == "Emballage abîmé"
    assert refund.refunded_items[0]["quantity"] == 2
    assert refund.refunded_items[0]["total_price"] == 40.0
    assert db.session.get(Product, product.id).stock_current == 8

    movement = db.session.query(StockMovement).filter_by(type="REFUND").one()
    assert movement.quantity == 2
    assert movement.reference == refund.avoir_number

    # The sale itself keeps its totals
    reloaded = db.session.get(Sale, sale.id)
    assert reloaded.status == "COMPLETED"
    assert reloaded.total == Decimal("75.000")
    assert _line(reloaded).refunded_quantity == 2


def test_avoir_number_format(sale):
    first = refund_service.create_refund(sale.id, [{"sale_item_id": _line(sale).id, "quantity": 1}], USER_ID)
    second = refund_service.create_refund(sale.id, [{"sale_item_id": _line(sale).id, "quantity": 1}], USER_ID)

    day = today().strftime("%Y%m%d")
    assert first.avoir_number == f"AV-{day}-001"
    assert second.avoir_number == f"AV-{day}-002"


def test_cumulative_refunds_cannot_exceed_sold_quantity(sale, product):
    item_id = _line(sale).id
    refund_service.create_refund(sale.id, [{"sale_item_id": item_id, "quantity": 3}], USER_ID)

    with pytest.raises(InvalidQuantityError) as exc:
        refund_service.create_refund(sale.id, [{"sale_item_id": item_id, "quantity": 2}], USER_ID)

    assert exc.value.details["refundable_quantity"] == 1
    assert db.session.get(Product, product.id).stock_current == 9


def test_duplicate_lines_in_one_request_are_summed(sale):
    item_id = _line(sale).id
    with pytest.raises(InvalidQuantityError):
        refund_service.create_refund(
            sale.id,
            [{"sale_item_id": item_id, "quantity": 3}, {"sale_item_id": item_id, "quantity": 2}],
            USER_ID,
        )


def test_full_return_marks_sale_refunded(sale):
    refund_service.create_refund(sale.id, [{"sale_item_id": _line(sale).id, "quantity": 4}], USER_ID)

    assert db.session.get(Sale, sale.id).status == "REFUNDED"
    with pytest.raises(StateTransitionError):
        refund_service.create_refund(sale.id, [{"sale_item_id": _line(sale).id, "quantity": 1}], USER_ID)


def test_invoice_refund_includes_tax(product):
    invoice = sales_service.create_sale(
        {"type": "INVOICE", "items": [{"product_id": product.id, "quantity": 2}]},
        USER_ID,
    )
    refund = refund_service.create_refund(invoice.id, [{"sale_item_id": invoice.items[0].id, "quantity": 1}], USER_ID)

    assert refund.refund_amount == Decimal("24.000")


@pytest.mark.parametrize("quantity", [0, -1])
def test_quantity_must_be_positive(sale, quantity):
    with pytest.raises(InvalidQuantityError):
        refund_service.create_refund(sale.id, [{"sale_item_id": _line(sale).id, "quantity": quantity}], USER_ID)


def test_line_from_another_sale(sale, product):
    other = sales_service.create_sale({"items": [{"product_id": product.id, "quantity": 1}]}, USER_ID)
    with pytest.raises(NotFoundError):
        refund_service.create_refund(sale.id, [{"sale_item_id": other.items[0].id, "quantity": 1}], USER_ID)


def test_cancelled_sale_cannot_be_refunded(sale):
    sales_service.cancel_sale(sale.id, USER_ID)
    with pytest.raises(CancelledDocumentError):
        refund_service.create_refund(sale.id, [{"sale_item_id": _line(sale).id, "quantity": 1}], USER_ID)


def test_empty_request(sale):
    with pytest.raises(ValidationError):
        refund_service.create_refund(sale.id, [], USER_ID)


def test_unknown_sale():
    with pytest.raises(NotFoundError):
        refund_service.create_refund(999, [{"sale_item_id": 1, "quantity": 1}], USER_ID)


def test_list_refunds_for_sale(sale):
    refund_service.create_refund(sale.id, [{"sale_item_id": _line(sale).id, "quantity": 1}], USER_ID)
    refund_service.create_refund(sale.id, [{"sale_item_id": _line(sale).id, "quantity": 1}], USER_ID)

    refunds = refund_service.list_refunds(sale.id)
    assert len(refunds) == 2
    assert refund_service.get_refund(refunds[0].id).sale_id == sale.id
