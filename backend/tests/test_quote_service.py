"""
Quote (Devis) tests.

Verifies:
- Quotes are priced like invoices and move no stock
- Conversion creates exactly one credit invoice and marks the quote
- Partial conversion bounds, refused quotes, expiry
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from managepme.extensions import db
from managepme.models import Product, Quote, Sale
from managepme.services import quote_service
from managepme.services.errors import (
    AlreadyConvertedError,
    InsufficientStockError,
    InvalidQuantityError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from managepme.time_utils import utcnow

from conftest import USER_ID


@pytest.fixture
def quote(product, other_product, customer):
    return quote_service.create_quote(
        {
            "client_id": customer.id,
            "items": [
                {"product_id": product.id, "quantity": 2},
                {"product_id": other_product.id, "quantity": 2},
            ],
            "notes": "Livraison sous 48h",
        },
        USER_ID,
    )


def test_quote_is_priced_as_invoice_without_stock_change(quote, product):
    assert quote.quote_number == "DEV-000001"
    assert quote.status == "DRAFT"
    assert quote.subtotal == Decimal("55.000")
    assert quote.tax == Decimal("11.000")
    assert quote.total == Decimal("66.000")
    assert db.session.get(Product, product.id).stock_current == 10


def test_convert_creates_credit_invoice(quote, product, customer):
    sale = quote_service.convert_quote_to_sale(quote.id, USER_ID)

    assert sale.type == "INVOICE"
    assert sale.payment_method == "CREDIT"
    assert sale.client_id == customer.id
    assert sale.total == Decimal("66.000")
    assert sale.amount_paid == Decimal("0.000")
    assert db.session.get(Product, product.id).stock_current == 8

    converted = db.session.get(Quote, quote.id)
    assert converted.status == "CONVERTED"
    assert converted.converted_sale_id == sale.id
    assert converted.converted_at is not None


def test_second_conversion_is_refused(quote):
    quote_service.convert_quote_to_sale(quote.id, USER_ID)

    with pytest.raises(AlreadyConvertedError):
        quote_service.convert_quote_to_sale(quote.id, USER_ID)

    assert db.session.query(Sale).count() == 1


def test_partial_conversion(quote, product):
    line = next(item for item in quote.items if item.product_id == product.id)

    sale = quote_service.convert_quote_to_sale(quote.id, USER_ID, [{"quote_item_id": line.id, "quantity": 1}])

    assert len(sale.items) == 1
    assert sale.items[0].quantity == 1
    assert sale.total == Decimal("24.000")
    assert db.session.get(Product, product.id).stock_current == 9


def test_partial_conversion_prorates_discounts(product, customer):
    discounted = quote_service.create_quote(
        {
            "client_id": customer.id,
            "discount": 30,
            "items": [{"product_id": product.id, "quantity": 4, "discount": 8}],
        },
        USER_ID,
    )
    line = discounted.items[0]
    assert discounted.subtotal == Decimal("72.000")

    sale = quote_service.convert_quote_to_sale(discounted.id, USER_ID, [{"quote_item_id": line.id, "quantity": 1}])

    # line: 20 - 8/4 = 18; document: 30 * 18/72 = 7.5; (18 - 7.5) * 1.2
    assert sale.items[0].discount == Decimal("2.000")
    assert sale.subtotal == Decimal("18.000")
    assert sale.discount == Decimal("7.500")
    assert sale.total == Decimal("12.600")


def test_full_conversion_keeps_whole_discount(product, customer):
    discounted = quote_service.create_quote(
        {"client_id": customer.id, "discount": 30, "items": [{"product_id": product.id, "quantity": 4}]},
        USER_ID,
    )

    sale = quote_service.convert_quote_to_sale(discounted.id, USER_ID)

    assert sale.discount == Decimal("30.000")
    assert sale.total == discounted.total


@pytest.mark.parametrize("quantity", [0, 3])
def test_partial_quantity_bounds(quote, product, quantity):
    line = next(item for item in quote.items if item.product_id == product.id)
    with pytest.raises(InvalidQuantityError):
        quote_service.convert_quote_to_sale(quote.id, USER_ID, [{"quote_item_id": line.id, "quantity": quantity}])


def test_unknown_quote_line(quote):
    with pytest.raises(NotFoundError):
        quote_service.convert_quote_to_sale(quote.id, USER_ID, [{"quote_item_id": 999, "quantity": 1}])


def test_refused_quote_cannot_be_converted(quote):
    quote_service.update_quote_status(quote.id, "refused")
    with pytest.raises(StateTransitionError):
        quote_service.convert_quote_to_sale(quote.id, USER_ID)


def test_quote_without_client_cannot_be_converted(product):
    anonymous = quote_service.create_quote({"items": [{"product_id": product.id, "quantity": 1}]}, USER_ID)
    with pytest.raises(ValidationError):
        quote_service.convert_quote_to_sale(anonymous.id, USER_ID)


def test_conversion_short_of_stock_leaves_quote_open(product, customer):
    big = quote_service.create_quote(
        {"client_id": customer.id, "items": [{"product_id": product.id, "quantity": 50}]}, USER_ID
    )

    with pytest.raises(InsufficientStockError):
        quote_service.convert_quote_to_sale(big.id, USER_ID)

    assert db.session.get(Quote, big.id).status == "DRAFT"
    assert db.session.query(Sale).count() == 0


def test_status_updates(quote):
    assert quote_service.update_quote_status(quote.id, "SENT").status == "SENT"
    with pytest.raises(ValidationError):
        quote_service.update_quote_status(quote.id, "CONVERTED")

    quote_service.convert_quote_to_sale(quote.id, USER_ID)
    with pytest.raises(AlreadyConvertedError):
        quote_service.update_quote_status(quote.id, "DRAFT")


def test_expire_quotes(product):
    now = utcnow()
    stale = quote_service.create_quote(
        {"items": [{"product_id": product.id, "quantity": 1}], "valid_until": now - timedelta(days=1)}, USER_ID
    )
    fresh = quote_service.create_quote(
        {"items": [{"product_id": product.id, "quantity": 1}], "valid_until": now + timedelta(days=10)}, USER_ID
    )

    assert quote_service.expire_quotes(now) == 1
    assert db.session.get(Quote, stale.id).status == "EXPIRED"
    assert db.session.get(Quote, fresh.id).status == "DRAFT"


def test_list_quotes_by_client(quote, customer, product):
    quote_service.create_quote({"items": [{"product_id": product.id, "quantity": 1}]}, USER_ID)

    result = quote_service.list_quotes(quote_service.QuoteFilters(client_id=customer.id))
    assert result["total"] == 1
    assert result["data"][0]["quote_number"] == "DEV-000001"
