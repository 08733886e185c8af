"""
Pricing tests.

Verifies:
- Line totals, margin and tax for tickets (no tax) and invoices (20%)
- Document discount applied before tax, not subtracted from margin
- Out-of-range discounts and quantities are rejected
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from managepme.services.errors import NotFoundError, ValidationError
from managepme.services.pricing_service import OrderLine, price_lines, tax_rate_for


@pytest.fixture
def catalog():
    return {
        1: SimpleNamespace(sale_price=Decimal("20"), purchase_price=Decimal("12")),
        2: SimpleNamespace(sale_price=Decimal("7.5"), purchase_price=Decimal("4.2")),
    }


def test_ticket_line_with_discount(catalog):
    result = price_lines(
        [OrderLine(product_id=1, quantity=4, unit_price=Decimal("20"), discount=Decimal("5"))],
        catalog,
        sale_type="TICKET",
    )

    line = result.lines[0]
    assert line.total_price == Decimal("75.000")
    assert line.margin == Decimal("27.000")
    assert result.subtotal == Decimal("75.000")
    assert result.tax == Decimal("0.000")
    assert result.total == Decimal("75.000")
    assert result.margin == Decimal("27.000")


def test_invoice_adds_twenty_percent_tax(catalog):
    result = price_lines(
        [OrderLine(product_id=1, quantity=4, unit_price=Decimal("20"), discount=Decimal("5"))],
        catalog,
        sale_type="INVOICE",
        discount=0,
    )

    assert result.tax == Decimal("15.000")
    assert result.total == Decimal("90.000")


def test_unit_price_defaults_to_catalog_price(catalog):
    result = price_lines([OrderLine(product_id=2, quantity=3)], catalog, sale_type="TICKET")

    assert result.lines[0].unit_price == Decimal("7.500")
    assert result.lines[0].purchase_price == Decimal("4.200")
    assert result.subtotal == Decimal("22.500")
    assert result.margin == Decimal("9.900")


def test_document_discount_is_taxed_after_and_not_taken_from_margin(catalog):
    result = price_lines(
        [OrderLine(product_id=1, quantity=2), OrderLine(product_id=2, quantity=2)],
        catalog,
        sale_type="INVOICE",
        discount="5",
    )

    # subtotal 40 + 15 = 55, taxable 50
    assert result.subtotal == Decimal("55.000")
    assert result.discount == Decimal("5.000")
    assert result.tax == Decimal("10.000")
    assert result.total == Decimal("60.000")
    assert result.margin == Decimal("22.600")


def test_tax_is_rounded_half_up_to_millimes(catalog):
    catalog[3] = SimpleNamespace(sale_price=Decimal("0.0125"), purchase_price=Decimal("0"))
    result = price_lines([OrderLine(product_id=3, quantity=1)], catalog, sale_type="INVOICE")

    # 0.0125 -> 0.013 (half-up), tax 0.0026 -> 0.003
    assert result.subtotal == Decimal("0.013")
    assert result.tax == Decimal("0.003")


def test_pricing_is_deterministic(catalog):
    lines = [OrderLine(product_id=1, quantity=3, discount=Decimal("1.5"))]
    assert price_lines(lines, catalog, sale_type="INVOICE") == price_lines(lines, catalog, sale_type="INVOICE")


def test_line_discount_cannot_exceed_line_amount(catalog):
    with pytest.raises(ValidationError):
        price_lines(
            [OrderLine(product_id=1, quantity=1, discount=Decimal("25"))],
            catalog,
            sale_type="TICKET",
        )


def test_document_discount_cannot_exceed_subtotal(catalog):
    with pytest.raises(ValidationError):
        price_lines([OrderLine(product_id=1, quantity=1)], catalog, sale_type="TICKET", discount=21)


def test_negative_discount_rejected(catalog):
    with pytest.raises(ValidationError):
        price_lines([OrderLine(product_id=1, quantity=1)], catalog, sale_type="TICKET", discount=-1)


def test_unknown_product(catalog):
    with pytest.raises(NotFoundError):
        price_lines([OrderLine(product_id=99, quantity=1)], catalog, sale_type="TICKET")


def test_unknown_sale_type(catalog):
    with pytest.raises(ValidationError):
        tax_rate_for("RECEIPT")


class TestOrderLineParsing:
    @pytest.mark.parametrize("quantity", [0, -2, "1.5", 2.0, True, None])
    def test_quantity_must_be_positive_integer(self, quantity):
        with pytest.raises(ValidationError):
            OrderLine.from_dict({"product_id": 1, "quantity": quantity})

    def test_product_id_required(self):
        with pytest.raises(ValidationError):
            OrderLine.from_dict({"quantity": 1})

    def test_parses_amounts_as_decimals(self):
        line = OrderLine.from_dict({"product_id": "1", "quantity": "2", "unit_price": "19.9", "discount": 1})
        assert line == OrderLine(product_id=1, quantity=2, unit_price=Decimal("19.900"), discount=Decimal("1.000"))
