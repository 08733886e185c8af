from datetime import date
from decimal import Decimal

import pytest

from managepme.extensions import db
from managepme.models import ExchangeRate
from managepme.services import currency_service
from managepme.services.errors import NotFoundError, ValidationError


@pytest.fixture
def seeded(db_session):
    currency_service.seed_currencies()
    currency_service.record_rate("EUR", "3.30", rate_date=date(2026, 1, 1))
    currency_service.record_rate("EUR", "3.35", rate_date=date(2026, 1, 15))
    currency_service.record_rate("USD", "2.9", rate_date=date(2026, 1, 15))


def test_seed_is_idempotent(db_session):
    created = currency_service.seed_currencies()
    assert created == len(currency_service.DEFAULT_CURRENCIES)
    assert currency_service.seed_currencies() == 0


def test_latest_rate_on_or_before_date(seeded):
    rates = currency_service.get_latest_rates(date(2026, 1, 10))
    assert rates["EUR"] == Decimal("3.3")
    assert "USD" not in rates
    assert rates["TND"] == Decimal("1")

    rates = currency_service.get_latest_rates(date(2026, 2, 1))
    assert rates["EUR"] == Decimal("3.35")
    assert rates["USD"] == Decimal("2.9")


def test_convert_through_base_currency(seeded):
    rates = currency_service.get_latest_rates(date(2026, 2, 1))

    assert currency_service.convert(100, "EUR", "TND", rates) == Decimal("335")
    assert currency_service.convert(335, "TND", "EUR", rates) == Decimal("100")
    # EUR -> USD crosses through TND: 100 * 3.35 / 2.9
    assert currency_service.convert(100, "EUR", "USD", rates).quantize(Decimal("0.001")) == Decimal("115.517")


def test_round_trip_returns_original_amount(seeded):
    rates = currency_service.get_latest_rates(date(2026, 2, 1))
    there = currency_service.convert("42.5", "TND", "EUR", rates)
    back = currency_service.convert(there, "EUR", "TND", rates)
    assert back.quantize(Decimal("0.001")) == Decimal("42.500")


def test_same_code_is_identity(seeded):
    assert currency_service.convert("12.345", "eur", "EUR", {}) == Decimal("12.345")


def test_unknown_code_falls_back_to_rate_one(seeded):
    rates = currency_service.get_latest_rates(date(2026, 2, 1))
    assert currency_service.convert(10, "XYZ", "TND", rates) == Decimal("10")
    assert currency_service.convert(10, None, "TND", rates) == Decimal("10")


def test_strict_mode_refuses_unknown_code(seeded):
    rates = currency_service.get_latest_rates(date(2026, 2, 1))
    with pytest.raises(NotFoundError):
        currency_service.convert(10, "XYZ", "TND", rates, strict=True)


def test_amount_must_be_a_number(seeded):
    with pytest.raises(ValidationError):
        currency_service.convert("ten", "EUR", "TND", {})


def test_record_rate_upserts_same_day(seeded):
    currency_service.record_rate("EUR", "3.40", rate_date=date(2026, 1, 15))
    rows = db.session.query(ExchangeRate).filter_by(currency_code="EUR", rate_date=date(2026, 1, 15)).all()
    assert len(rows) == 1
    assert rows[0].rate == Decimal("3.4")


def test_record_rate_validation(seeded):
    with pytest.raises(ValidationError):
        currency_service.record_rate("EUR", 0)
    with pytest.raises(NotFoundError):
        currency_service.record_rate("ZZZ", 1)


def test_default_currency_setting(seeded):
    assert currency_service.get_default_currency_code() == "TND"
    assert currency_service.set_default_currency("eur", user_id=1) == "EUR"
    assert currency_service.get_default_currency_code() == "EUR"

    with pytest.raises(ValidationError):
        currency_service.set_default_currency("ZZZ", user_id=1)
