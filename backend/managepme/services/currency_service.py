"""
Currency converter anchored to the base currency.

WHY: Prices are stored in whatever currency the document was issued in;
reports and conversions go through the base currency (TND by default)
using the latest daily rate published on or before the lookup date.

DESIGN: A rate means "1 unit of the currency = rate base-currency units".
convert() keeps the permissive fallback of the legacy tooling: an unknown
or empty code is treated as rate 1 (already in base currency). Callers
that cannot accept a silent fallback pass strict=True.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Mapping

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Currency, ExchangeRate
from managepme.time_utils import today
from managepme.validation import RATE_QUANT, to_decimal
from .concurrency import run_with_retry
from .errors import NotFoundError, ValidationError
from . import settings_service


# Seed list for `flask managepme seed-currencies`
DEFAULT_CURRENCIES = [
    {"code": "TND", "name": "Dinar tunisien", "symbol": "DT", "unit": 1},
    {"code": "EUR", "name": "Euro", "symbol": "€", "unit": 1},
    {"code": "USD", "name": "Dollar des USA", "symbol": "$", "unit": 1},
    {"code": "GBP", "name": "Livre sterling", "symbol": "£", "unit": 1},
    {"code": "CHF", "name": "Franc suisse", "symbol": "CHF", "unit": 1},
    {"code": "CAD", "name": "Dollar canadien", "symbol": "C$", "unit": 1},
    {"code": "JPY", "name": "Yen japonais", "symbol": "¥", "unit": 1000},
    {"code": "DZD", "name": "Dinar algérien", "symbol": "DA", "unit": 10},
    {"code": "MAD", "name": "Dirham marocain", "symbol": "DH", "unit": 10},
    {"code": "LYD", "name": "Dinar libyen", "symbol": "LD", "unit": 1},
    {"code": "SAR", "name": "Riyal saoudien", "symbol": "SR", "unit": 10},
    {"code": "AED", "name": "Dirham des EAU", "symbol": "AED", "unit": 10},
    {"code": "CNY", "name": "Yuan chinois", "symbol": "¥", "unit": 10},
]


def base_currency() -> str:
    return current_app.config["BASE_CURRENCY"]


def _normalize_code(code: str | None) -> str:
    return (code or base_currency()).strip().upper()


def get_latest_rates(as_of: date | None = None) -> dict[str, Decimal]:
    """
    Latest rate per currency with rate_date <= as_of (today by default).

    The base currency is always present with rate 1.
    """
    as_of = as_of or today()

    latest = (
        db.session.query(
            ExchangeRate.currency_code.label("code"),
            func.max(ExchangeRate.rate_date).label("rate_date"),
        )
        .filter(ExchangeRate.rate_date <= as_of)
        .group_by(ExchangeRate.currency_code)
        .subquery()
    )
    rows = (
        db.session.query(ExchangeRate.currency_code, ExchangeRate.rate)
        .join(
            latest,
            (ExchangeRate.currency_code == latest.c.code)
            & (ExchangeRate.rate_date == latest.c.rate_date),
        )
        .all()
    )

    rates: dict[str, Decimal] = {code: Decimal(rate) for code, rate in rows}
    rates[base_currency()] = Decimal("1")
    return rates


def get_rate_to_base(code: str | None, rates: Mapping[str, Decimal], *, strict: bool = False) -> Decimal:
    """Rate of one unit of code in base currency; unknown codes give 1 unless strict."""
    normalized = _normalize_code(code)
    if normalized in rates:
        return Decimal(rates[normalized])
    if strict:
        raise NotFoundError(f"No exchange rate for currency {normalized}")
    return Decimal("1")


def convert(
    amount,
    from_code: str | None,
    to_code: str | None,
    rates: Mapping[str, Decimal],
    *,
    strict: bool = False,
) -> Decimal:
    """amount * rate_from / rate_to, going through the base currency."""
    value = to_decimal(amount, "amount")
    source = _normalize_code(from_code)
    target = _normalize_code(to_code)
    if source == target:
        return value

    rate_from = get_rate_to_base(source, rates, strict=strict)
    rate_to = get_rate_to_base(target, rates, strict=strict)
    return value * rate_from / rate_to


def list_currencies(include_inactive: bool = False) -> list[Currency]:
    query = db.session.query(Currency)
    if not include_inactive:
        query = query.filter(Currency.is_active.is_(True))
    return query.order_by(Currency.code.asc()).all()


def seed_currencies() -> int:
    """Insert the default currency list; existing codes are left alone."""
    def _op() -> int:
        existing = {code for (code,) in db.session.query(Currency.code).all()}
        created = 0
        for row in DEFAULT_CURRENCIES:
            if row["code"] in existing:
                continue
            db.session.add(Currency(**row))
            created += 1
        db.session.commit()
        return created

    return run_with_retry(_op)


def record_rate(code: str, rate, rate_date: date | None = None, source: str = "MANUAL") -> ExchangeRate:
    """Upsert the rate of one currency for a day."""
    normalized = _normalize_code(code)
    value = to_decimal(rate, "rate")
    if value <= 0:
        raise ValidationError("rate must be > 0")
    value = value.quantize(RATE_QUANT)
    rate_date = rate_date or today()

    def _op() -> ExchangeRate:
        currency = db.session.query(Currency).filter_by(code=normalized).first()
        if not currency:
            raise NotFoundError(f"Currency {normalized} not found")

        row = (
            db.session.query(ExchangeRate)
            .filter_by(currency_code=normalized, rate_date=rate_date)
            .first()
        )
        if row is None:
            row = ExchangeRate(currency_code=normalized, rate_date=rate_date)
            db.session.add(row)
        row.rate = value
        row.source = source
        db.session.commit()
        return row

    return run_with_retry(_op)


def get_default_currency_code() -> str:
    return settings_service.get_setting(settings_service.DEFAULT_CURRENCY_KEY) or base_currency()


def set_default_currency(code: str, user_id: int | None = None) -> str:
    normalized = _normalize_code(code)
    currency = (
        db.session.query(Currency)
        .filter(Currency.code == normalized, Currency.is_active.is_(True))
        .first()
    )
    if not currency:
        raise ValidationError(f"Currency {normalized} not found or inactive")
    settings_service.set_setting(settings_service.DEFAULT_CURRENCY_KEY, normalized, user_id)
    return normalized
