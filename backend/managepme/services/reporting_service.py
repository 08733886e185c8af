# Overview: Dashboard figures and the sales chart; aggregates in SQL, converts amounts to the default currency.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Product, Purchase, Sale, SaleItem
from managepme.time_utils import to_utc_z
from managepme.validation import as_number, quantize_money
from .errors import ValidationError
from . import currency_service, stock_service


TOP_PRODUCTS_LIMIT = 10
LOW_STOCK_LIMIT = 10
RECENT_SALES_LIMIT = 10

PERIOD_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%Y-W%W",
    "month": "%Y-%m",
}


def _decimal(value) -> Decimal:
    # SQLite returns SUM over NUMERIC as float
    return Decimal(str(value or 0))


def _completed_sales(query, start_date: datetime | None, end_date: datetime | None):
    query = query.filter(Sale.status == "COMPLETED")
    if start_date:
        query = query.filter(Sale.created_at >= start_date)
    if end_date:
        query = query.filter(Sale.created_at <= end_date)
    return query


def _in_default_currency(amounts_by_currency, target: str, rates) -> Decimal:
    total = Decimal("0")
    for code, amount in amounts_by_currency:
        total += currency_service.convert(_decimal(amount), code, target, rates)
    return quantize_money(total)


def get_dashboard_stats(start_date: datetime | None = None, end_date: datetime | None = None) -> dict:
    """
    Headline figures for completed sales in the range (all time when open).

    Revenue and margin are summed per currency in SQL, then converted to the
    default currency with the latest rates.
    """
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be before end_date")

    target = currency_service.get_default_currency_code()
    rates = currency_service.get_latest_rates()

    total_sales = _completed_sales(db.session.query(func.count(Sale.id)), start_date, end_date).scalar() or 0

    per_currency = (
        _completed_sales(
            db.session.query(Sale.currency_code, func.sum(Sale.total), func.sum(Sale.margin)),
            start_date,
            end_date,
        )
        .group_by(Sale.currency_code)
        .all()
    )
    revenue = _in_default_currency([(code, total) for code, total, _ in per_currency], target, rates)
    margin = _in_default_currency([(code, m) for code, _, m in per_currency], target, rates)

    quantity_sold = func.sum(SaleItem.quantity).label("quantity")
    top_rows = (
        _completed_sales(
            db.session.query(SaleItem.product_id, quantity_sold, func.sum(SaleItem.total_price).label("total_price"))
            .join(Sale, Sale.id == SaleItem.sale_id),
            start_date,
            end_date,
        )
        .group_by(SaleItem.product_id)
        .order_by(quantity_sold.desc(), SaleItem.product_id.asc())
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )
    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_([r.product_id for r in top_rows])).all()
    } if top_rows else {}
    top_products = [
        {
            "product_id": row.product_id,
            "name": products[row.product_id].name,
            "sku": products[row.product_id].sku,
            "sale_price": as_number(products[row.product_id].sale_price),
            "quantity": int(row.quantity or 0),
            "total_price": as_number(quantize_money(_decimal(row.total_price))),
        }
        for row in top_rows
    ]

    recent_sales = (
        _completed_sales(db.session.query(Sale), start_date, end_date)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(RECENT_SALES_LIMIT)
        .all()
    )

    purchases = db.session.query(Purchase)
    if start_date:
        purchases = purchases.filter(Purchase.created_at >= start_date)
    if end_date:
        purchases = purchases.filter(Purchase.created_at <= end_date)
    received = purchases.filter(Purchase.status.in_(("RECEIVED", "PARTIAL")))
    total_purchase_amount = received.with_entities(func.sum(Purchase.total_amount)).scalar()

    return {
        "start_date": to_utc_z(start_date) if start_date else None,
        "end_date": to_utc_z(end_date) if end_date else None,
        "default_currency_code": target,
        "total_sales": int(total_sales),
        "total_revenue": as_number(revenue),
        "total_margin": as_number(margin),
        "top_products": top_products,
        "low_stock_products": [p.to_dict() for p in stock_service.get_low_stock_products()[:LOW_STOCK_LIMIT]],
        "recent_sales": [s.to_dict() for s in recent_sales],
        "total_purchases": received.count(),
        "total_purchase_amount": as_number(quantize_money(_decimal(total_purchase_amount))),
        "pending_purchases": purchases.filter(Purchase.status == "PENDING").count(),
    }


def get_sales_chart(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    group_by: str = "day",
) -> dict:
    """Completed sales per day, week or month, amounts in the default currency."""
    group_by = (group_by or "day").lower()
    fmt = PERIOD_FORMATS.get(group_by)
    if fmt is None:
        raise ValidationError("group_by must be day, week, or month")
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be before end_date")

    target = currency_service.get_default_currency_code()
    rates = currency_service.get_latest_rates()

    period = func.strftime(fmt, Sale.created_at).label("period")
    rows = (
        _completed_sales(
            db.session.query(
                period,
                Sale.currency_code,
                func.count(Sale.id).label("sales_count"),
                func.sum(Sale.total).label("revenue"),
                func.sum(Sale.margin).label("margin"),
            ),
            start_date,
            end_date,
        )
        .group_by(period, Sale.currency_code)
        .order_by(period)
        .all()
    )

    periods: dict[str, dict] = {}
    for row in rows:
        bucket = periods.setdefault(row.period, {"sales_count": 0, "revenue": Decimal("0"), "margin": Decimal("0")})
        bucket["sales_count"] += int(row.sales_count or 0)
        bucket["revenue"] += currency_service.convert(_decimal(row.revenue), row.currency_code, target, rates)
        bucket["margin"] += currency_service.convert(_decimal(row.margin), row.currency_code, target, rates)

    return {
        "group_by": group_by,
        "start_date": to_utc_z(start_date) if start_date else None,
        "end_date": to_utc_z(end_date) if end_date else None,
        "default_currency_code": target,
        "rows": [
            {
                "period": key,
                "sales_count": bucket["sales_count"],
                "revenue": as_number(quantize_money(bucket["revenue"])),
                "margin": as_number(quantize_money(bucket["margin"])),
            }
            for key, bucket in sorted(periods.items())
        ],
    }
