"""
Credit/Payment Ledger

WHY: Client credit (sales sold on account, invoices with a due date) is
tracked per sale as total - amount_paid. Payments are appended as
SalePayment rows and move amount_paid up, never past the total.

DESIGN:
- Aging: days overdue = floor((now - reference) / 1 day), reference being
  the due date, or the creation date when no due date was set
- "At least N days overdue" is the same as reference <= now - N days, so
  the summary filters, groups, sorts and paginates in SQL instead of
  loading every unpaid sale
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Client, Sale, SalePayment
from managepme.time_utils import days_overdue, to_utc_z, utcnow
from managepme.validation import LIKE_ESCAPE, as_number, contains_pattern, parse_amount, parse_int, quantize_money
from .concurrency import lock_for_update, run_with_retry
from .errors import CancelledDocumentError, NotFoundError, OverpaymentError
from .pagination import clamp, page_payload
from . import schema_service, settings_service


CREDIT_COLUMNS = ("amount_paid", "due_date")


def _due_expr():
    return Sale.total - Sale.amount_paid


def _reference_expr():
    return func.coalesce(Sale.due_date, Sale.created_at)


def _unpaid_filter(query):
    return query.filter(
        Sale.status == "COMPLETED",
        Sale.client_id.isnot(None),
        _due_expr() > 0,
    )


def _to_money(value) -> Decimal:
    # SQLite returns SUM over NUMERIC as float
    return quantize_money(Decimal(str(value or 0)))


def record_payment(sale_id: int, amount, user_id: int | None = None) -> Sale:
    """
    Apply a settlement to a sale.

    Rejects (never clamps) an amount above the remaining balance.
    """
    value = parse_amount(amount, "amount", allow_zero=False)

    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")
        if sale.status == "CANCELLED":
            raise CancelledDocumentError("Cannot record a payment on a cancelled sale")

        remaining = sale.total - sale.amount_paid
        if value > remaining:
            raise OverpaymentError(
                "Payment exceeds the remaining balance" if remaining > 0 else "Sale is already fully paid",
                details={"amount": float(value), "remaining": float(remaining)},
            )

        sale.amount_paid = quantize_money(sale.amount_paid + value)
        db.session.add(SalePayment(sale_id=sale.id, amount=value, user_id=user_id))
        db.session.commit()
        return sale

    return run_with_retry(_op)


def list_payments(sale_id: int) -> list[SalePayment]:
    if db.session.get(Sale, sale_id) is None:
        raise NotFoundError("Sale not found")
    return (
        db.session.query(SalePayment)
        .filter_by(sale_id=sale_id)
        .order_by(SalePayment.id.asc())
        .all()
    )


@dataclass
class CreditSummaryFilters:
    client_id: int | None = None
    overdue_min_days: int | None = None
    min_total: Decimal | None = None
    max_total: Decimal | None = None
    search: str | None = None
    page: int = 1
    limit: int = 20


def _client_row(client: Client, total_due, unpaid_count: int) -> dict:
    return {
        "id": client.id,
        "first_name": client.first_name,
        "last_name": client.last_name,
        "company_name": client.company_name,
        "display_name": client.display_name,
        "email": client.email,
        "phone": client.phone,
        "total_due": as_number(_to_money(total_due)),
        "unpaid_count": int(unpaid_count),
    }


def get_client_credits_summary(filters: CreditSummaryFilters | None = None, *, now: datetime | None = None) -> dict:
    """Clients with an outstanding balance, largest balance first."""
    filters = filters or CreditSummaryFilters()
    schema_service.require_columns(Sale.__tablename__, CREDIT_COLUMNS)
    page, limit = clamp(filters.page, filters.limit, default_limit=20)
    now = now or utcnow()

    total_due = func.sum(_due_expr()).label("total_due")
    unpaid_count = func.count(Sale.id).label("unpaid_count")

    query = _unpaid_filter(
        db.session.query(Sale.client_id.label("client_id"), total_due, unpaid_count)
        .join(Client, Client.id == Sale.client_id)
    )
    if filters.client_id:
        query = query.filter(Sale.client_id == filters.client_id)
    if filters.overdue_min_days:
        cutoff = now - timedelta(days=filters.overdue_min_days)
        query = query.filter(_reference_expr() <= cutoff)
    if filters.search and filters.search.strip():
        term = contains_pattern(filters.search.strip())
        query = query.filter(or_(
            Client.first_name.ilike(term, escape=LIKE_ESCAPE),
            Client.last_name.ilike(term, escape=LIKE_ESCAPE),
            Client.company_name.ilike(term, escape=LIKE_ESCAPE),
            Client.email.ilike(term, escape=LIKE_ESCAPE),
            Client.phone.ilike(term, escape=LIKE_ESCAPE),
        ))

    query = query.group_by(Sale.client_id)
    if filters.min_total is not None:
        query = query.having(func.sum(_due_expr()) >= filters.min_total)
    if filters.max_total is not None:
        query = query.having(func.sum(_due_expr()) <= filters.max_total)

    total = db.session.query(func.count()).select_from(query.subquery()).scalar() or 0

    rows = (
        query.order_by(total_due.desc(), Sale.client_id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    clients = {
        c.id: c
        for c in db.session.query(Client).filter(Client.id.in_([r.client_id for r in rows])).all()
    } if rows else {}

    data = [_client_row(clients[r.client_id], r.total_due, r.unpaid_count) for r in rows]
    return page_payload(data, total, page, limit)


def get_client_credit_detail(client_id: int, *, now: datetime | None = None) -> dict:
    schema_service.require_columns(Sale.__tablename__, CREDIT_COLUMNS)
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError("Client not found")
    now = now or utcnow()

    sales = (
        _unpaid_filter(db.session.query(Sale))
        .filter(Sale.client_id == client_id)
        .order_by(Sale.created_at.asc(), Sale.id.asc())
        .all()
    )

    unpaid = []
    total_due = Decimal("0")
    for sale in sales:
        due = sale.total - sale.amount_paid
        total_due += due
        overdue = days_overdue(sale.due_date or sale.created_at, now)
        unpaid.append({
            "id": sale.id,
            "document_number": sale.document_number,
            "type": sale.type,
            "total": as_number(sale.total),
            "amount_paid": as_number(sale.amount_paid),
            "due": as_number(quantize_money(due)),
            "due_date": to_utc_z(sale.due_date) if sale.due_date else None,
            "created_at": to_utc_z(sale.created_at),
            "days_overdue": overdue if overdue > 0 else None,
            "currency_code": sale.currency_code,
        })

    return {
        "client": client.to_dict(),
        "total_due": as_number(quantize_money(total_due)),
        "unpaid_sales": unpaid,
    }


def get_overdue_count(threshold_days=None, *, now: datetime | None = None) -> dict:
    """Unpaid client sales at least threshold_days overdue (setting when omitted)."""
    schema_service.require_columns(Sale.__tablename__, CREDIT_COLUMNS)
    if threshold_days is None:
        threshold = settings_service.get_int_setting(settings_service.CREDIT_OVERDUE_DAYS_KEY)
    else:
        threshold = parse_int(threshold_days, "days", minimum=0)
    now = now or utcnow()

    count = (
        _unpaid_filter(db.session.query(func.count(Sale.id)))
        .filter(_reference_expr() <= now - timedelta(days=threshold))
        .scalar()
    )
    return {"count": int(count or 0), "threshold_days": threshold}
