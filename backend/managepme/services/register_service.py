"""
Cash Register Service - cashier shifts

WHY: Each cashier works in one OPEN register at a time; closing it compares
the counted cash with what the drawer should hold.

DESIGN:
- expected = initial_amount + net cash (cash tendered minus change given)
  of the register's non-cancelled sales
- difference = actual - expected (negative means missing cash)
- "One OPEN register per user" is checked first for a clear error, then
  guaranteed by the uq_cash_registers_user_open partial unique index
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashRegister, Sale
from managepme.time_utils import utcnow
from managepme.validation import parse_amount, quantize_money
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    AlreadyClosedError,
    AlreadyOpenError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


def get_current_register(user_id: int) -> CashRegister | None:
    return (
        db.session.query(CashRegister)
        .filter_by(user_id=user_id, status="OPEN")
        .first()
    )


def open_register(user_id: int, initial_amount=0) -> CashRegister:
    if not user_id:
        raise ValidationError("user_id is required")
    amount = parse_amount(initial_amount if initial_amount is not None else 0, "initial_amount")

    def _op() -> CashRegister:
        if get_current_register(user_id) is not None:
            raise AlreadyOpenError("Cash register is already open", details={"user_id": user_id})

        register = CashRegister(user_id=user_id, status="OPEN", initial_amount=amount)
        db.session.add(register)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise AlreadyOpenError("Cash register is already open", details={"user_id": user_id}) from exc
        db.session.commit()
        return register

    return run_with_retry(_op)


def expected_cash(register: CashRegister) -> Decimal:
    sales = (
        db.session.query(Sale)
        .filter(Sale.cash_register_id == register.id, Sale.status != "CANCELLED")
        .all()
    )
    cash = sum(
        ((sale.cash_amount or Decimal("0")) - (sale.change_due or Decimal("0")) for sale in sales),
        Decimal("0"),
    )
    return quantize_money(register.initial_amount + cash)


def close_register(register_id: int, user_id: int, actual_amount, notes: str | None = None) -> CashRegister:
    actual = parse_amount(actual_amount, "actual_amount")

    def _op() -> CashRegister:
        register = lock_for_update(db.session.query(CashRegister).filter_by(id=register_id)).first()
        if not register:
            raise NotFoundError("Cash register not found")
        if register.user_id != user_id:
            raise PermissionDeniedError("You can only close your own cash register")
        if register.status == "CLOSED":
            raise AlreadyClosedError("Cash register is already closed")

        expected = expected_cash(register)
        register.expected_amount = expected
        register.actual_amount = actual
        register.difference = quantize_money(actual - expected)
        register.status = "CLOSED"
        register.close_date = utcnow()
        if notes:
            register.notes = str(notes).strip()
        db.session.commit()
        return register

    return run_with_retry(_op)


def list_registers(user_id: int | None = None, status: str | None = None) -> list[CashRegister]:
    query = db.session.query(CashRegister)
    if user_id:
        query = query.filter(CashRegister.user_id == user_id)
    if status:
        query = query.filter(CashRegister.status == status.upper())
    return query.order_by(CashRegister.open_date.desc(), CashRegister.id.desc()).all()


def get_register(register_id: int) -> CashRegister:
    register = db.session.get(CashRegister, register_id)
    if not register:
        raise NotFoundError("Cash register not found")
    return register
