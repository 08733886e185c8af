from __future__ import annotations

from ..extensions import db
from managepme.time_utils import to_utc_z
from managepme.validation import as_number


class CashRegister(db.Model):
    """
    Cashier shift (caisse) with opening float and closing count.

    LIFECYCLE:
    - OPEN: Shift is active, sales may be attached to it
    - CLOSED: Cash counted, difference computed, terminal

    WHY: The partial unique index makes "one OPEN register per user" hold
    even when two open requests race past the application check.
    """
    __tablename__ = "cash_registers"
    __table_args__ = (
        db.Index(
            "uq_cash_registers_user_open",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)  # OPEN, CLOSED

    initial_amount = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    expected_amount = db.Column(db.Numeric(14, 3), nullable=True)
    actual_amount = db.Column(db.Numeric(14, 3), nullable=True)
    difference = db.Column(db.Numeric(14, 3), nullable=True)

    open_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    close_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "initial_amount": as_number(self.initial_amount),
            "expected_amount": as_number(self.expected_amount),
            "actual_amount": as_number(self.actual_amount),
            "difference": as_number(self.difference),
            "open_date": to_utc_z(self.open_date),
            "close_date": to_utc_z(self.close_date) if self.close_date else None,
            "notes": self.notes,
            "version_id": self.version_id,
        }
