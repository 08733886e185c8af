from __future__ import annotations

from ..extensions import db
from managepme.time_utils import to_utc_z


class Currency(db.Model):
    __tablename__ = "currencies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(8), nullable=False, unique=True)
    name = db.Column(db.String(64), nullable=False)
    symbol = db.Column(db.String(8), nullable=True)
    # Quotation unit: rates for JPY are published per 100 units, for instance
    unit = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "symbol": self.symbol,
            "unit": self.unit,
            "is_active": self.is_active,
        }


class ExchangeRate(db.Model):
    """
    Daily snapshot: 1 unit of currency_code = rate units of base currency.

    One row per (currency, day); recording a rate twice for the same day
    overwrites it.
    """
    __tablename__ = "exchange_rates"
    __table_args__ = (
        db.UniqueConstraint("currency_code", "rate_date", name="uq_exchange_rates_code_date"),
        db.CheckConstraint("rate > 0", name="ck_exchange_rates_rate_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    currency_code = db.Column(db.String(8), nullable=False, index=True)
    rate = db.Column(db.Numeric(18, 6), nullable=False)
    rate_date = db.Column(db.Date, nullable=False, index=True)
    source = db.Column(db.String(32), nullable=False, default="MANUAL")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "currency_code": self.currency_code,
            "rate": float(self.rate),
            "rate_date": self.rate_date.isoformat(),
            "source": self.source,
            "created_at": to_utc_z(self.created_at),
        }
