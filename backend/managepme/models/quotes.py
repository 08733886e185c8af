from __future__ import annotations

from ..extensions import db
from managepme.time_utils import to_utc_z
from managepme.validation import as_number


class Quote(db.Model):
    """
    Customer quote (Devis), priced like an invoice.

    LIFECYCLE:
    - DRAFT -> SENT -> ACCEPTED | REFUSED | EXPIRED
    - CONVERTED: turned into exactly one sale, terminal

    WHY: converted_sale_id is unique so that even two racing conversions
    can never attach two sales to the same quote.
    """
    __tablename__ = "quotes"
    __table_args__ = (
        db.Index("ix_quotes_status_valid_until", "status", "valid_until"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quote_number = db.Column(db.String(64), nullable=False, unique=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    subtotal = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    discount = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    tax = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    margin = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    currency_code = db.Column(db.String(8), nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    converted_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, unique=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("quotes", lazy=True))
    converted_sale = db.relationship("Sale")
    items = db.relationship(
        "QuoteItem",
        back_populates="quote",
        lazy=True,
        order_by="QuoteItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "quote_number": self.quote_number,
            "client_id": self.client_id,
            "user_id": self.user_id,
            "status": self.status,
            "subtotal": as_number(self.subtotal),
            "discount": as_number(self.discount),
            "tax": as_number(self.tax),
            "total": as_number(self.total),
            "margin": as_number(self.margin),
            "currency_code": self.currency_code,
            "valid_until": to_utc_z(self.valid_until) if self.valid_until else None,
            "notes": self.notes,
            "converted_sale_id": self.converted_sale_id,
            "converted_at": to_utc_z(self.converted_at) if self.converted_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class QuoteItem(db.Model):
    __tablename__ = "quote_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_quote_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 3), nullable=False)
    discount = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    total_price = db.Column(db.Numeric(14, 3), nullable=False)
    purchase_price = db.Column(db.Numeric(14, 3), nullable=False)
    margin = db.Column(db.Numeric(14, 3), nullable=False)

    quote = db.relationship("Quote", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_id": self.quote_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": as_number(self.unit_price),
            "discount": as_number(self.discount),
            "total_price": as_number(self.total_price),
            "purchase_price": as_number(self.purchase_price),
            "margin": as_number(self.margin),
        }
