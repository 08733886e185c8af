from __future__ import annotations

from ..extensions import db
from managepme.time_utils import to_utc_z
from managepme.validation import as_number


class Sale(db.Model):
    """
    Sale document (ticket or invoice).

    LIFECYCLE:
    - COMPLETED: Created at checkout, stock already decremented (no draft state)
    - CANCELLED: Stock restored, terminal
    - REFUNDED: Every line fully returned through credit notes (Avoirs)

    AMOUNTS:
    - subtotal: sum of line totals before the document discount
    - total = subtotal - discount + tax
    - amount_paid grows through credits_service.record_payment, never above total
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_client_status", "client_id", "status"),
        db.CheckConstraint("amount_paid <= total", name="ck_sales_amount_paid_le_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number: TKT-000123 / INV-000045
    document_number = db.Column(db.String(64), nullable=False, unique=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # TICKET, INVOICE
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    discount = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    tax = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    margin = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    # Payment tracking
    payment_method = db.Column(db.String(16), nullable=False)  # CASH, CARD, MIXED, CREDIT, OTHER
    cash_amount = db.Column(db.Numeric(14, 3), nullable=True)
    card_amount = db.Column(db.Numeric(14, 3), nullable=True)
    amount_paid = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    change_due = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    currency_code = db.Column(db.String(8), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    cash_register = db.relationship("CashRegister", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        lazy=True,
        order_by="SaleItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_due(self):
        return self.total - self.amount_paid

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "type": self.type,
            "status": self.status,
            "client_id": self.client_id,
            "user_id": self.user_id,
            "cash_register_id": self.cash_register_id,
            "subtotal": as_number(self.subtotal),
            "discount": as_number(self.discount),
            "tax": as_number(self.tax),
            "total": as_number(self.total),
            "margin": as_number(self.margin),
            "payment_method": self.payment_method,
            "cash_amount": as_number(self.cash_amount),
            "card_amount": as_number(self.card_amount),
            "amount_paid": as_number(self.amount_paid),
            "change_due": as_number(self.change_due),
            "balance_due": as_number(self.balance_due),
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "currency_code": self.currency_code,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line of a sale, with a snapshot of the prices at sale time.

    refunded_quantity is the running total returned through all credit notes;
    a new refund may never exceed quantity - refunded_quantity.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint(
            "refunded_quantity >= 0 AND refunded_quantity <= quantity",
            name="ck_sale_items_refunded_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 3), nullable=False)
    discount = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    total_price = db.Column(db.Numeric(14, 3), nullable=False)
    purchase_price = db.Column(db.Numeric(14, 3), nullable=False)
    margin = db.Column(db.Numeric(14, 3), nullable=False)

    refunded_quantity = db.Column(db.Integer, nullable=False, default=0)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    @property
    def refundable_quantity(self) -> int:
        return self.quantity - (self.refunded_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": as_number(self.unit_price),
            "discount": as_number(self.discount),
            "total_price": as_number(self.total_price),
            "purchase_price": as_number(self.purchase_price),
            "margin": as_number(self.margin),
            "refunded_quantity": self.refunded_quantity,
        }


class SaleRefund(db.Model):
    """
    Credit note (Avoir) against a completed sale.

    The sale record itself is not reversed: the Avoir is a separate ledger
    entry holding a snapshot of the returned lines.
    """
    __tablename__ = "sale_refunds"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    # AV-YYYYMMDD-NNN
    avoir_number = db.Column(db.String(64), nullable=False, unique=True)

    reason = db.Column(db.String(255), nullable=True)
    refund_amount = db.Column(db.Numeric(14, 3), nullable=False)

    # [{sale_item_id, product_id, product_name, quantity, unit_price, total_price}]
    refunded_items = db.Column(db.JSON, nullable=False, default=list)

    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("refunds", lazy=True, order_by="SaleRefund.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "avoir_number": self.avoir_number,
            "reason": self.reason,
            "refund_amount": as_number(self.refund_amount),
            "refunded_items": self.refunded_items,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


class SalePayment(db.Model):
    """
    Append-only record of settlements recorded against a credit sale.

    IMMUTABLE: Sale.amount_paid equals the initial checkout payment plus
    the sum of these rows.
    """
    __tablename__ = "sale_payments"
    __table_args__ = (
        db.Index("ix_sale_payments_sale_created", "sale_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 3), nullable=False)
    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="SalePayment.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "amount": as_number(self.amount),
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
