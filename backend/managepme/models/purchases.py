from __future__ import annotations

from ..extensions import db
from managepme.time_utils import to_utc_z
from managepme.validation import as_number


class Purchase(db.Model):
    """
    Supplier purchase order and its receipt state.

    LIFECYCLE:
    - PENDING: Ordered, nothing received yet
    - PARTIAL: Some but not all ordered quantities received
    - RECEIVED: Every line fully received
    - CANCELLED: Abandoned before any receipt, terminal
    - RETURNED: Goods sent back to the supplier

    DESIGN: status is always recomputed from the lines' received_qty,
    never set directly by a receipt.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Supplier reference or generated ACH-000001
    reference = db.Column(db.String(64), nullable=False, unique=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    total_amount = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    invoice_number = db.Column(db.String(64), nullable=True)
    invoice_date = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    items = db.relationship(
        "PurchaseItem",
        back_populates="purchase",
        lazy=True,
        order_by="PurchaseItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "reference": self.reference,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "status": self.status,
            "total_amount": as_number(self.total_amount),
            "invoice_number": self.invoice_number,
            "invoice_date": to_utc_z(self.invoice_date) if self.invoice_date else None,
            "delivery_date": to_utc_z(self.delivery_date) if self.delivery_date else None,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_positive"),
        db.CheckConstraint(
            "received_qty >= 0 AND received_qty <= quantity",
            name="ck_purchase_items_received_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)  # ordered
    received_qty = db.Column(db.Integer, nullable=False, default=0)

    unit_price = db.Column(db.Numeric(14, 3), nullable=False)
    total_price = db.Column(db.Numeric(14, 3), nullable=False)

    purchase = db.relationship("Purchase", back_populates="items")
    product = db.relationship("Product")

    @property
    def is_fully_received(self) -> bool:
        return self.received_qty >= self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "received_qty": self.received_qty,
            "unit_price": as_number(self.unit_price),
            "total_price": as_number(self.total_price),
        }
