from __future__ import annotations

from ..extensions import db
from managepme.time_utils import to_utc_z
from managepme.validation import as_number


class Category(db.Model):
    """Product family, optionally nested under a parent category."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True, order_by="Category.name"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "parent_name": self.parent.name if self.parent else None,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    STOCK CACHE:
    stock_current is a running total over StockMovement rows. It is only ever
    changed by stock_service.apply_stock_movement, which appends the matching
    movement in the same unit of work. version_id makes concurrent writers on
    the same product fail with StaleDataError instead of losing an update.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_name", "is_active", "name"),
        db.CheckConstraint("stock_current >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(128), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    purchase_price = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    sale_price = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    stock_current = db.Column(db.Integer, nullable=False, default=0)
    stock_min = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(16), nullable=False, default="PIECE")

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_current}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "purchase_price": as_number(self.purchase_price),
            "sale_price": as_number(self.sale_price),
            "stock_current": self.stock_current,
            "stock_min": self.stock_min,
            "unit": self.unit,
            "category_id": self.category_id,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PriceHistory(db.Model):
    """Append-only trail of purchase/sale price changes."""
    __tablename__ = "price_history"
    __table_args__ = (
        db.Index("ix_price_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    purchase_price = db.Column(db.Numeric(14, 3), nullable=False)
    sale_price = db.Column(db.Numeric(14, 3), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("price_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "purchase_price": as_number(self.purchase_price),
            "sale_price": as_number(self.sale_price),
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    MOVEMENT TYPES:
    - ENTRY: Goods received (purchase receipt, initial stock)
    - SALE: Goods sold (negative quantity)
    - ADJUSTMENT: Manual or corrective change (sale cancellation, receipt correction, inventory count)
    - DAMAGE / LOSS: Broken or missing goods (signed)
    - REFUND: Goods returned through a credit note (Avoir)

    IMMUTABLE: Rows are never updated or deleted. For every product,
    SUM(quantity) equals Product.stock_current.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)

    # Signed: positive adds stock, negative removes it
    quantity = db.Column(db.Integer, nullable=False)

    unit_price = db.Column(db.Numeric(14, 3), nullable=True)
    total_value = db.Column(db.Numeric(14, 3), nullable=True)

    # Human document number (TKT-000012, ACH-000003, AV-20260101-001...)
    reference = db.Column(db.String(64), nullable=True, index=True)
    # Primary key of the originating document
    reference_id = db.Column(db.Integer, nullable=True, index=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "unit_price": as_number(self.unit_price),
            "total_value": as_number(self.total_value),
            "reference": self.reference,
            "reference_id": self.reference_id,
            "supplier_id": self.supplier_id,
            "user_id": self.user_id,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
