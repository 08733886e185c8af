from __future__ import annotations

from ..extensions import db
from managepme.time_utils import to_utc_z


class InventoryCount(db.Model):
    """
    Physical inventory count (inventaire).

    LIFECYCLE:
    - DRAFT: Created, lines may be entered
    - IN_PROGRESS: Counting on the shop floor, lines may still be entered
    - COMPLETED: Counting finished, waiting for validation
    - VALIDATED: Variances posted to the stock ledger, terminal
    - CANCELLED: Abandoned before validation, terminal

    Each line snapshots the stock it was counted against (theoretical_qty);
    validation posts the recorded difference as an ADJUSTMENT movement.
    """
    __tablename__ = "inventory_counts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # CNT-000001
    reference = db.Column(db.String(64), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    notes = db.Column(db.Text, nullable=True)

    user_id = db.Column(db.Integer, nullable=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    validated_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "InventoryCountItem",
        back_populates="count",
        lazy=True,
        order_by="InventoryCountItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "reference": self.reference,
            "status": self.status,
            "notes": self.notes,
            "user_id": self.user_id,
            "start_date": to_utc_z(self.start_date) if self.start_date else None,
            "end_date": to_utc_z(self.end_date) if self.end_date else None,
            "validated_at": to_utc_z(self.validated_at) if self.validated_at else None,
            "validated_by_user_id": self.validated_by_user_id,
            "item_count": len(self.items),
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InventoryCountItem(db.Model):
    __tablename__ = "inventory_count_items"
    __table_args__ = (
        db.UniqueConstraint("count_id", "product_id", name="uq_inventory_count_items_product"),
        db.CheckConstraint("counted_qty >= 0", name="ck_inventory_count_items_counted_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    count_id = db.Column(db.Integer, db.ForeignKey("inventory_counts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    theoretical_qty = db.Column(db.Integer, nullable=False)
    counted_qty = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)  # counted - theoretical
    reason = db.Column(db.String(255), nullable=True)

    # Set when the difference was posted
    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    count = db.relationship("InventoryCount", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "count_id": self.count_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.product.sku if self.product else None,
            "theoretical_qty": self.theoretical_qty,
            "counted_qty": self.counted_qty,
            "difference": self.difference,
            "reason": self.reason,
            "stock_movement_id": self.stock_movement_id,
        }
