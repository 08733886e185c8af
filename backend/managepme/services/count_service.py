"""
Physical inventory count service.

WHY: A shop-floor count compares what is on the shelf with the cached
stock. Differences are posted to the stock ledger as ADJUSTMENT
movements after the count is validated, so stock_current still equals
the sum of the ledger afterwards.

LIFECYCLE:
1. DRAFT: Count created, lines being entered
2. IN_PROGRESS: Counting started, lines still accepted
3. COMPLETED: Counting finished, waiting for validation
4. VALIDATED: Differences posted to the ledger
5. CANCELLED: Abandoned before validation

DESIGN:
- A line snapshots stock_current as theoretical_qty when it is entered;
  difference = counted_qty - theoretical_qty
- Validation posts the recorded difference rather than overwriting the
  stock with counted_qty, so sales made between counting and validation
  are not erased
"""

from __future__ import annotations

from ..extensions import db
from ..models import InventoryCount, InventoryCountItem, Product
from managepme.time_utils import utcnow
from managepme.validation import parse_int
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .errors import ConflictError, NotFoundError, StateTransitionError, ValidationError
from . import stock_service


COUNT_STATUSES = {"DRAFT", "IN_PROGRESS", "COMPLETED", "VALIDATED", "CANCELLED"}
OPEN_STATUSES = ("DRAFT", "IN_PROGRESS")

DEFAULT_REASON = "Ajustement inventaire"


def _locked_count(count_id: int) -> InventoryCount:
    count = lock_for_update(db.session.query(InventoryCount).filter_by(id=count_id)).first()
    if not count:
        raise NotFoundError("Inventory count not found")
    return count


def create_count(data: dict | None, user_id: int | None) -> InventoryCount:
    data = data or {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    notes = data.get("notes")

    def _op() -> InventoryCount:
        count = InventoryCount(
            reference=next_document_number("COUNT"),
            status="DRAFT",
            notes=str(notes).strip() if notes else None,
            user_id=user_id,
        )
        db.session.add(count)
        db.session.commit()
        return count

    return run_with_retry(_op)


def add_count_item(count_id: int, data: dict) -> InventoryCountItem:
    """
    Record the counted quantity of one product.

    A product appears at most once per count.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    if data.get("product_id") is None:
        raise ValidationError("product_id is required")
    if data.get("counted_qty") is None:
        raise ValidationError("counted_qty is required")
    product_id = parse_int(data.get("product_id"), "product_id", minimum=1)
    counted_qty = parse_int(data.get("counted_qty"), "counted_qty", minimum=0)
    reason = data.get("reason")

    def _op() -> InventoryCountItem:
        count = _locked_count(count_id)
        if count.status not in OPEN_STATUSES:
            raise StateTransitionError(f"Cannot add items to a count in {count.status} status")

        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        existing = db.session.query(InventoryCountItem.id).filter_by(count_id=count_id, product_id=product_id).first()
        if existing:
            raise ConflictError(f"{product.name} is already on this count", details={"product_id": product_id})

        item = InventoryCountItem(
            count_id=count.id,
            product_id=product_id,
            theoretical_qty=product.stock_current,
            counted_qty=counted_qty,
            difference=counted_qty - product.stock_current,
            reason=str(reason).strip() if reason else None,
        )
        db.session.add(item)
        db.session.commit()
        return item

    return run_with_retry(_op)


def start_count(count_id: int) -> InventoryCount:
    def _op() -> InventoryCount:
        count = _locked_count(count_id)
        if count.status != "DRAFT":
            raise StateTransitionError(f"Cannot start a count in {count.status} status")
        count.status = "IN_PROGRESS"
        count.start_date = utcnow()
        db.session.commit()
        return count

    return run_with_retry(_op)


def complete_count(count_id: int) -> InventoryCount:
    def _op() -> InventoryCount:
        count = _locked_count(count_id)
        if count.status not in OPEN_STATUSES:
            raise StateTransitionError(f"Cannot complete a count in {count.status} status")
        if not count.items:
            raise ValidationError("Cannot complete a count with no lines")
        count.status = "COMPLETED"
        count.start_date = count.start_date or utcnow()
        count.end_date = utcnow()
        db.session.commit()
        return count

    return run_with_retry(_op)


def validate_count(count_id: int, user_id: int | None) -> InventoryCount:
    """
    Post every non-zero difference as an ADJUSTMENT and mark the count VALIDATED.

    All or nothing: a difference that would take stock below zero raises
    InsufficientStockError and nothing is posted.
    """
    def _op() -> InventoryCount:
        count = _locked_count(count_id)
        if count.status != "COMPLETED":
            raise StateTransitionError("Inventory count must be completed before validation")

        moving = [item for item in count.items if item.difference != 0]
        products = stock_service.lock_products([item.product_id for item in moving])
        for item in sorted(moving, key=lambda i: i.product_id):
            movement = stock_service.apply_stock_movement(
                products[item.product_id],
                "ADJUSTMENT",
                item.difference,
                unit_price=products[item.product_id].purchase_price,
                reference=count.reference,
                reference_id=count.id,
                user_id=user_id,
                reason=item.reason or DEFAULT_REASON,
            )
            db.session.flush()
            item.stock_movement_id = movement.id

        count.status = "VALIDATED"
        count.validated_at = utcnow()
        count.validated_by_user_id = user_id
        db.session.commit()
        return count

    return run_with_retry(_op)


def cancel_count(count_id: int) -> InventoryCount:
    def _op() -> InventoryCount:
        count = _locked_count(count_id)
        if count.status in ("VALIDATED", "CANCELLED"):
            raise StateTransitionError(f"Cannot cancel a count in {count.status} status")
        count.status = "CANCELLED"
        db.session.commit()
        return count

    return run_with_retry(_op)


def get_count(count_id: int) -> InventoryCount:
    count = db.session.get(InventoryCount, count_id)
    if not count:
        raise NotFoundError("Inventory count not found")
    return count


def list_counts(status: str | None = None) -> list[InventoryCount]:
    query = db.session.query(InventoryCount)
    if status:
        status = status.upper()
        if status not in COUNT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(sorted(COUNT_STATUSES))}")
        query = query.filter(InventoryCount.status == status)
    return query.order_by(InventoryCount.created_at.desc(), InventoryCount.id.desc()).all()
