# Overview: Flask API routes for supplier purchases and receipts.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import purchase_service
from ..services.errors import ServiceError
from ..services.purchase_service import PurchaseFilters
from ..decorators import require_user
from managepme.validation import parse_optional_datetime, parse_optional_int


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("/")
@purchases_bp.post("")
@require_user
def create_purchase_route():
    """
    Request body:
    {
        "supplier_id": 1,
        "reference": "BC-2026-001",          (optional, ACH-000001 when omitted)
        "items": [{"product_id": 1, "quantity": 10, "unit_price": 12}]
    }
    """
    try:
        data = request.get_json() or {}
        purchase = purchase_service.create_purchase(data, g.user_id)
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/")
@purchases_bp.get("")
@require_user
def list_purchases_route():
    try:
        filters = PurchaseFilters(
            supplier_id=parse_optional_int(request.args.get("supplier_id"), "supplier_id"),
            status=request.args.get("status") or None,
            start_date=parse_optional_datetime(request.args.get("start_date"), "start_date"),
            end_date=parse_optional_datetime(request.args.get("end_date"), "end_date"),
            page=parse_optional_int(request.args.get("page"), "page", minimum=1) or 1,
            limit=parse_optional_int(request.args.get("limit"), "limit", minimum=1) or 50,
        )
        return jsonify(purchase_service.list_purchases(filters)), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
@require_user
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/receive")
@require_user
def receive_purchase_route(purchase_id: int):
    """
    Record received quantities (cumulative per line, not increments).

    Request body:
    {"items": [{"item_id": 7, "received_quantity": 6}], "delivery_date": "2026-02-01", "notes": "..."}
    """
    try:
        data = request.get_json() or {}
        purchase = purchase_service.receive_purchase(purchase_id, data, g.user_id)
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/cancel")
@require_user
def cancel_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.cancel_purchase(purchase_id)
        return jsonify({"purchase": purchase.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel purchase")
        return jsonify({"error": "Internal server error"}), 500
