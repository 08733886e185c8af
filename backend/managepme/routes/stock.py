# Overview: Flask API routes for the stock ledger (movements, damage/loss, low stock).

from flask import Blueprint, request, jsonify, g, current_app

from ..services import stock_service
from ..services.errors import ServiceError
from ..services.stock_service import MovementFilters
from ..decorators import require_user
from managepme.validation import parse_optional_datetime, parse_optional_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/movements")
@require_user
def list_movements_route():
    try:
        filters = MovementFilters(
            product_id=parse_optional_int(request.args.get("product_id"), "product_id"),
            type=request.args.get("type") or None,
            start_date=parse_optional_datetime(request.args.get("start_date"), "start_date"),
            end_date=parse_optional_datetime(request.args.get("end_date"), "end_date"),
            page=parse_optional_int(request.args.get("page"), "page", minimum=1) or 1,
            limit=parse_optional_int(request.args.get("limit"), "limit", minimum=1) or 50,
        )
        return jsonify(stock_service.get_movements(filters)), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/damage")
@require_user
def create_damage_route():
    """
    Record a damage or loss.

    Request body:
    {"product_id": 1, "type": "DAMAGE" | "LOSS", "quantity": -2, "reason": "Casse"}
    """
    try:
        data = request.get_json() or {}
        if data.get("product_id") is None:
            return jsonify({"error": "product_id is required"}), 400
        movement = stock_service.create_damage(
            parse_optional_int(data.get("product_id"), "product_id", minimum=1),
            data.get("type"),
            data.get("quantity"),
            data.get("reason"),
            g.user_id,
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record damage")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/low")
@require_user
def low_stock_route():
    try:
        products = stock_service.get_low_stock_products()
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200

    except Exception:
        current_app.logger.exception("Failed to list low stock products")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/products/<int:product_id>/history")
@require_user
def product_history_route(product_id: int):
    try:
        return jsonify(stock_service.get_product_stock_history(product_id)), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get stock history")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/products/<int:product_id>/reconcile")
@require_user
def reconcile_route(product_id: int):
    try:
        return jsonify(stock_service.reconcile_stock(product_id)), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile stock")
        return jsonify({"error": "Internal server error"}), 500
