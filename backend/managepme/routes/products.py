# Overview: Flask API routes for the product catalog.

# backend/managepme/routes/products.py
from flask import Blueprint, request, jsonify, g, current_app

from ..services import products_service
from ..services.errors import ServiceError
from ..decorators import require_user
from managepme.validation import parse_optional_int


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/")
@products_bp.get("")
@require_user
def list_products_route():
    try:
        payload = products_service.list_products(
            search=request.args.get("search") or None,
            category_id=parse_optional_int(request.args.get("category_id"), "category_id"),
            include_inactive=request.args.get("include_inactive", "").lower() in {"1", "true", "yes"},
            page=parse_optional_int(request.args.get("page"), "page", minimum=1),
            limit=parse_optional_int(request.args.get("limit"), "limit", minimum=1),
        )
        return jsonify(payload), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/")
@products_bp.post("")
@require_user
def create_product_route():
    """
    Request body:
    {"sku": "CAF-001", "name": "Café 250g", "sale_price": 20, "purchase_price": 12, "stock_current": 10}
    """
    try:
        data = request.get_json() or {}
        product = products_service.create_product(data, g.user_id)
        return jsonify({"product": product.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_user
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/barcode/<string:code>")
@require_user
def find_by_barcode_route(code: str):
    try:
        product = products_service.find_by_barcode(code)
        return jsonify({"product": product.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to look up barcode")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_user
def update_product_route(product_id: int):
    try:
        data = request.get_json() or {}
        reason = data.pop("price_change_reason", None)
        product = products_service.update_product(product_id, data, reason=reason)
        return jsonify({"product": product.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_user
def deactivate_product_route(product_id: int):
    try:
        product = products_service.deactivate_product(product_id)
        return jsonify({"product": product.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/price-history")
@require_user
def price_history_route(product_id: int):
    try:
        rows = products_service.get_price_history(product_id)
        return jsonify({"items": [r.to_dict() for r in rows]}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get price history")
        return jsonify({"error": "Internal server error"}), 500
