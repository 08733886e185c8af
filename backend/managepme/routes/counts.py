# Overview: Flask API routes for physical inventory counts (inventaires).

from flask import Blueprint, request, jsonify, g, current_app

from ..services import count_service
from ..services.errors import ServiceError
from ..decorators import require_user


counts_bp = Blueprint("counts", __name__, url_prefix="/api/inventory-counts")


@counts_bp.post("/")
@counts_bp.post("")
@require_user
def create_count_route():
    try:
        data = request.get_json() or {}
        count = count_service.create_count(data, g.user_id)
        return jsonify({"count": count.to_dict(include_items=True)}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create inventory count")
        return jsonify({"error": "Internal server error"}), 500


@counts_bp.get("/")
@counts_bp.get("")
@require_user
def list_counts_route():
    try:
        counts = count_service.list_counts(request.args.get("status") or None)
        return jsonify({"items": [c.to_dict() for c in counts], "count": len(counts)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory counts")
        return jsonify({"error": "Internal server error"}), 500


@counts_bp.get("/<int:count_id>")
@require_user
def get_count_route(count_id: int):
    try:
        count = count_service.get_count(count_id)
        return jsonify({"count": count.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get inventory count")
        return jsonify({"error": "Internal server error"}), 500


@counts_bp.post("/<int:count_id>/items")
@require_user
def add_count_item_route(count_id: int):
    """
    Record one counted product.

    Request body:
    {"product_id": 1, "counted_qty": 8, "reason": "Casse non declaree"}
    """
    try:
        data = request.get_json() or {}
        item = count_service.add_count_item(count_id, data)
        return jsonify({"item": item.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add inventory count item")
        return jsonify({"error": "Internal server error"}), 500


@counts_bp.post("/<int:count_id>/start")
@require_user
def start_count_route(count_id: int):
    try:
        count = count_service.start_count(count_id)
        return jsonify({"count": count.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to start inventory count")
        return jsonify({"error": "Internal server error"}), 500


@counts_bp.post("/<int:count_id>/complete")
@require_user
def complete_count_route(count_id: int):
    try:
        count = count_service.complete_count(count_id)
        return jsonify({"count": count.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete inventory count")
        return jsonify({"error": "Internal server error"}), 500


@counts_bp.post("/<int:count_id>/validate")
@require_user
def validate_count_route(count_id: int):
    try:
        count = count_service.validate_count(count_id, g.user_id)
        return jsonify({"count": count.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate inventory count")
        return jsonify({"error": "Internal server error"}), 500


@counts_bp.post("/<int:count_id>/cancel")
@require_user
def cancel_count_route(count_id: int):
    try:
        count = count_service.cancel_count(count_id)
        return jsonify({"count": count.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel inventory count")
        return jsonify({"error": "Internal server error"}), 500
