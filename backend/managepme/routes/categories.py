# Overview: Flask API routes for product categories.

from flask import Blueprint, request, jsonify, current_app

from ..services import categories_service
from ..services.errors import ServiceError
from ..decorators import require_user


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("/")
@categories_bp.get("")
@require_user
def list_categories_route():
    try:
        return jsonify({"items": categories_service.list_categories()}), 200

    except Exception:
        current_app.logger.exception("Failed to list categories")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.post("/")
@categories_bp.post("")
@require_user
def create_category_route():
    try:
        data = request.get_json() or {}
        category = categories_service.create_category(data)
        return jsonify({"category": category.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.get("/<int:category_id>")
@require_user
def get_category_route(category_id: int):
    try:
        return jsonify({"category": categories_service.get_category(category_id)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.patch("/<int:category_id>")
@categories_bp.put("/<int:category_id>")
@require_user
def update_category_route(category_id: int):
    try:
        data = request.get_json() or {}
        category = categories_service.update_category(category_id, data)
        return jsonify({"category": category.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.delete("/<int:category_id>")
@require_user
def delete_category_route(category_id: int):
    try:
        categories_service.delete_category(category_id)
        return jsonify({"deleted": True}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500
