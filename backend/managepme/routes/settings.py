# Overview: Flask API routes for runtime settings.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import settings_service
from ..services.errors import ServiceError
from ..decorators import require_user


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/")
@settings_bp.get("")
@require_user
def get_settings_route():
    try:
        return jsonify({"settings": settings_service.get_all_settings()}), 200

    except Exception:
        current_app.logger.exception("Failed to get settings")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.put("/<string:key>")
@require_user
def set_setting_route(key: str):
    """Request body: {"value": "45"}"""
    try:
        data = request.get_json() or {}
        row = settings_service.set_setting(key, data.get("value"), g.user_id)
        return jsonify({"setting": row.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update setting")
        return jsonify({"error": "Internal server error"}), 500
