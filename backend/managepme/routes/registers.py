# Overview: Flask API routes for cash registers (cashier shifts).

# backend/managepme/routes/registers.py
"""
Cash Register API Routes

DESIGN:
- Shift lifecycle: open -> close (immutable once closed)
- A cashier can only close their own register
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import register_service
from ..services.errors import ServiceError
from ..decorators import require_user
from managepme.validation import parse_optional_int


registers_bp = Blueprint("registers", __name__, url_prefix="/api/cash-registers")


@registers_bp.post("/open")
@require_user
def open_register_route():
    """Request body: {"initial_amount": 100}. 409 if one is already open."""
    try:
        data = request.get_json(silent=True) or {}
        register = register_service.open_register(g.user_id, data.get("initial_amount", 0))
        return jsonify({"register": register.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open cash register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:register_id>/close")
@require_user
def close_register_route(register_id: int):
    """Request body: {"actual_amount": 250.5, "notes": "..."}"""
    try:
        data = request.get_json() or {}
        if data.get("actual_amount") is None:
            return jsonify({"error": "actual_amount is required"}), 400
        register = register_service.close_register(
            register_id,
            g.user_id,
            data.get("actual_amount"),
            notes=data.get("notes"),
        )
        return jsonify({"register": register.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close cash register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/current")
@require_user
def current_register_route():
    try:
        register = register_service.get_current_register(g.user_id)
        return jsonify({"register": register.to_dict() if register else None}), 200

    except Exception:
        current_app.logger.exception("Failed to get current cash register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/")
@registers_bp.get("")
@require_user
def list_registers_route():
    try:
        registers = register_service.list_registers(
            user_id=parse_optional_int(request.args.get("user_id"), "user_id"),
            status=request.args.get("status") or None,
        )
        return jsonify({"registers": [r.to_dict() for r in registers]}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list cash registers")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:register_id>")
@require_user
def get_register_route(register_id: int):
    try:
        register = register_service.get_register(register_id)
        return jsonify({"register": register.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get cash register")
        return jsonify({"error": "Internal server error"}), 500
