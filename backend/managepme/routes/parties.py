# Overview: Flask API routes for clients and suppliers.

from flask import Blueprint, request, jsonify, current_app

from ..services import parties_service
from ..services.errors import ServiceError
from ..decorators import require_user
from managepme.validation import parse_optional_int


parties_bp = Blueprint("parties", __name__, url_prefix="/api")


@parties_bp.post("/clients")
@require_user
def create_client_route():
    try:
        client = parties_service.create_client(request.get_json() or {})
        return jsonify({"client": client.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create client")
        return jsonify({"error": "Internal server error"}), 500


@parties_bp.get("/clients")
@require_user
def list_clients_route():
    try:
        payload = parties_service.list_clients(
            search=request.args.get("search") or None,
            page=parse_optional_int(request.args.get("page"), "page", minimum=1),
            limit=parse_optional_int(request.args.get("limit"), "limit", minimum=1),
        )
        return jsonify(payload), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list clients")
        return jsonify({"error": "Internal server error"}), 500


@parties_bp.get("/clients/<int:client_id>")
@require_user
def get_client_route(client_id: int):
    try:
        client = parties_service.get_client(client_id)
        return jsonify({"client": client.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get client")
        return jsonify({"error": "Internal server error"}), 500


@parties_bp.post("/suppliers")
@require_user
def create_supplier_route():
    try:
        supplier = parties_service.create_supplier(request.get_json() or {})
        return jsonify({"supplier": supplier.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@parties_bp.get("/suppliers")
@require_user
def list_suppliers_route():
    try:
        suppliers = parties_service.list_suppliers(
            include_inactive=request.args.get("include_inactive", "").lower() in {"1", "true", "yes"},
        )
        return jsonify({"suppliers": [s.to_dict() for s in suppliers]}), 200

    except Exception:
        current_app.logger.exception("Failed to list suppliers")
        return jsonify({"error": "Internal server error"}), 500
