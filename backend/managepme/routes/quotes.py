# Overview: Flask API routes for quotes (Devis) and their conversion to invoices.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import quote_service
from ..services.errors import ServiceError
from ..services.quote_service import QuoteFilters
from ..decorators import require_user
from managepme.validation import parse_optional_datetime, parse_optional_int


quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/quotes")


@quotes_bp.post("/")
@quotes_bp.post("")
@require_user
def create_quote_route():
    try:
        data = request.get_json() or {}
        quote = quote_service.create_quote(data, g.user_id)
        return jsonify({"quote": quote.to_dict(include_items=True)}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/")
@quotes_bp.get("")
@require_user
def list_quotes_route():
    try:
        filters = QuoteFilters(
            client_id=parse_optional_int(request.args.get("client_id"), "client_id"),
            status=request.args.get("status") or None,
            start_date=parse_optional_datetime(request.args.get("start_date"), "start_date"),
            end_date=parse_optional_datetime(request.args.get("end_date"), "end_date"),
            page=parse_optional_int(request.args.get("page"), "page", minimum=1) or 1,
            limit=parse_optional_int(request.args.get("limit"), "limit", minimum=1) or 50,
        )
        return jsonify(quote_service.list_quotes(filters)), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list quotes")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/<int:quote_id>")
@require_user
def get_quote_route(quote_id: int):
    try:
        quote = quote_service.get_quote(quote_id)
        return jsonify({"quote": quote.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.patch("/<int:quote_id>/status")
@require_user
def update_quote_status_route(quote_id: int):
    try:
        data = request.get_json() or {}
        quote = quote_service.update_quote_status(quote_id, data.get("status"))
        return jsonify({"quote": quote.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update quote status")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.post("/<int:quote_id>/convert")
@require_user
def convert_quote_route(quote_id: int):
    """
    Convert to an INVOICE sold on credit.

    Request body (optional, partial conversion):
    {"quantities": [{"quote_item_id": 4, "quantity": 2}]}
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = quote_service.convert_quote_to_sale(quote_id, g.user_id, data.get("quantities"))
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to convert quote")
        return jsonify({"error": "Internal server error"}), 500
