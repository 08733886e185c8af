# Overview: Flask API routes for sales, credit notes and payments; parses input and returns JSON responses.

# backend/managepme/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service, refund_service, credits_service
from ..services.errors import ServiceError
from ..services.sales_service import SaleFilters
from ..decorators import require_user
from managepme.validation import parse_optional_datetime, parse_optional_int


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
@sales_bp.post("")
@require_user
def create_sale_route():
    """
    Checkout: create a COMPLETED sale and decrement stock.

    Request body:
    {
        "type": "TICKET" | "INVOICE",
        "payment_method": "CASH" | "CARD" | "MIXED" | "CREDIT" | "OTHER",
        "client_id": 3,                       (required for CREDIT)
        "items": [{"product_id": 1, "quantity": 4, "unit_price": 20, "discount": 5}],
        "discount": 0, "cash_amount": 100, "card_amount": null,
        "due_date": "2026-02-28", "currency_code": "TND", "cash_register_id": 1
    }
    """
    try:
        data = request.get_json() or {}
        sale = sales_service.create_sale(data, g.user_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@sales_bp.get("")
@require_user
def list_sales_route():
    try:
        filters = SaleFilters(
            start_date=parse_optional_datetime(request.args.get("start_date"), "start_date"),
            end_date=parse_optional_datetime(request.args.get("end_date"), "end_date"),
            client_id=parse_optional_int(request.args.get("client_id"), "client_id"),
            user_id=parse_optional_int(request.args.get("user_id"), "user_id"),
            type=request.args.get("type") or None,
            status=request.args.get("status") or None,
            cash_register_id=parse_optional_int(request.args.get("cash_register_id"), "cash_register_id"),
            page=parse_optional_int(request.args.get("page"), "page", minimum=1) or 1,
            limit=parse_optional_int(request.args.get("limit"), "limit", minimum=1) or 50,
        )
        return jsonify(sales_service.list_sales(filters)), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_user
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        payload = sale.to_dict(include_items=True)
        payload["refunds"] = [r.to_dict() for r in sale.refunds]
        payload["payments"] = [p.to_dict() for p in sale.payments]
        return jsonify({"sale": payload}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/cancel")
@require_user
def cancel_sale_route(sale_id: int):
    """Cancel a COMPLETED sale; 409 if it is already cancelled."""
    try:
        sale = sales_service.cancel_sale(sale_id, g.user_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/refunds")
@require_user
def create_refund_route(sale_id: int):
    """
    Issue a credit note (Avoir).

    Request body:
    {
        "items": [{"sale_item_id": 12, "quantity": 2}],
        "reason": "Produit défectueux"
    }
    """
    try:
        data = request.get_json() or {}
        refund = refund_service.create_refund(sale_id, data.get("items"), g.user_id, reason=data.get("reason"))
        return jsonify({"refund": refund.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create refund")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/refunds")
@require_user
def list_refunds_route(sale_id: int):
    try:
        refunds = refund_service.list_refunds(sale_id)
        return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list refunds")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/payments")
@require_user
def record_payment_route(sale_id: int):
    """Record a settlement: {"amount": 50}. 400 when it exceeds the balance."""
    try:
        data = request.get_json() or {}
        sale = credits_service.record_payment(sale_id, data.get("amount"), g.user_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/payments")
@require_user
def list_payments_route(sale_id: int):
    try:
        payments = credits_service.list_payments(sale_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500
