# Overview: Flask API routes for currencies, daily rates and conversion.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import currency_service
from ..services.errors import ServiceError
from ..decorators import require_user
from managepme.time_utils import parse_iso_date
from managepme.validation import as_number
from ..services.errors import ValidationError


currency_bp = Blueprint("currency", __name__, url_prefix="/api/currency")


def _date_arg(value, field: str):
    if not value:
        return None
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


@currency_bp.get("/")
@currency_bp.get("")
@require_user
def list_currencies_route():
    try:
        currencies = currency_service.list_currencies()
        return jsonify({
            "currencies": [c.to_dict() for c in currencies],
            "default_currency_code": currency_service.get_default_currency_code(),
            "base_currency": currency_service.base_currency(),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to list currencies")
        return jsonify({"error": "Internal server error"}), 500


@currency_bp.get("/rates")
@require_user
def latest_rates_route():
    try:
        rates = currency_service.get_latest_rates(_date_arg(request.args.get("as_of"), "as_of"))
        return jsonify({"rates": {code: float(rate) for code, rate in rates.items()}}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get exchange rates")
        return jsonify({"error": "Internal server error"}), 500


@currency_bp.post("/rates")
@require_user
def record_rate_route():
    """Request body: {"code": "EUR", "rate": 3.35, "rate_date": "2026-01-31"}"""
    try:
        data = request.get_json() or {}
        if not data.get("code"):
            return jsonify({"error": "code is required"}), 400
        row = currency_service.record_rate(
            data.get("code"),
            data.get("rate"),
            rate_date=_date_arg(data.get("rate_date"), "rate_date"),
        )
        return jsonify({"rate": row.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record exchange rate")
        return jsonify({"error": "Internal server error"}), 500


@currency_bp.get("/convert")
@require_user
def convert_route():
    """?amount=100&from=EUR&to=TND[&strict=1]"""
    try:
        rates = currency_service.get_latest_rates()
        strict = request.args.get("strict", "").lower() in {"1", "true", "yes"}
        result = currency_service.convert(
            request.args.get("amount"),
            request.args.get("from"),
            request.args.get("to"),
            rates,
            strict=strict,
        )
        return jsonify({"amount": as_number(result)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to convert amount")
        return jsonify({"error": "Internal server error"}), 500


@currency_bp.put("/default")
@require_user
def set_default_currency_route():
    try:
        data = request.get_json() or {}
        code = currency_service.set_default_currency(data.get("code") or "", g.user_id)
        return jsonify({"default_currency_code": code}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set default currency")
        return jsonify({"error": "Internal server error"}), 500
