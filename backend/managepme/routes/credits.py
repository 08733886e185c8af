# Overview: Flask API routes for client credit balances and aging.

from flask import Blueprint, request, jsonify, current_app

from ..services import credits_service
from ..services.credits_service import CreditSummaryFilters
from ..services.errors import ServiceError
from ..decorators import require_user
from managepme.validation import parse_amount, parse_optional_int


credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")


def _optional_amount_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return parse_amount(raw, name)


@credits_bp.get("/clients")
@require_user
def credits_summary_route():
    """
    Clients with an outstanding balance.

    Query: client_id, overdue_min_days, min_total, max_total, search, page, limit
    """
    try:
        filters = CreditSummaryFilters(
            client_id=parse_optional_int(request.args.get("client_id"), "client_id"),
            overdue_min_days=parse_optional_int(request.args.get("overdue_min_days"), "overdue_min_days", minimum=0),
            min_total=_optional_amount_arg("min_total"),
            max_total=_optional_amount_arg("max_total"),
            search=request.args.get("search") or None,
            page=parse_optional_int(request.args.get("page"), "page", minimum=1) or 1,
            limit=parse_optional_int(request.args.get("limit"), "limit", minimum=1) or 20,
        )
        return jsonify(credits_service.get_client_credits_summary(filters)), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build credits summary")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("/clients/<int:client_id>")
@require_user
def client_credit_detail_route(client_id: int):
    try:
        return jsonify(credits_service.get_client_credit_detail(client_id)), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get client credit detail")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("/overdue-count")
@require_user
def overdue_count_route():
    """Notification badge: ?days=N, defaults to the stored threshold."""
    try:
        days = request.args.get("days")
        return jsonify(credits_service.get_overdue_count(days if days not in (None, "") else None)), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to count overdue credits")
        return jsonify({"error": "Internal server error"}), 500
