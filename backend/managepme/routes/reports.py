# Overview: Flask API routes for the dashboard (headline stats and sales chart).

from flask import Blueprint, request, jsonify, current_app

from ..services import reporting_service
from ..services.errors import ServiceError
from ..decorators import require_user
from managepme.validation import parse_optional_datetime


reports_bp = Blueprint("reports", __name__, url_prefix="/api/dashboard")


@reports_bp.get("/stats")
@require_user
def dashboard_stats_route():
    try:
        stats = reporting_service.get_dashboard_stats(
            start_date=parse_optional_datetime(request.args.get("start_date"), "start_date"),
            end_date=parse_optional_datetime(request.args.get("end_date"), "end_date"),
        )
        return jsonify(stats), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build dashboard stats")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/sales-chart")
@require_user
def sales_chart_route():
    try:
        chart = reporting_service.get_sales_chart(
            start_date=parse_optional_datetime(request.args.get("start_date"), "start_date"),
            end_date=parse_optional_datetime(request.args.get("end_date"), "end_date"),
            group_by=request.args.get("group_by") or "day",
        )
        return jsonify(chart), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales chart")
        return jsonify({"error": "Internal server error"}), 500
