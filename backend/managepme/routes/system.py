# backend/managepme/routes/system.py
"""
System health endpoint.

Checks database connectivity and the schema the credit queries depend on.
"""

import time
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text

from ..extensions import db
from ..services import schema_service
from managepme.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and schema.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        problems = schema_service.check_schema()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy" if not problems else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"missing": problems},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "database": database,
    }), status_code
