# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


USER_HEADER = "X-User-Id"


def require_user(f):
    """
    Require the acting user id and expose it as g.user_id.

    Authentication happens upstream (gateway/front-end session); this API
    trusts the X-User-Id header it forwards. Returns 401 when the header
    is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(USER_HEADER) or "").strip()
        if not raw:
            return jsonify({"error": "Authentication required"}), 401
        if not raw.isdigit() or int(raw) < 1:
            return jsonify({"error": f"Invalid {USER_HEADER} header"}), 401

        g.user_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function
