# Overview: Request decorators for API routes.

import hmac
from functools import wraps
from flask import current_app, jsonify, request


def require_service_token(f):
    """
    Require the internal service token.

    The /api/fbr surface is called by the sales subsystem and ops tooling,
    not by end users. Callers send "Authorization: Bearer <INTERNAL_API_TOKEN>".

    SECURITY: Returns 401 if:
    - No Authorization header
    - Token does not match (constant-time comparison)
    - No INTERNAL_API_TOKEN is configured (surface disabled)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("INTERNAL_API_TOKEN")
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        if not expected or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            return jsonify({"error": "Invalid or expired token"}), 401

        return f(*args, **kwargs)

    return decorated_function
