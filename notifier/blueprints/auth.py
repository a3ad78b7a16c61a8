# notifier/blueprints/auth.py
from __future__ import annotations

import hmac

from flask import current_app, jsonify, request


def require_internal_token():
    """
    before_request dos endpoints internos: quando INTERNAL_API_TOKEN está
    configurado, exige o mesmo valor em X-Internal-Token.
    """
    secret = current_app.config.get("INTERNAL_API_TOKEN")
    if not secret:
        return None
    auth = request.headers.get("X-Internal-Token") or ""
    if not hmac.compare_digest(auth, secret):
        return jsonify({"error": "unauthorized", "code": "UNAUTHORIZED"}), 401
    return None
