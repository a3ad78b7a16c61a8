# notifier/blueprints/optouts.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from notifier.blueprints.auth import require_internal_token
from notifier.errors import ValidationError

optouts = Blueprint("optouts", __name__, url_prefix="/opt-outs")
optouts.before_request(require_internal_token)


@optouts.get("/<phone>")
def get_opt_out(phone: str):
    return jsonify({"ok": True, **current_app.config["OPT_OUTS"].get_status(phone)})


@optouts.post("")
def add_opt_out():
    data = request.get_json(silent=True) or {}
    phone = data.get("phone_number")
    if not phone:
        raise ValidationError('"phone_number" is required')
    registry = current_app.config["OPT_OUTS"]
    registry.add_opt_out(phone, reason=data.get("reason"), source=data.get("source") or "user_request")
    return jsonify({"ok": True, **registry.get_status(phone)}), 201


@optouts.delete("/<phone>")
def remove_opt_out(phone: str):
    registry = current_app.config["OPT_OUTS"]
    registry.remove_opt_out(phone)
    return jsonify({"ok": True, **registry.get_status(phone)})
