# notifier/blueprints/queue_api.py
"""
Administração da fila: estatísticas, pendentes, cancelamento, retry manual e
disparo de um ciclo de processamento (para cron externo).
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from notifier.blueprints.auth import require_internal_token
from notifier.errors import ValidationError

queue_api = Blueprint("queue_api", __name__, url_prefix="/queue")
queue_api.before_request(require_internal_token)


def int_arg(name: str, default: int, minimum: int = 0, maximum: int = 500) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"param '{name}' must be an integer")
    if not minimum <= value <= maximum:
        raise ValidationError(f"param '{name}' must be between {minimum} and {maximum}")
    return value


@queue_api.get("/stats")
def stats():
    return jsonify({"ok": True, "stats": current_app.config["DISPATCHER"].get_stats()})


@queue_api.get("/pending")
def pending():
    limit = int_arg("limit", 20, minimum=1, maximum=100)
    offset = int_arg("offset", 0, maximum=1_000_000)
    return jsonify({"ok": True, **current_app.config["DISPATCHER"].list_pending(limit=limit, offset=offset)})


@queue_api.post("/<item_id>/cancel")
def cancel(item_id: str):
    return jsonify({"ok": True, "item": current_app.config["DISPATCHER"].cancel(item_id)})


@queue_api.post("/<item_id>/retry")
def retry(item_id: str):
    return jsonify({"ok": True, "item": current_app.config["DISPATCHER"].manual_retry(item_id)})


@queue_api.post("/process")
def process():
    return jsonify({"ok": True, "result": current_app.config["DISPATCHER"].process_queue()})
