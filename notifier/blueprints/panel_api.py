# notifier/blueprints/panel_api.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from notifier.blueprints.auth import require_internal_token
from notifier.blueprints.queue_api import int_arg
from notifier.delivery.window import window_status
from notifier.errors import NotFoundError
from notifier.models.conversations import get_conversation
from notifier.models.messages import list_conversation_messages

panel_api = Blueprint("panel_api", __name__, url_prefix="/conversations")
panel_api.before_request(require_internal_token)


def _conversation_or_404(conversation_id: str) -> dict:
    conv = get_conversation(current_app.config["SQLITE_PATH"], conversation_id)
    if not conv:
        raise NotFoundError(f"conversation not found: {conversation_id}")
    return conv


@panel_api.get("/<conversation_id>/window")
def api_window(conversation_id: str):
    conv = _conversation_or_404(conversation_id)
    return jsonify({"ok": True, "conversation_id": conversation_id, **window_status(conv.get("last_inbound_at"))})


@panel_api.get("/<conversation_id>/messages")
def api_messages(conversation_id: str):
    _conversation_or_404(conversation_id)
    limit = int_arg("limit", 50, minimum=1, maximum=200)
    before = request.args.get("before")
    rows = list_conversation_messages(current_app.config["SQLITE_PATH"], conversation_id, limit=limit, before=before)
    return jsonify({"ok": True, "items": rows})
