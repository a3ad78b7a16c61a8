# notifier/blueprints/outbound.py
"""
Blueprint para envios proativos.

- POST /send: enfileira um envio (metadata, chat message ou reserva)
- POST /conversations/<id>/reply: resposta livre dentro da janela de 24h

Erros de domínio (NotifierError) viram JSON {"error", "code"} no handler do app.
"""

from flask import Blueprint, current_app, jsonify, request

from notifier.blueprints.auth import require_internal_token
from notifier.errors import ValidationError
from notifier.logging import get_logger

outbound = Blueprint("outbound", __name__)
outbound.before_request(require_internal_token)
logger = get_logger(__name__)


@outbound.post("/send")
def send():
    """
    POST /send
    Corpo esperado:
    {
      "trigger_type": "booking_created",
      "booking_id": "..."            # OU
      "message_metadata_id": "..."   # OU
      "chat_message_id": "...",
      "priority": 5,                 # opcional, 1..10
      "fallback_to_email": true      # opcional
    }
    """
    data = request.get_json(silent=True) or {}
    fallback = data.get("fallback_to_email", True)
    if not isinstance(fallback, bool):
        raise ValidationError('"fallback_to_email" must be a boolean')

    item = current_app.config["DISPATCHER"].enqueue(
        trigger_type=data.get("trigger_type"),
        message_metadata_id=data.get("message_metadata_id"),
        chat_message_id=data.get("chat_message_id"),
        booking_id=data.get("booking_id"),
        priority=data.get("priority", 5),
        fallback_to_email=fallback,
    )
    return jsonify({"ok": True, "item": item}), 201


@outbound.post("/conversations/<conversation_id>/reply")
def reply(conversation_id: str):
    data = request.get_json(silent=True) or {}
    result = current_app.config["REPLY_SERVICE"].send_reply(
        conversation_id,
        data.get("sender_id"),
        data.get("content"),
    )
    return jsonify({"ok": True, **result})
