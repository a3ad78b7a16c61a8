# notifier/blueprints/webhook.py
from __future__ import annotations

from flask import Blueprint, current_app, request

from notifier.errors import SignatureError
from notifier.flows.normalizer import parse_webhook
from notifier.logging import get_logger
from notifier.wa.signature import verify_signature

logger = get_logger(__name__)
webhook = Blueprint("webhook", __name__)


@webhook.get("/")
def verify():
    cfg = current_app.config
    mode = request.args.get("hub.mode")
    challenge = request.args.get("hub.challenge")
    token = request.args.get("hub.verify_token")

    ok = bool(challenge) and mode == "subscribe" and bool(token) and token == cfg.get("VERIFY_TOKEN")
    logger.info("webhook.verify", extra={"mode": mode, "ok": ok})
    if ok:
        return challenge, 200
    return ("", 403)


@webhook.post("/")
def receive():
    """
    Recebe eventos da Meta. Só a assinatura inválida gera 403; qualquer outra
    falha é logada e respondida com 200 (a Meta re-entrega em caso de não-2xx).
    """
    raw = request.get_data(cache=True)
    try:
        verify_signature(
            current_app.config.get("WEBHOOK_APP_SECRET"),
            raw,
            request.headers.get("X-Hub-Signature-256"),
        )
    except SignatureError as e:
        logger.warning("webhook.invalid_signature", extra={"reason": e.message})
        return ("", 403)

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}
    logger.info("webhook.incoming", extra={"has_entry": isinstance(body.get("entry"), list), "raw_size": len(raw)})

    try:
        batch = parse_webhook(body)
        result = current_app.config["INGESTOR"].ingest(batch)
        logger.info("webhook.processed", extra=result)
    except Exception as e:
        logger.exception("webhook.handler_error", extra={"error_message": str(e)})

    return ("", 200)
