# tests/factories/event_factory.py
"""
Factories/helpers para montar payloads de webhook da WhatsApp Cloud API
para uso nos testes (unitários e de integração).

Objetivos:
- Evitar JSONs repetidos e verbosos dentro dos testes
- Gerar payloads mínimos porém válidos para o normalizer/ingestor
- Assinar o corpo como a Meta faz (X-Hub-Signature-256)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_PHONE_NUMBER_ID = "879357005252665"


# -------------------------------------------------------------------
# Utils básicos
# -------------------------------------------------------------------
def now_unix() -> str:
    """Retorna timestamp unix (string) em segundos."""
    return str(int(datetime.now(timezone.utc).timestamp()))


def _gen_id(prefix: str = "wamid") -> str:
    """Gera um id fake parecido com wamid.* apenas para testes."""
    return f"{prefix}.{uuid.uuid4().hex[:8]}"


# -------------------------------------------------------------------
# Peças de mensagens
# -------------------------------------------------------------------
def _inbound(from_number: str, kind: str, content: Dict[str, Any], msg_id: Optional[str] = None) -> Dict[str, Any]:
    """Mensagem recebida do hóspede: campos comuns + o bloco do tipo (text, image, button...)."""
    return {
        "from": from_number,
        "id": msg_id or _gen_id(),
        "timestamp": now_unix(),
        "type": kind,
        kind: content,
    }


def make_text_message(from_number: str, text: str, msg_id: Optional[str] = None) -> Dict[str, Any]:
    return _inbound(from_number, "text", {"body": text}, msg_id)


def make_image_message(
    from_number: str,
    media_id: str | None = None,
    caption: str | None = None,
    msg_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Imagem; sem legenda o ingestor grava o marcador "[image]"."""
    image: Dict[str, Any] = {"mime_type": "image/jpeg", "id": media_id or _gen_id("media")}
    if caption:
        image["caption"] = caption
    return _inbound(from_number, "image", image, msg_id)


def make_button_message(from_number: str, payload: str, text: str | None = None) -> Dict[str, Any]:
    """Resposta a um botão de template (quick reply)."""
    button = {"payload": payload, **({"text": text} if text else {})}
    return _inbound(from_number, "button", button)


# -------------------------------------------------------------------
# Status de mensagens enviadas
# -------------------------------------------------------------------
def make_status(
    recipient_id: str,
    status: str = "delivered",
    msg_id: Optional[str] = None,
    timestamp: Optional[str] = None,
    error: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """sent | delivered | read | failed, opcionalmente com errors[0]."""
    event: Dict[str, Any] = {
        "id": msg_id or _gen_id(),
        "status": status,
        "timestamp": timestamp or now_unix(),
        "recipient_id": recipient_id,
    }
    if error:
        event["errors"] = [error]
    return event


# -------------------------------------------------------------------
# Envelope do webhook (o "body" que o Flask recebe)
# -------------------------------------------------------------------
def make_change_value(
    messages: Optional[List[Dict[str, Any]]] = None,
    statuses: Optional[List[Dict[str, Any]]] = None,
    phone_number_id: str = DEFAULT_PHONE_NUMBER_ID,
    contacts: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    value: Dict[str, Any] = {
        "messaging_product": "whatsapp",
        "metadata": {
            "display_phone_number": "+27 21 555 0100",
            "phone_number_id": phone_number_id,
        },
    }
    if contacts:
        value["contacts"] = [{"wa_id": wa_id, "profile": {"name": name}} for wa_id, name in contacts.items()]
    if messages:
        value["messages"] = messages
    if statuses:
        value["statuses"] = statuses
    return value


def make_webhook_body(
    messages: Optional[List[Dict[str, Any]]] = None,
    statuses: Optional[List[Dict[str, Any]]] = None,
    phone_number_id: str = DEFAULT_PHONE_NUMBER_ID,
    contacts: Optional[Dict[str, str]] = None,
    extra_values: Optional[List[Dict[str, Any]]] = None,
    waba_id: str = "24838169579210572",
) -> Dict[str, Any]:
    """
    Monta o body completo no formato esperado pelo webhook:
    {"object": "whatsapp_business_account",
     "entry": [{"id": "<waba_id>", "changes": [{"value": {...}, "field": "messages"}]}]}

    extra_values adiciona changes extras (ex.: outro phone_number_id no mesmo POST).
    """
    values = [make_change_value(messages, statuses, phone_number_id, contacts)] + list(extra_values or [])
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": waba_id,
                "changes": [{"value": v, "field": "messages"} for v in values],
            }
        ],
    }


# -------------------------------------------------------------------
# Atalhos "prontos para uso" nos testes
# -------------------------------------------------------------------
def make_incoming_text_payload(
    from_number: str,
    text: str,
    phone_number_id: str = DEFAULT_PHONE_NUMBER_ID,
    msg_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Retorna um payload completo com UMA mensagem de texto.
    """
    msg = make_text_message(from_number, text, msg_id=msg_id)
    return make_webhook_body(messages=[msg], phone_number_id=phone_number_id)


def make_status_payload(
    recipient_id: str,
    status: str = "read",
    msg_id: Optional[str] = None,
    phone_number_id: str = DEFAULT_PHONE_NUMBER_ID,
    error: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Retorna um payload completo com UM status.
    """
    st = make_status(recipient_id=recipient_id, status=status, msg_id=msg_id, error=error)
    return make_webhook_body(statuses=[st], phone_number_id=phone_number_id)


# -------------------------------------------------------------------
# Assinatura (X-Hub-Signature-256)
# -------------------------------------------------------------------
def sign_body(secret: str, body: Any) -> Tuple[bytes, Dict[str, str]]:
    """
    Serializa o body e devolve (raw, headers) prontos para client.post(data=raw, headers=headers).
    """
    raw = json.dumps(body).encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()
    return raw, {"X-Hub-Signature-256": f"sha256={digest}", "Content-Type": "application/json"}
