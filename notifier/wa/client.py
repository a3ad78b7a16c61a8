# notifier/wa/client.py
"""
Cliente da WhatsApp Cloud API.

Uma mensagem de saída é TemplateMessage ou TextMessage; cada uma sabe montar o
próprio payload. send() devolve o wamid (provider_message_id) ou levanta:
  - ValidationError: texto vazio/maior que 4096 caracteres (validado localmente)
  - TransientProviderError: erro de rede, status não-2xx ou resposta sem messages[0].id
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import requests

from notifier.errors import TransientProviderError, ValidationError
from notifier.http import HttpClient
from notifier.logging import get_logger
from notifier.phones import mask_phone
from notifier.tenants.credentials import Credentials

logger = get_logger(__name__)

MAX_TEXT_LENGTH = 4096


def _wa_to(phone: str) -> str:
    # a Cloud API aceita o número só com dígitos
    return str(phone or "").lstrip("+")


@dataclass(frozen=True)
class TextMessage:
    to: str
    body: str
    preview_url: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "to": _wa_to(self.to),
            "type": "text",
            "text": {"body": self.body, "preview_url": self.preview_url},
        }


@dataclass(frozen=True)
class TemplateMessage:
    to: str
    template_name: str
    language_code: str
    body_parameters: List[Dict[str, str]] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        template: Dict[str, Any] = {
            "name": self.template_name,
            "language": {"code": self.language_code},
        }
        if self.body_parameters:
            template["components"] = [{"type": "body", "parameters": list(self.body_parameters)}]
        return {
            "messaging_product": "whatsapp",
            "to": _wa_to(self.to),
            "type": "template",
            "template": template,
        }


OutboundMessage = Union[TemplateMessage, TextMessage]


def validate_text(body: Optional[str]) -> str:
    if body is None or not str(body).strip():
        raise ValidationError("message text is empty")
    if len(body) > MAX_TEXT_LENGTH:
        raise ValidationError(f"message text exceeds {MAX_TEXT_LENGTH} characters")
    return body


class ProviderClient:
    def __init__(
        self,
        base_url: str = "https://graph.facebook.com",
        *,
        timeout: float = 10,
        dry_run: bool = False,
        http: Optional[HttpClient] = None,
    ):
        self.dry_run = dry_run
        self.http = http or HttpClient(base_url=base_url, timeout=timeout)

    def send(self, credentials: Credentials, message: OutboundMessage) -> str:
        if isinstance(message, TextMessage):
            validate_text(message.body)

        payload = message.to_payload()
        path = f"/{credentials.api_version}/{credentials.phone_number_id}/messages"
        log_extra = {"to": mask_phone(message.to), "type": payload["type"], "phone_number_id": credentials.phone_number_id}

        if self.dry_run:
            # wamid fake para permitir vincular status no dev
            fake_id = f"wamid.DEV.{uuid.uuid4().hex[:18]}"
            logger.info("wa.dry_run", extra={**log_extra, "payload_preview": str(payload)[:200]})
            return fake_id

        headers = {"Authorization": f"Bearer {credentials.access_token}"}
        try:
            resp = self.http.post_json(path, payload, headers=headers)
        except requests.RequestException as e:
            logger.error("wa.network_error", extra={**log_extra, "error": str(e)})
            raise TransientProviderError(f"network error: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {"raw": resp.text[:300]}

        if not resp.ok:
            err = (data.get("error") or {}) if isinstance(data, dict) else {}
            message_text = err.get("message") or f"HTTP {resp.status_code}"
            logger.error("wa.error", extra={**log_extra, "status": resp.status_code, "detail": data})
            raise TransientProviderError(message_text, status=resp.status_code, detail=data)

        msgs = data.get("messages") if isinstance(data, dict) else None
        wamid = msgs[0].get("id") if isinstance(msgs, list) and msgs and isinstance(msgs[0], dict) else None
        if not wamid:
            logger.error("wa.missing_message_id", extra={**log_extra, "detail": data})
            raise TransientProviderError("provider response without message id", status=resp.status_code, detail=data)

        logger.info("wa.sent", extra={**log_extra, "provider_message_id": wamid})
        return wamid
