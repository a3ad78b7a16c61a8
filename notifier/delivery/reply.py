# notifier/delivery/reply.py
"""
Resposta livre de um operador dentro de uma conversa.

Só sai com a janela de 24h aberta; fora dela o chamador recebe ComplianceError
(code TEMPLATE_REQUIRED) e precisa mandar um template pela fila.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from notifier.delivery.optout import OptOutRegistry
from notifier.delivery.window import require_open_window
from notifier.errors import NotFoundError, opted_out
from notifier.logging import get_logger
from notifier.models import messages as msg_store
from notifier.models.conversations import get_conversation, touch_last_message
from notifier.models.storage import iso, transaction, utcnow
from notifier.phones import mask_phone
from notifier.tenants.credentials import CredentialStore
from notifier.wa.client import ProviderClient, TextMessage, validate_text

logger = get_logger(__name__)


class ReplyService:
    def __init__(
        self,
        db_path: str,
        *,
        provider: ProviderClient,
        credentials: CredentialStore,
        opt_outs: OptOutRegistry,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db_path = db_path
        self.provider = provider
        self.credentials = credentials
        self.opt_outs = opt_outs
        self.clock = clock

    def send_reply(self, conversation_id: str, sender_id: Optional[str], content: str) -> Dict[str, Any]:
        conv = get_conversation(self.db_path, conversation_id)
        if not conv:
            raise NotFoundError(f"conversation not found: {conversation_id}")

        now = self.clock()
        require_open_window(conv.get("last_inbound_at"), now)
        validate_text(content)

        if self.opt_outs.is_opted_out(conv["guest_phone"]):
            raise opted_out()

        creds = self.credentials.get_decrypted_credentials(conv["tenant_id"])
        if not creds:
            raise NotFoundError(f"WhatsApp credentials not configured for tenant {conv['tenant_id']}")

        wamid = self.provider.send(creds, TextMessage(to=conv["guest_phone"], body=content))

        at = iso(now)
        with transaction(self.db_path) as conn:
            chat_id = msg_store.insert_chat_message(
                conn,
                conversation_id=conversation_id,
                content=content,
                message_type=msg_store.TEXT,
                sender_id=sender_id,
                created_at=at,
            )
            meta_id = msg_store.insert_metadata(
                conn,
                direction=msg_store.OUTBOUND,
                message_type=msg_store.TEXT,
                status=msg_store.SENT,
                tenant_id=conv["tenant_id"],
                chat_message_id=chat_id,
                provider_message_id=wamid,
                recipient_phone=conv["guest_phone"],
                sent_at=at,
            )
            touch_last_message(conn, conversation_id, at=at)

        logger.info(
            "reply.sent",
            extra={
                "conversation_id": conversation_id,
                "to": mask_phone(conv["guest_phone"]),
                "provider_message_id": wamid,
            },
        )
        return {
            "chat_message_id": chat_id,
            "message_metadata_id": meta_id,
            "provider_message_id": wamid,
            "sent_at": at,
        }
