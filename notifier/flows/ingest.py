# notifier/flows/ingest.py
"""
Ingestão idempotente do webhook.

Mensagens: dedupe por provider_message_id -> tenant pelo phone_number_id ->
conversa (tenant, telefone) -> ChatMessage + MessageMetadata inbound e
last_inbound_at numa única transação. Se outro worker gravar o mesmo wamid no
meio do caminho, o índice UNIQUE estoura, a transação volta e conta como
duplicada.

Status: sent/delivered/read/failed atualizam a metadata outbound sem regredir.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Callable, Dict, Optional

from notifier.delivery.optout import OptOutRegistry
from notifier.delivery.window import WINDOW
from notifier.errors import NotifierError
from notifier.flows.normalizer import InboundMessage, StatusUpdate, WebhookBatch
from notifier.logging import get_logger
from notifier.metrics import WEBHOOK_MESSAGES, WEBHOOK_UNROUTED
from notifier.models import messages as msg_store
from notifier.models.bookings import find_latest_booking_by_phone
from notifier.models.conversations import find_or_create_conversation, touch_inbound
from notifier.models.storage import from_unix, get_conn, iso, transaction, utcnow
from notifier.phones import mask_phone, to_e164
from notifier.tenants.registry import TenantRouter

logger = get_logger(__name__)

STATUS_MAP = {
    "sent": msg_store.SENT,
    "delivered": msg_store.DELIVERED,
    "read": msg_store.READ,
    "failed": msg_store.FAILED,
}

OPT_OUT_KEYWORDS = {"STOP"}
OPT_IN_KEYWORDS = {"START"}


class WebhookIngestor:
    def __init__(
        self,
        db_path: str,
        *,
        tenants: TenantRouter,
        opt_outs: OptOutRegistry,
        default_country_code: str = "27",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db_path = db_path
        self.tenants = tenants
        self.opt_outs = opt_outs
        self.default_country_code = default_country_code
        self.clock = clock

    def ingest(self, batch: WebhookBatch) -> Dict[str, int]:
        result = {"stored": 0, "duplicate": 0, "unrouted": 0, "error": 0, "statuses": 0, "ignored": 0}

        # um item com problema não pode derrubar o resto do lote: a Meta recebe 200 e não re-entrega
        for msg in batch.messages:
            try:
                outcome = self.ingest_message(msg)
            except Exception as e:
                logger.exception(
                    "webhook.message_error",
                    extra={"provider_message_id": msg.get("id"), "error_message": str(e)},
                )
                outcome = "error"
            result[outcome] += 1
            WEBHOOK_MESSAGES.labels(result=outcome).inc()

        for st in batch.statuses:
            try:
                applied = self.apply_status(st)
            except Exception as e:
                logger.exception(
                    "webhook.status_error",
                    extra={"provider_message_id": st.get("id"), "error_message": str(e)},
                )
                result["error"] += 1
                continue
            if applied:
                result["statuses"] += 1
            else:
                result["ignored"] += 1

        return result

    # ------------------ mensagens ------------------
    def ingest_message(self, msg: InboundMessage) -> str:
        wamid = msg["id"]
        log_base = {"provider_message_id": wamid, "from": mask_phone(msg["from_"])}

        if msg_store.has_provider_message_id(self.db_path, wamid):
            logger.info("webhook.duplicate_message", extra=log_base)
            return "duplicate"

        tenant_id = self.tenants.resolve(msg["phone_number_id"])
        if not tenant_id:
            WEBHOOK_UNROUTED.inc()
            logger.warning("webhook.unrouted", extra={**log_base, "phone_number_id": msg["phone_number_id"]})
            return "unrouted"

        phone = to_e164(msg["from_"], self.default_country_code)
        now = self.clock()
        at = iso(now)

        try:
            with transaction(self.db_path) as conn:
                booking = find_latest_booking_by_phone(conn, tenant_id=tenant_id, guest_phone=phone)
                conv, created = find_or_create_conversation(
                    conn,
                    tenant_id=tenant_id,
                    guest_phone=phone,
                    title=msg.get("profile_name") or phone,
                    booking_id=(booking or {}).get("id"),
                    property_id=(booking or {}).get("property_id"),
                )
                chat_id = msg_store.insert_chat_message(
                    conn,
                    conversation_id=conv["id"],
                    content=msg["text"],
                    message_type=msg_store.TEXT,
                    sender_id=None,
                    created_at=at,
                )
                msg_store.insert_metadata(
                    conn,
                    direction=msg_store.INBOUND,
                    message_type=msg_store.TEXT,
                    status=msg_store.DELIVERED,
                    tenant_id=tenant_id,
                    chat_message_id=chat_id,
                    provider_message_id=wamid,
                    sender_phone=phone,
                    conversation_window_expires_at=iso(now + WINDOW),
                )
                touch_inbound(conn, conv["id"], at=at)
        except sqlite3.IntegrityError:
            logger.info("webhook.duplicate_message", extra={**log_base, "race": True})
            return "duplicate"
        except sqlite3.Error as e:
            logger.error("webhook.message_error", extra={**log_base, "error": str(e)})
            return "error"

        logger.info(
            "webhook.message_stored",
            extra={**log_base, "tenant_id": tenant_id, "conversation_id": conv["id"], "new_conversation": created},
        )
        self._apply_keywords(phone, msg["text"])
        return "stored"

    def _apply_keywords(self, phone: str, text: str) -> None:
        """A mensagem já está gravada; falha aqui só é logada."""
        keyword = (text or "").strip().upper()
        try:
            if keyword in OPT_OUT_KEYWORDS:
                self.opt_outs.add_opt_out(phone, reason="STOP keyword", source="whatsapp_stop")
            elif keyword in OPT_IN_KEYWORDS:
                self.opt_outs.remove_opt_out(phone)
        except (NotifierError, sqlite3.Error) as e:
            logger.error(
                "webhook.keyword_error",
                extra={"keyword": keyword, "from": mask_phone(phone), "error": str(e)},
            )

    # ------------------ status ------------------
    def apply_status(self, st: StatusUpdate) -> bool:
        status = STATUS_MAP.get(st["status"])
        log_base = {"provider_message_id": st["id"], "status": st["status"], "to": mask_phone(st.get("recipient_id"))}
        if not status:
            logger.info("webhook.status_ignored", extra=log_base)
            return False

        at = from_unix(st.get("timestamp")) or iso(self.clock())
        failure_reason: Optional[str] = st.get("error") if status == msg_store.FAILED else None

        with get_conn(self.db_path) as conn:
            found = msg_store.apply_status_update(
                conn, st["id"], status=status, at=at, failure_reason=failure_reason
            )
        if not found:
            logger.info("webhook.status_unknown_message", extra=log_base)
            return False

        if failure_reason:
            logger.error("webhook.status_failed", extra={**log_base, "error": failure_reason})
        else:
            logger.info("webhook.status", extra=log_base)
        return True
