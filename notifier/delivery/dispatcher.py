# notifier/delivery/dispatcher.py
"""
Dispatcher da fila de envios.

Ciclo (process_queue), chamado pelo worker, pelo CLI `flask process-queue` ou por
POST /queue/process:
  1) seleciona itens pending com next_retry_at <= agora (prioridade, depois idade)
  2) para cada item: claim CAS -> metadata -> opt-out -> monta mensagem
     (template resolvido ou texto com a janela de 24h aberta) -> credenciais ->
     envio
  3) sucesso: metadata "sent" + wamid, item "completed"
     erro re-tentável: RetryPolicy decide entre nova tentativa e falha final
     erro terminal (validação, ausência, compliance): falha na hora, sem gastar
     tentativas
  4) falha final: metadata "failed" e fallback por e-mail (uma única vez)

O processamento é sequencial, com uma pausa curta entre itens.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from notifier.delivery.backoff import RetryPolicy
from notifier.delivery.fallback import EmailFallbackTrigger
from notifier.delivery.optout import OptOutRegistry
from notifier.delivery.templates import TemplateResolver, body_parameters, render
from notifier.delivery.window import require_open_window
from notifier.errors import NotFoundError, NotifierError, ValidationError, opted_out
from notifier.logging import get_logger
from notifier.metrics import QUEUE_ITEMS
from notifier.models import messages as msg_store
from notifier.models import queue as q
from notifier.models.conversations import get_conversation
from notifier.models.storage import iso, loads, transaction, utcnow
from notifier.phones import is_valid_e164, mask_phone, to_e164
from notifier.tenants.credentials import CredentialStore
from notifier.wa.client import OutboundMessage, ProviderClient, TemplateMessage, TextMessage

logger = get_logger(__name__)

# gatilho de negócio -> tipo de template enviado
TRIGGER_TEMPLATE_TYPES = {
    "booking_created": "booking_confirmation",
    "payment_received": "payment_received",
    "payment_reminder": "payment_reminder",
    "pre_arrival": "pre_arrival",
    "booking_modified": "booking_modified",
    "booking_cancelled": "booking_cancelled",
}
TRIGGER_TYPES = (*TRIGGER_TEMPLATE_TYPES, "manual")


def _metadata_id(item: Dict[str, Any], meta: Optional[Dict[str, Any]]) -> Optional[str]:
    # item selecionado antes de link_metadata: a metadata carregada vale mais que a linha antiga
    return (meta or {}).get("id") or item.get("message_metadata_id")


def booking_variables(booking: Dict[str, Any]) -> Dict[str, Any]:
    """Placeholders de template derivados da reserva (meta JSON complementa/sobrescreve)."""
    data: Dict[str, Any] = {
        "guest_name": booking.get("guest_name") or "Guest",
        "booking_reference": booking.get("booking_reference"),
        "check_in_date": booking.get("check_in_date"),
        "check_out_date": booking.get("check_out_date"),
    }
    try:
        nights = (
            datetime.fromisoformat(booking["check_out_date"]) - datetime.fromisoformat(booking["check_in_date"])
        ).days
        data["total_nights"] = nights
    except (KeyError, TypeError, ValueError):
        pass
    extra = loads(booking.get("meta"))
    if isinstance(extra, dict):
        data.update(extra)
    return data


class QueueDispatcher:
    def __init__(
        self,
        db_path: str,
        *,
        provider: ProviderClient,
        credentials: CredentialStore,
        resolver: TemplateResolver,
        opt_outs: OptOutRegistry,
        fallback: EmailFallbackTrigger,
        retry_policy: Optional[RetryPolicy] = None,
        enabled: bool = True,
        batch_size: int = 50,
        item_delay: float = 0.1,
        max_retries: int = 3,
        default_country_code: str = "27",
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db_path = db_path
        self.provider = provider
        self.credentials = credentials
        self.resolver = resolver
        self.opt_outs = opt_outs
        self.fallback = fallback
        self.retry_policy = retry_policy or RetryPolicy()
        self.enabled = enabled
        self.batch_size = batch_size
        self.item_delay = item_delay
        self.max_retries = max_retries
        self.default_country_code = default_country_code
        self.sleep = sleep
        self.clock = clock

    # ------------------------------------------------------------------
    # enqueue
    # ------------------------------------------------------------------
    def enqueue(
        self,
        *,
        trigger_type: str,
        message_metadata_id: Optional[str] = None,
        chat_message_id: Optional[str] = None,
        booking_id: Optional[str] = None,
        priority: int = 5,
        fallback_to_email: bool = True,
    ) -> Dict[str, Any]:
        if trigger_type not in TRIGGER_TYPES:
            raise ValidationError(f"unknown trigger_type: {trigger_type}")
        if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 10:
            raise ValidationError("priority must be an integer between 1 and 10")

        with transaction(self.db_path) as conn:
            if message_metadata_id:
                meta = conn.execute(
                    "SELECT * FROM message_metadata WHERE id=?", (message_metadata_id,)
                ).fetchone()
                self._require_sendable(meta)
            elif chat_message_id:
                meta = conn.execute(
                    "SELECT * FROM message_metadata WHERE chat_message_id=? AND direction=?",
                    (chat_message_id, msg_store.OUTBOUND),
                ).fetchone()
                self._require_sendable(meta)
            elif booking_id:
                meta = self._metadata_from_booking(conn, booking_id, trigger_type)
            else:
                raise ValidationError("one of message_metadata_id, chat_message_id or booking_id is required")

            tenant_id = meta.get("tenant_id")
            if not tenant_id and booking_id:
                booking = conn.execute("SELECT tenant_id FROM bookings WHERE id=?", (booking_id,)).fetchone()
                tenant_id = (booking or {}).get("tenant_id")
            if not tenant_id:
                raise ValidationError("tenant could not be derived for this message")

            item = q.insert_queue_item(
                self.db_path,
                trigger_type=trigger_type,
                tenant_id=tenant_id,
                chat_message_id=chat_message_id or meta.get("chat_message_id"),
                message_metadata_id=meta["id"],
                booking_id=booking_id,
                priority=priority,
                max_retries=self.max_retries,
                should_fallback_to_email=fallback_to_email,
                next_retry_at=iso(self.clock()),
                conn=conn,
            )

        logger.info(
            "queue.enqueued",
            extra={"queue_item_id": item["id"], "trigger_type": trigger_type, "priority": priority, "tenant_id": tenant_id},
        )
        return item

    @staticmethod
    def _require_sendable(meta: Optional[Dict[str, Any]]) -> None:
        if not meta:
            raise ValidationError("message metadata not found")
        if meta["direction"] != msg_store.OUTBOUND:
            raise ValidationError("only outbound messages can be queued")
        if not meta.get("recipient_phone"):
            raise ValidationError("message metadata has no recipient phone")

    def _metadata_from_booking(self, conn, booking_id: str, trigger_type: str) -> Dict[str, Any]:
        template_type = TRIGGER_TEMPLATE_TYPES.get(trigger_type)
        if not template_type:
            raise ValidationError(f"trigger_type {trigger_type} has no template for bookings")
        booking = conn.execute("SELECT * FROM bookings WHERE id=?", (booking_id,)).fetchone()
        if not booking:
            raise ValidationError(f"booking not found: {booking_id}")
        phone = to_e164(booking.get("guest_phone"), self.default_country_code)
        if not is_valid_e164(phone):
            raise ValidationError("booking has no valid guest phone")

        meta_id = msg_store.insert_metadata(
            conn,
            direction=msg_store.OUTBOUND,
            message_type=msg_store.TEMPLATE,
            status=msg_store.QUEUED,
            tenant_id=booking["tenant_id"],
            recipient_phone=phone,
            property_id=booking.get("property_id"),
            template_type=template_type,
            language_code=booking.get("language_code") or "en",
            template_variables=booking_variables(booking),
        )
        return conn.execute("SELECT * FROM message_metadata WHERE id=?", (meta_id,)).fetchone()

    # ------------------------------------------------------------------
    # processamento
    # ------------------------------------------------------------------
    def process_queue(self, now: Optional[datetime] = None) -> Dict[str, int]:
        stats = {"processed": 0, "succeeded": 0, "failed": 0, "retried": 0, "skipped": 0}
        if not self.enabled:
            logger.info("queue.disabled")
            return stats

        now = now or self.clock()
        items = q.select_due_items(self.db_path, now=iso(now), limit=self.batch_size)
        if not items:
            return stats

        logger.info("queue.batch_start", extra={"count": len(items)})
        for idx, item in enumerate(items):
            if idx > 0 and self.item_delay:
                self.sleep(self.item_delay)
            outcome = self._process_item(item, now)
            stats["processed"] += 1
            stats[outcome] += 1
            QUEUE_ITEMS.labels(outcome=outcome).inc()

        logger.info("queue.batch_done", extra=stats)
        return stats

    def _process_item(self, item: Dict[str, Any], now: datetime) -> str:
        if not q.claim_item(self.db_path, item["id"], version=item["version"], now=iso(now)):
            logger.info("queue.claim_lost", extra={"queue_item_id": item["id"]})
            return "skipped"

        meta = None
        try:
            meta = self._load_metadata(item)
            if self.opt_outs.is_opted_out(meta["recipient_phone"]):
                raise opted_out()
            message, template_id = self._build_message(meta, now)
            tenant_id = item.get("tenant_id") or meta.get("tenant_id")
            creds = self.credentials.get_decrypted_credentials(tenant_id)
            if not creds:
                raise NotFoundError(f"WhatsApp credentials not configured for tenant {tenant_id}")
            wamid = self.provider.send(creds, message)
        except NotifierError as e:
            return self._handle_failure(item, e, now, metadata_id=_metadata_id(item, meta))
        except Exception as e:
            logger.exception("queue.item_error", extra={"queue_item_id": item["id"]})
            return self._handle_failure(item, e, now, metadata_id=_metadata_id(item, meta))

        msg_store.mark_metadata_sent(self.db_path, meta["id"], provider_message_id=wamid, template_id=template_id)
        q.mark_completed(self.db_path, item["id"])
        logger.info(
            "queue.item_completed",
            extra={"queue_item_id": item["id"], "provider_message_id": wamid, "to": mask_phone(meta["recipient_phone"])},
        )
        return "succeeded"

    def _load_metadata(self, item: Dict[str, Any]) -> Dict[str, Any]:
        meta = None
        if item.get("message_metadata_id"):
            meta = msg_store.get_metadata(self.db_path, item["message_metadata_id"])
        elif item.get("chat_message_id"):
            meta = msg_store.get_metadata_by_chat_message(self.db_path, item["chat_message_id"])
            if meta:
                q.link_metadata(self.db_path, item["id"], meta["id"])
        if not meta:
            raise NotFoundError("message metadata not found")
        return meta

    def _build_message(self, meta: Dict[str, Any], now: datetime) -> Tuple[OutboundMessage, Optional[str]]:
        to = meta["recipient_phone"]

        if meta["message_type"] == msg_store.TEMPLATE:
            template = self.resolver.resolve(meta.get("property_id"), meta["template_type"], meta.get("language_code"))
            if not template:
                raise NotFoundError(
                    f"no approved template for {meta['template_type']} ({meta.get('language_code')})"
                )
            data = meta.get("template_variables") or {}
            rendered = render(template, data)
            logger.debug("queue.template_rendered", extra={"template_id": template["id"], "body": rendered["body"][:200]})
            return (
                TemplateMessage(
                    to=to,
                    template_name=template["template_name"],
                    language_code=template["language_code"],
                    body_parameters=body_parameters(template, data),
                ),
                template["id"],
            )

        chat = msg_store.get_chat_message(self.db_path, meta["chat_message_id"]) if meta.get("chat_message_id") else None
        if not chat:
            raise NotFoundError("chat message not found for text send")
        conv = get_conversation(self.db_path, chat["conversation_id"]) if chat.get("conversation_id") else None
        require_open_window((conv or {}).get("last_inbound_at"), now)
        return TextMessage(to=to, body=chat["content"] or ""), None

    def _handle_failure(
        self, item: Dict[str, Any], error: Exception, now: datetime, *, metadata_id: Optional[str] = None
    ) -> str:
        reason = str(error) or error.__class__.__name__
        retryable = error.retryable if isinstance(error, NotifierError) else True

        retry_count = item["retry_count"]
        if retryable:
            decision = self.retry_policy.on_failure(item["retry_count"], item["max_retries"], now)
            retry_count = decision.retry_count
            if not decision.give_up:
                q.schedule_retry(
                    self.db_path,
                    item["id"],
                    retry_count=decision.retry_count,
                    next_retry_at=iso(decision.next_retry_at),
                    error=reason,
                )
                logger.warning(
                    "queue.item_retry_scheduled",
                    extra={
                        "queue_item_id": item["id"],
                        "retry_count": decision.retry_count,
                        "next_retry_at": iso(decision.next_retry_at),
                        "error": reason,
                    },
                )
                return "retried"

        q.mark_failed(self.db_path, item["id"], retry_count=retry_count, error=reason)
        if metadata_id:
            msg_store.mark_metadata_failed(self.db_path, metadata_id, reason=reason)
        logger.error(
            "queue.item_failed",
            extra={
                "queue_item_id": item["id"],
                "retry_count": retry_count,
                "error": reason,
                "code": getattr(error, "code", None),
            },
        )
        self._trigger_email_fallback(item["id"])
        return "failed"

    def _trigger_email_fallback(self, item_id: str) -> bool:
        if not q.claim_email_fallback(self.db_path, item_id):
            return False
        item = q.get_queue_item(self.db_path, item_id)
        try:
            self.fallback.trigger(item)
        except Exception:
            # libera a flag para que um retry manual possa disparar de novo
            q.release_email_fallback(self.db_path, item_id)
            logger.exception("queue.email_fallback_error", extra={"queue_item_id": item_id})
            return False
        return True

    # ------------------------------------------------------------------
    # administração
    # ------------------------------------------------------------------
    def cancel(self, item_id: str) -> Dict[str, Any]:
        if q.cancel_item(self.db_path, item_id) == 1:
            logger.info("queue.item_cancelled", extra={"queue_item_id": item_id})
            return q.get_queue_item(self.db_path, item_id)
        item = q.get_queue_item(self.db_path, item_id)
        if not item:
            raise NotFoundError(f"queue item not found: {item_id}")
        raise ValidationError(f"cannot cancel item in status {item['status']}")

    def manual_retry(self, item_id: str) -> Dict[str, Any]:
        if q.reset_for_retry(self.db_path, item_id, now=iso(self.clock())) != 1:
            raise NotFoundError(f"queue item not found: {item_id}")
        logger.info("queue.item_manual_retry", extra={"queue_item_id": item_id})
        return q.get_queue_item(self.db_path, item_id)

    def get_stats(self) -> Dict[str, Any]:
        counts = q.count_by_status(self.db_path)
        return {
            **counts,
            "total": sum(counts.values()),
            "oldest_pending_at": q.oldest_pending_created_at(self.db_path),
            "avg_retry_count": round(q.average_retry_count(self.db_path), 2),
        }

    def list_pending(self, limit: int = 20, offset: int = 0) -> Dict[str, Any]:
        items, total = q.list_pending_items(self.db_path, limit=limit, offset=offset)
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def cleanup_old_items(self, days_to_keep: int = 30) -> int:
        cutoff = iso(self.clock() - timedelta(days=days_to_keep))
        deleted = q.delete_terminal_before(self.db_path, cutoff)
        logger.info("queue.cleanup", extra={"deleted": deleted, "cutoff": cutoff})
        return deleted
