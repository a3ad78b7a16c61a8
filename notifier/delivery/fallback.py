# notifier/delivery/fallback.py
"""
Gatilho de fallback por e-mail. O envio real de e-mail é de outro serviço;
aqui fica só o contrato e uma implementação que registra o evento em log.
"""

from __future__ import annotations

from typing import Any, Dict, Protocol

from notifier.logging import get_logger
from notifier.metrics import EMAIL_FALLBACKS

logger = get_logger(__name__)


class EmailFallbackTrigger(Protocol):
    def trigger(self, item: Dict[str, Any]) -> None: ...


class LoggingEmailFallback:
    def trigger(self, item: Dict[str, Any]) -> None:
        EMAIL_FALLBACKS.inc()
        logger.warning(
            "queue.email_fallback",
            extra={
                "queue_item_id": item.get("id"),
                "booking_id": item.get("booking_id"),
                "trigger_type": item.get("trigger_type"),
                "last_error": item.get("last_error"),
            },
        )
