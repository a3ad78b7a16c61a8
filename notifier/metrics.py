# notifier/metrics.py
"""
Contadores Prometheus do pipeline. Expostos em GET /metrics (blueprint health).
"""

from __future__ import annotations

from prometheus_client import Counter

QUEUE_ITEMS = Counter(
    "notifier_queue_items_total",
    "Queue items handled by the dispatcher, by outcome",
    ["outcome"],  # succeeded | retried | failed | skipped
)

WEBHOOK_MESSAGES = Counter(
    "notifier_webhook_messages_total",
    "Inbound webhook messages, by ingestion result",
    ["result"],  # stored | duplicate | unrouted | error
)

WEBHOOK_UNROUTED = Counter(
    "notifier_webhook_unrouted_total",
    "Inbound messages dropped because the phone_number_id has no tenant mapping",
)

EMAIL_FALLBACKS = Counter(
    "notifier_email_fallbacks_total",
    "Email fallbacks triggered after a queue item failed",
)
