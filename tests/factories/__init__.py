# tests/factories/__init__.py
"""
Atalhos para importar factories nos testes.

Exemplo de uso:
    from tests.factories import event_factory as f
    payload = f.make_incoming_text_payload("27821234567", "Oi")
"""

from .event_factory import *  # noqa: F401,F403

__all__ = [
    # Utils
    "now_unix",
    # Mensagens
    "make_text_message",
    "make_image_message",
    "make_button_message",
    # Status
    "make_status",
    # Envelopes / payloads completos
    "make_change_value",
    "make_webhook_body",
    "make_incoming_text_payload",
    "make_status_payload",
    # Assinatura
    "sign_body",
]
