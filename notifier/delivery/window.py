# notifier/delivery/window.py
"""
Janela de atendimento de 24h da WhatsApp Business.

Texto livre só pode ir para quem mandou mensagem nas últimas 24h; fora disso
apenas templates aprovados. Aqui só há leituras puras sobre last_inbound_at:
quem grava esse campo é exclusivamente o processamento de inbound do webhook.
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from notifier.errors import template_required
from notifier.models.storage import iso, parse_iso, utcnow

WINDOW = timedelta(hours=24)


class WindowState(str, enum.Enum):
    NO_INBOUND_YET = "no-inbound-yet"
    OPEN = "window-open"
    EXPIRED = "window-expired"


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return parse_iso(value)


def window_state(last_inbound_at: Any, now: Optional[datetime] = None) -> WindowState:
    last = _as_datetime(last_inbound_at)
    if last is None:
        return WindowState.NO_INBOUND_YET
    now = now or utcnow()
    # exatamente 24h já é expirado
    return WindowState.OPEN if now - last < WINDOW else WindowState.EXPIRED


def is_window_active(last_inbound_at: Any, now: Optional[datetime] = None) -> bool:
    return window_state(last_inbound_at, now) is WindowState.OPEN


def window_status(last_inbound_at: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    last = _as_datetime(last_inbound_at)
    now = now or utcnow()
    state = window_state(last, now)
    if last is None:
        return {
            "state": state.value,
            "window_active": False,
            "last_inbound_at": None,
            "hours_remaining": 0.0,
            "expires_at": None,
        }
    expires = last + WINDOW
    remaining = max(0.0, (expires - now).total_seconds() / 3600)
    return {
        "state": state.value,
        "window_active": state is WindowState.OPEN,
        "last_inbound_at": iso(last),
        "hours_remaining": round(remaining, 2),
        "expires_at": iso(expires),
    }


def require_open_window(last_inbound_at: Any, now: Optional[datetime] = None) -> None:
    """Levanta ComplianceError("template required") fora da janela aberta."""
    if not is_window_active(last_inbound_at, now):
        raise template_required()
