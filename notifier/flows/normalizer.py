# notifier/flows/normalizer.py
"""
Normalização do payload do Webhook (WhatsApp Cloud API) em duas listas simples:
mensagens recebidas e atualizações de status.

Mantemos este módulo **puro** (sem dependências de Flask ou banco) para
facilitar testes unitários.

Cada item carrega o `phone_number_id` do change de onde veio: um mesmo POST
pode trazer changes de números (tenants) diferentes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, NotRequired, TypedDict


# -----------------------------
# Tipos dos eventos normalizados
# -----------------------------
class InboundMessage(TypedDict):
    phone_number_id: str
    id: str
    from_: str
    type: str
    text: str
    timestamp: NotRequired[str]
    profile_name: NotRequired[str]


class StatusUpdate(TypedDict):
    phone_number_id: str
    id: str
    status: str  # sent | delivered | read | failed (outros são ignorados adiante)
    recipient_id: str
    timestamp: NotRequired[str]
    error: NotRequired[str]


@dataclass
class WebhookBatch:
    messages: List[InboundMessage] = field(default_factory=list)
    statuses: List[StatusUpdate] = field(default_factory=list)


# -----------------------------
# Função principal
# -----------------------------
def parse_webhook(body: Dict[str, Any]) -> WebhookBatch:
    """
    Converte o payload bruto em WebhookBatch.

    - Tolerante a campos ausentes: partes inválidas são ignoradas, nunca levanta.
    - Mensagens sem id ou remetente e status sem id são descartados (sem id não
      há como deduplicar nem vincular).
    """
    batch = WebhookBatch()

    for entry in _safe_list(_safe_dict(body).get("entry")):
        for change in _safe_list(_safe_dict(entry).get("changes")):
            value = _safe_dict(_safe_dict(change).get("value"))
            pnid = str(_safe_dict(value.get("metadata")).get("phone_number_id") or "")
            names = _contact_names(value)

            # ------------------ mensagens (inbound) ------------------
            for m in _safe_list(value.get("messages")):
                m = _safe_dict(m)
                from_ = str(m.get("from") or "")
                msg_id = str(m.get("id") or "")
                mtype = str(m.get("type") or "")
                if not from_ or not msg_id or not mtype:
                    continue
                msg: InboundMessage = {  # type: ignore[typeddict-item]
                    "phone_number_id": pnid,
                    "id": msg_id,
                    "from_": from_,
                    "type": mtype,
                    "text": _message_text(m, mtype),
                }
                if m.get("timestamp"):
                    msg["timestamp"] = str(m["timestamp"])
                if names.get(from_):
                    msg["profile_name"] = names[from_]
                batch.messages.append(msg)

            # ------------------ status (delivery) ------------------
            for st in _safe_list(value.get("statuses")):
                st = _safe_dict(st)
                msg_id = str(st.get("id") or "")
                status = str(st.get("status") or "")
                if not msg_id or not status:
                    continue
                upd: StatusUpdate = {
                    "phone_number_id": pnid,
                    "id": msg_id,
                    "status": status,
                    "recipient_id": str(st.get("recipient_id") or ""),
                }
                if st.get("timestamp"):
                    upd["timestamp"] = str(st["timestamp"])
                err = _first_error(st)
                if err:
                    upd["error"] = err
                batch.statuses.append(upd)

    return batch


# -----------------------------
# Helpers internos
# -----------------------------
def _safe_list(x: Any) -> list:
    return x if isinstance(x, list) else []


def _safe_dict(x: Any) -> dict:
    return x if isinstance(x, dict) else {}


def _contact_names(value: dict) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for c in _safe_list(value.get("contacts")):
        c = _safe_dict(c)
        wa_id = str(c.get("wa_id") or "")
        name = str(_safe_dict(c.get("profile")).get("name") or "").strip()
        if wa_id and name:
            mapping[wa_id] = name
    return mapping


def _message_text(m: dict, mtype: Literal["text", "image", "document", "button", "interactive"] | str) -> str:
    """Conteúdo textual guardado no chat; mídia sem legenda vira "[tipo]"."""
    if mtype == "text":
        return str(_safe_dict(m.get("text")).get("body") or "")
    if mtype in ("image", "video", "document"):
        caption = _safe_dict(m.get(mtype)).get("caption")
        return str(caption) if caption else f"[{mtype}]"
    if mtype == "button":
        btn = _safe_dict(m.get("button"))
        return str(btn.get("text") or btn.get("payload") or "[button]")
    if mtype == "interactive":
        inter = _safe_dict(m.get("interactive"))
        reply = _safe_dict(inter.get("button_reply")) or _safe_dict(inter.get("list_reply"))
        return str(reply.get("title") or "[interactive]")
    return f"[{mtype}]"


def _first_error(st: dict) -> str | None:
    errors = _safe_list(st.get("errors"))
    if not errors:
        return None
    e0 = _safe_dict(errors[0])
    msg = e0.get("message") or e0.get("title")
    return str(msg) if msg else None
