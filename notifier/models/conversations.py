# notifier/models/conversations.py
from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from .storage import get_conn, iso_now


def get_conversation(db_path: str, conversation_id: str) -> Optional[Dict[str, Any]]:
    with get_conn(db_path) as conn:
        return conn.execute("SELECT * FROM conversations WHERE id=?", (conversation_id,)).fetchone()


def find_conversation(conn, *, tenant_id: str, guest_phone: str) -> Optional[Dict[str, Any]]:
    return conn.execute(
        "SELECT * FROM conversations WHERE tenant_id=? AND guest_phone=?",
        (tenant_id, guest_phone),
    ).fetchone()


def find_or_create_conversation(
    conn,
    *,
    tenant_id: str,
    guest_phone: str,
    title: str,
    booking_id: Optional[str] = None,
    property_id: Optional[str] = None,
) -> tuple[Dict[str, Any], bool]:
    """
    Uma conversa por (tenant, telefone do hóspede); o índice único torna o
    find-or-create seguro contra dois webhooks simultâneos (INSERT OR IGNORE).
    Retorna (conversa, criada_agora).
    """
    existing = find_conversation(conn, tenant_id=tenant_id, guest_phone=guest_phone)
    if existing:
        return existing, False

    cur = conn.execute(
        """INSERT OR IGNORE INTO conversations
           (id, tenant_id, guest_phone, booking_id, property_id, title, created_at)
           VALUES (?,?,?,?,?,?,?)""",
        (str(uuid.uuid4()), tenant_id, guest_phone, booking_id, property_id, title, iso_now()),
    )
    conv = find_conversation(conn, tenant_id=tenant_id, guest_phone=guest_phone)
    return conv, cur.rowcount == 1


def touch_inbound(conn, conversation_id: str, *, at: str) -> None:
    """Único escritor de last_inbound_at: reabre a janela de 24h."""
    conn.execute(
        "UPDATE conversations SET last_inbound_at=?, last_message_at=? WHERE id=?",
        (at, at, conversation_id),
    )


def touch_last_message(conn, conversation_id: str, *, at: str) -> None:
    conn.execute("UPDATE conversations SET last_message_at=? WHERE id=?", (at, conversation_id))
