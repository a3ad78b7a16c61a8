# notifier/models/messages.py
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from .storage import dumps, get_conn, iso_now, loads

INBOUND = "inbound"
OUTBOUND = "outbound"

TEXT = "text"
TEMPLATE = "template"

QUEUED = "queued"
SENT = "sent"
DELIVERED = "delivered"
READ = "read"
FAILED = "failed"

# ordem de progressão; "failed" fica fora e sempre se aplica
STATUS_RANK = {QUEUED: 0, SENT: 1, DELIVERED: 2, READ: 3}

STATUS_TIMESTAMP_FIELD = {
    SENT: "sent_at",
    DELIVERED: "delivered_at",
    READ: "read_at",
    FAILED: "failed_at",
}


def _meta_row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is not None:
        row["template_variables"] = loads(row.get("template_variables")) or {}
    return row


# ---------- chat_messages ----------

def insert_chat_message(
    conn,
    *,
    conversation_id: Optional[str],
    content: str,
    message_type: str = TEXT,
    sender_id: Optional[str] = None,
    created_at: Optional[str] = None,
) -> str:
    msg_id = str(uuid.uuid4())
    conn.execute(
        """INSERT INTO chat_messages (id, conversation_id, sender_id, content, message_type, message_channel, created_at)
           VALUES (?,?,?,?,?,'whatsapp',?)""",
        (msg_id, conversation_id, sender_id, content, message_type, created_at or iso_now()),
    )
    return msg_id


def get_chat_message(db_path: str, chat_message_id: str) -> Optional[Dict[str, Any]]:
    with get_conn(db_path) as conn:
        return conn.execute("SELECT * FROM chat_messages WHERE id=?", (chat_message_id,)).fetchone()


def list_conversation_messages(
    db_path: str, conversation_id: str, *, limit: int = 50, before: Optional[str] = None
) -> List[Dict[str, Any]]:
    q = """SELECT c.*, m.direction, m.status, m.provider_message_id
           FROM chat_messages c LEFT JOIN message_metadata m ON m.chat_message_id = c.id
           WHERE c.conversation_id=?"""
    args: List[Any] = [conversation_id]
    if before:
        q += " AND c.created_at < ?"
        args.append(before)
    q += " ORDER BY c.created_at DESC LIMIT ?"
    args.append(int(limit))
    with get_conn(db_path) as conn:
        return conn.execute(q, tuple(args)).fetchall()


def count_chat_messages(db_path: str) -> int:
    with get_conn(db_path) as conn:
        return conn.execute("SELECT COUNT(*) AS n FROM chat_messages").fetchone()["n"]


# ---------- message_metadata ----------

def insert_metadata(
    conn,
    *,
    direction: str,
    message_type: str,
    status: str,
    tenant_id: Optional[str] = None,
    chat_message_id: Optional[str] = None,
    provider_message_id: Optional[str] = None,
    recipient_phone: Optional[str] = None,
    sender_phone: Optional[str] = None,
    property_id: Optional[str] = None,
    template_type: Optional[str] = None,
    language_code: Optional[str] = None,
    template_variables: Optional[Dict[str, Any]] = None,
    sent_at: Optional[str] = None,
    conversation_window_expires_at: Optional[str] = None,
) -> str:
    """
    Recebe uma conexão aberta (normalmente dentro de transaction()).
    Uma violação de UNIQUE em provider_message_id sobe como sqlite3.IntegrityError.
    """
    meta_id = str(uuid.uuid4())
    now = iso_now()
    conn.execute(
        """INSERT INTO message_metadata
           (id, chat_message_id, tenant_id, provider_message_id, direction, message_type, status,
            recipient_phone, sender_phone, property_id, template_type, language_code,
            template_variables, sent_at, conversation_window_expires_at, created_at, updated_at)
           VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)""",
        (
            meta_id, chat_message_id, tenant_id, provider_message_id, direction, message_type, status,
            recipient_phone, sender_phone, property_id, template_type, language_code,
            dumps(template_variables), sent_at, conversation_window_expires_at, now, now,
        ),
    )
    return meta_id


def get_metadata(db_path: str, metadata_id: str) -> Optional[Dict[str, Any]]:
    with get_conn(db_path) as conn:
        return _meta_row(conn.execute("SELECT * FROM message_metadata WHERE id=?", (metadata_id,)).fetchone())


def get_metadata_by_chat_message(db_path: str, chat_message_id: str) -> Optional[Dict[str, Any]]:
    with get_conn(db_path) as conn:
        return _meta_row(
            conn.execute("SELECT * FROM message_metadata WHERE chat_message_id=?", (chat_message_id,)).fetchone()
        )


def get_metadata_by_provider_id(db_path: str, provider_message_id: str) -> Optional[Dict[str, Any]]:
    with get_conn(db_path) as conn:
        return _meta_row(
            conn.execute(
                "SELECT * FROM message_metadata WHERE provider_message_id=?", (provider_message_id,)
            ).fetchone()
        )


def has_provider_message_id(db_path: str, provider_message_id: str) -> bool:
    with get_conn(db_path) as conn:
        row = conn.execute(
            "SELECT 1 FROM message_metadata WHERE provider_message_id=?", (provider_message_id,)
        ).fetchone()
        return bool(row)


def mark_metadata_sent(
    db_path: str, metadata_id: str, *, provider_message_id: str, template_id: Optional[str] = None
) -> int:
    now = iso_now()
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE message_metadata
               SET status=?, provider_message_id=?, template_id=COALESCE(?, template_id),
                   sent_at=?, updated_at=?
               WHERE id=?""",
            (SENT, provider_message_id, template_id, now, now, metadata_id),
        )
        return cur.rowcount


def mark_metadata_failed(db_path: str, metadata_id: str, *, reason: str) -> int:
    now = iso_now()
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE message_metadata SET status=?, failed_at=?, failure_reason=?, updated_at=?
               WHERE id=?""",
            (FAILED, now, reason, now, metadata_id),
        )
        return cur.rowcount


def apply_status_update(
    conn,
    provider_message_id: str,
    *,
    status: str,
    at: str,
    failure_reason: Optional[str] = None,
) -> bool:
    """
    Aplica um status vindo do webhook. O campo de timestamp correspondente é sempre
    carimbado; o status em si nunca regride (read -> delivered fora de ordem é ignorado).
    Retorna False quando a mensagem não existe.
    """
    row = conn.execute(
        "SELECT id, status FROM message_metadata WHERE provider_message_id=?", (provider_message_id,)
    ).fetchone()
    if not row:
        return False

    field = STATUS_TIMESTAMP_FIELD[status]
    current = row["status"]
    if status == FAILED or current == FAILED:
        new_status = status
    elif STATUS_RANK.get(status, 0) >= STATUS_RANK.get(current, 0):
        new_status = status
    else:
        new_status = current

    conn.execute(
        f"""UPDATE message_metadata
            SET status=?, {field}=?, failure_reason=COALESCE(?, failure_reason), updated_at=?
            WHERE id=?""",
        (new_status, at, failure_reason, iso_now(), row["id"]),
    )
    return True
