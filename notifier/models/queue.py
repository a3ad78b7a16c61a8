# notifier/models/queue.py
"""
Persistência da fila de envios (queue_items).

Toda transição de status é um UPDATE condicional (WHERE status IN (...)), e o claim
pending -> processing é um compare-and-swap sobre (status, version): se duas
instâncias do dispatcher disputarem o mesmo item, só uma recebe rowcount == 1.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from .storage import get_conn, iso_now

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

QUEUE_STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED, CANCELLED)
TERMINAL_STATUSES = (COMPLETED, FAILED, CANCELLED)


def _row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    row["should_fallback_to_email"] = bool(row["should_fallback_to_email"])
    row["email_fallback_sent"] = bool(row["email_fallback_sent"])
    return row


def insert_queue_item(
    db_path: str,
    *,
    trigger_type: str,
    tenant_id: Optional[str] = None,
    chat_message_id: Optional[str] = None,
    message_metadata_id: Optional[str] = None,
    booking_id: Optional[str] = None,
    priority: int = 5,
    max_retries: int = 3,
    should_fallback_to_email: bool = True,
    next_retry_at: Optional[str] = None,
    conn=None,
) -> Dict[str, Any]:
    now = iso_now()
    item_id = str(uuid.uuid4())
    args = (
        item_id, chat_message_id, message_metadata_id, booking_id, tenant_id, trigger_type,
        PENDING, int(priority), int(max_retries), next_retry_at or now,
        1 if should_fallback_to_email else 0, now, now,
    )
    sql = """INSERT INTO queue_items
             (id, chat_message_id, message_metadata_id, booking_id, tenant_id, trigger_type,
              status, priority, retry_count, max_retries, next_retry_at,
              should_fallback_to_email, email_fallback_sent, version, created_at, updated_at)
             VALUES (?,?,?,?,?,?,?,?,0,?,?,?,0,0,?,?)"""
    if conn is not None:
        conn.execute(sql, args)
        return _row(conn.execute("SELECT * FROM queue_items WHERE id=?", (item_id,)).fetchone())
    with get_conn(db_path) as c:
        c.execute(sql, args)
        return _row(c.execute("SELECT * FROM queue_items WHERE id=?", (item_id,)).fetchone())


def get_queue_item(db_path: str, item_id: str) -> Optional[Dict[str, Any]]:
    with get_conn(db_path) as conn:
        return _row(conn.execute("SELECT * FROM queue_items WHERE id=?", (item_id,)).fetchone())


def select_due_items(db_path: str, *, now: str, limit: int = 50) -> List[Dict[str, Any]]:
    with get_conn(db_path) as conn:
        rows = conn.execute(
            """SELECT * FROM queue_items
               WHERE status=? AND next_retry_at <= ?
               ORDER BY priority ASC, created_at ASC
               LIMIT ?""",
            (PENDING, now, int(limit)),
        ).fetchall()
    return [_row(r) for r in rows]


def claim_item(db_path: str, item_id: str, *, version: int, now: Optional[str] = None) -> bool:
    """CAS pending -> processing. False quando outro consumidor já ganhou o item."""
    now = now or iso_now()
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE queue_items
               SET status=?, version=version+1, last_attempt_at=?, updated_at=?
               WHERE id=? AND status=? AND version=?""",
            (PROCESSING, now, now, item_id, PENDING, int(version)),
        )
        return cur.rowcount == 1


def link_metadata(db_path: str, item_id: str, metadata_id: str) -> None:
    with get_conn(db_path) as conn:
        conn.execute(
            "UPDATE queue_items SET message_metadata_id=?, updated_at=? WHERE id=?",
            (metadata_id, iso_now(), item_id),
        )


def mark_completed(db_path: str, item_id: str) -> int:
    now = iso_now()
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE queue_items
               SET status=?, completed_at=?, last_error=NULL, updated_at=?, version=version+1
               WHERE id=? AND status=?""",
            (COMPLETED, now, now, item_id, PROCESSING),
        )
        return cur.rowcount


def mark_failed(db_path: str, item_id: str, *, retry_count: int, error: str) -> int:
    now = iso_now()
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE queue_items
               SET status=?, retry_count=?, last_error=?, completed_at=?, updated_at=?, version=version+1
               WHERE id=? AND status=?""",
            (FAILED, int(retry_count), error, now, now, item_id, PROCESSING),
        )
        return cur.rowcount


def schedule_retry(db_path: str, item_id: str, *, retry_count: int, next_retry_at: str, error: str) -> int:
    now = iso_now()
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE queue_items
               SET status=?, retry_count=?, next_retry_at=?, last_error=?, updated_at=?, version=version+1
               WHERE id=? AND status=?""",
            (PENDING, int(retry_count), next_retry_at, error, now, item_id, PROCESSING),
        )
        return cur.rowcount


def claim_email_fallback(db_path: str, item_id: str) -> bool:
    """Marca email_fallback_sent 0 -> 1; True só para quem virou a flag."""
    now = iso_now()
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE queue_items
               SET email_fallback_sent=1, email_fallback_sent_at=?, updated_at=?
               WHERE id=? AND email_fallback_sent=0 AND should_fallback_to_email=1""",
            (now, now, item_id),
        )
        return cur.rowcount == 1


def release_email_fallback(db_path: str, item_id: str) -> None:
    with get_conn(db_path) as conn:
        conn.execute(
            "UPDATE queue_items SET email_fallback_sent=0, email_fallback_sent_at=NULL, updated_at=? WHERE id=?",
            (iso_now(), item_id),
        )


def cancel_item(db_path: str, item_id: str) -> int:
    now = iso_now()
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE queue_items
               SET status=?, completed_at=?, updated_at=?, version=version+1
               WHERE id=? AND status IN (?, ?)""",
            (CANCELLED, now, now, item_id, PENDING, PROCESSING),
        )
        return cur.rowcount


def reset_for_retry(db_path: str, item_id: str, *, now: Optional[str] = None) -> int:
    now = now or iso_now()
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE queue_items
               SET status=?, retry_count=0, next_retry_at=?, last_error=NULL,
                   completed_at=NULL, updated_at=?, version=version+1
               WHERE id=?""",
            (PENDING, now, now, item_id),
        )
        return cur.rowcount


def count_by_status(db_path: str) -> Dict[str, int]:
    counts = {s: 0 for s in QUEUE_STATUSES}
    with get_conn(db_path) as conn:
        for row in conn.execute("SELECT status, COUNT(*) AS n FROM queue_items GROUP BY status").fetchall():
            counts[row["status"]] = row["n"]
    return counts


def oldest_pending_created_at(db_path: str) -> Optional[str]:
    with get_conn(db_path) as conn:
        row = conn.execute(
            "SELECT MIN(created_at) AS oldest FROM queue_items WHERE status=?", (PENDING,)
        ).fetchone()
    return row["oldest"] if row else None


def average_retry_count(db_path: str) -> float:
    with get_conn(db_path) as conn:
        row = conn.execute(
            "SELECT AVG(retry_count) AS avg_retries FROM queue_items WHERE retry_count > 0"
        ).fetchone()
    return float(row["avg_retries"] or 0) if row else 0.0


def list_pending_items(db_path: str, *, limit: int = 20, offset: int = 0) -> tuple[List[Dict[str, Any]], int]:
    with get_conn(db_path) as conn:
        rows = conn.execute(
            """SELECT * FROM queue_items WHERE status=?
               ORDER BY priority ASC, next_retry_at ASC
               LIMIT ? OFFSET ?""",
            (PENDING, int(limit), int(offset)),
        ).fetchall()
        total = conn.execute("SELECT COUNT(*) AS n FROM queue_items WHERE status=?", (PENDING,)).fetchone()["n"]
    return [_row(r) for r in rows], int(total)


def delete_terminal_before(db_path: str, cutoff: str) -> int:
    with get_conn(db_path) as conn:
        cur = conn.execute(
            f"""DELETE FROM queue_items
                WHERE status IN ({",".join("?" * len(TERMINAL_STATUSES))}) AND completed_at < ?""",
            (*TERMINAL_STATUSES, cutoff),
        )
        return cur.rowcount
