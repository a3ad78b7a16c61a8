# notifier/models/optouts.py
from __future__ import annotations

from typing import Any, Dict, Optional

from .storage import get_conn, iso_now


def get_opt_out(db_path: str, phone_number: str) -> Optional[Dict[str, Any]]:
    """Erros de leitura sobem (sqlite3.Error); quem decide o fail-safe é o registro."""
    with get_conn(db_path) as conn:
        return conn.execute("SELECT * FROM opt_outs WHERE phone_number=?", (phone_number,)).fetchone()


def upsert_opt_out(
    db_path: str,
    phone_number: str,
    *,
    reason: Optional[str] = None,
    source: str = "user_request",
    guest_id: Optional[str] = None,
    at: Optional[str] = None,
) -> None:
    at = at or iso_now()
    with get_conn(db_path) as conn:
        conn.execute(
            """INSERT INTO opt_outs
               (phone_number, guest_id, opted_in_at, opted_out_at, opt_out_reason, opt_out_source, created_at, updated_at)
               VALUES (?,?,NULL,?,?,?,?,?)
               ON CONFLICT(phone_number) DO UPDATE SET
                 opted_out_at=excluded.opted_out_at,
                 opted_in_at=NULL,
                 opt_out_reason=excluded.opt_out_reason,
                 opt_out_source=excluded.opt_out_source,
                 guest_id=COALESCE(excluded.guest_id, opt_outs.guest_id),
                 updated_at=excluded.updated_at""",
            (phone_number, guest_id, at, reason, source, at, at),
        )


def upsert_opt_in(db_path: str, phone_number: str, *, at: Optional[str] = None) -> None:
    """Re-opt-in: carimba opted_in_at e preserva opted_out_at (o estado é derivado dos dois)."""
    at = at or iso_now()
    with get_conn(db_path) as conn:
        conn.execute(
            """INSERT INTO opt_outs (phone_number, opted_in_at, opted_out_at, created_at, updated_at)
               VALUES (?,?,NULL,?,?)
               ON CONFLICT(phone_number) DO UPDATE SET
                 opted_in_at=excluded.opted_in_at,
                 updated_at=excluded.updated_at""",
            (phone_number, at, at, at),
        )
