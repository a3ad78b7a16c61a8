# notifier/models/tenants.py
from __future__ import annotations

from typing import Dict, Optional

from .storage import get_conn, iso_now


def upsert_phone_mapping(db_path: str, phone_number_id: str, tenant_id: str) -> None:
    with get_conn(db_path) as conn:
        conn.execute(
            """INSERT INTO phone_tenant_mappings (phone_number_id, tenant_id, updated_at)
               VALUES (?,?,?)
               ON CONFLICT(phone_number_id) DO UPDATE SET
                 tenant_id=excluded.tenant_id, updated_at=excluded.updated_at""",
            (str(phone_number_id), str(tenant_id), iso_now()),
        )


def get_tenant_for_phone_number_id(db_path: str, phone_number_id: str) -> Optional[str]:
    with get_conn(db_path) as conn:
        row = conn.execute(
            "SELECT tenant_id FROM phone_tenant_mappings WHERE phone_number_id=?",
            (str(phone_number_id),),
        ).fetchone()
    return row["tenant_id"] if row else None


def list_phone_mappings(db_path: str) -> Dict[str, str]:
    with get_conn(db_path) as conn:
        rows = conn.execute("SELECT phone_number_id, tenant_id FROM phone_tenant_mappings").fetchall()
    return {r["phone_number_id"]: r["tenant_id"] for r in rows}
