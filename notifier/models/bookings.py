# notifier/models/bookings.py
"""
Projeção somente-leitura das reservas. O CRUD de reservas vive em outro serviço;
aqui só consultamos (e, em testes/dev, inserimos) o necessário para montar envios
automáticos e vincular conversas.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, Optional

from .storage import get_conn, iso_now


def insert_booking(
    db_path: str,
    *,
    tenant_id: str,
    guest_phone: str,
    status: str = "confirmed",
    id: Optional[str] = None,
    property_id: Optional[str] = None,
    guest_name: Optional[str] = None,
    booking_reference: Optional[str] = None,
    check_in_date: Optional[str] = None,
    check_out_date: Optional[str] = None,
    language_code: str = "en",
    meta: Optional[Dict[str, Any]] = None,
) -> str:
    booking_id = id or str(uuid.uuid4())
    now = iso_now()
    with get_conn(db_path) as conn:
        conn.execute(
            """INSERT INTO bookings
               (id, tenant_id, property_id, guest_phone, guest_name, booking_reference,
                check_in_date, check_out_date, language_code, status, meta, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)""",
            (
                booking_id, tenant_id, property_id, guest_phone, guest_name, booking_reference,
                check_in_date, check_out_date, language_code, status,
                json.dumps(meta) if meta else None, now, now,
            ),
        )
    return booking_id


def get_booking(db_path: str, booking_id: str) -> Optional[Dict[str, Any]]:
    with get_conn(db_path) as conn:
        return conn.execute("SELECT * FROM bookings WHERE id=?", (booking_id,)).fetchone()


def find_latest_booking_by_phone(conn, *, tenant_id: str, guest_phone: str) -> Optional[Dict[str, Any]]:
    return conn.execute(
        """SELECT * FROM bookings WHERE tenant_id=? AND guest_phone=?
           ORDER BY created_at DESC LIMIT 1""",
        (tenant_id, guest_phone),
    ).fetchone()
