# notifier/models/templates.py
from __future__ import annotations

import sqlite3
import uuid
from typing import Any, Dict, List, Optional

from notifier.errors import ValidationError

from .storage import dumps, get_conn, iso_now, loads

APPROVAL_STATUSES = ("draft", "pending", "approved", "rejected")


def _row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is not None:
        row["is_enabled"] = bool(row["is_enabled"])
        row["button_config"] = loads(row.get("button_config"))
    return row


def insert_template(
    db_path: str,
    *,
    template_type: str,
    template_name: str,
    language_code: str,
    body_template: str,
    property_id: Optional[str] = None,
    header_text: Optional[str] = None,
    footer_text: Optional[str] = None,
    button_config: Optional[Dict[str, Any]] = None,
    is_enabled: bool = True,
    approval_status: str = "draft",
) -> Dict[str, Any]:
    if not body_template or not body_template.strip():
        raise ValidationError("body_template is required")
    if approval_status not in APPROVAL_STATUSES:
        raise ValidationError(f"invalid approval_status: {approval_status}")

    now = iso_now()
    template_id = str(uuid.uuid4())
    try:
        with get_conn(db_path) as conn:
            conn.execute(
                """INSERT INTO templates
                   (id, property_id, template_type, template_name, language_code, header_text,
                    body_template, footer_text, button_config, is_enabled, approval_status,
                    created_at, updated_at)
                   VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)""",
                (
                    template_id, property_id, template_type, template_name, language_code, header_text,
                    body_template, footer_text, dumps(button_config), 1 if is_enabled else 0,
                    approval_status, now, now,
                ),
            )
            return _row(conn.execute("SELECT * FROM templates WHERE id=?", (template_id,)).fetchone())
    except sqlite3.IntegrityError:
        raise ValidationError(
            f"template already exists for scope ({property_id}, {template_type}, {language_code})"
        )


def get_template(db_path: str, template_id: str) -> Optional[Dict[str, Any]]:
    with get_conn(db_path) as conn:
        return _row(conn.execute("SELECT * FROM templates WHERE id=?", (template_id,)).fetchone())


def list_candidate_templates(
    db_path: str, *, property_id: Optional[str], template_type: str, language_codes: List[str]
) -> List[Dict[str, Any]]:
    """
    Linhas elegíveis de todos os escopos que o resolver pode considerar
    (template da propriedade ou global, nos idiomas pedidos).
    """
    langs = list(dict.fromkeys(language_codes))
    q = f"""SELECT * FROM templates
            WHERE template_type=?
              AND language_code IN ({",".join("?" * len(langs))})
              AND (property_id IS NULL{" OR property_id=?" if property_id else ""})"""
    args: List[Any] = [template_type, *langs]
    if property_id:
        args.append(property_id)
    with get_conn(db_path) as conn:
        return [_row(r) for r in conn.execute(q, tuple(args)).fetchall()]


def set_template_flags(
    db_path: str, template_id: str, *, is_enabled: Optional[bool] = None, approval_status: Optional[str] = None
) -> int:
    if approval_status is not None and approval_status not in APPROVAL_STATUSES:
        raise ValidationError(f"invalid approval_status: {approval_status}")
    with get_conn(db_path) as conn:
        cur = conn.execute(
            """UPDATE templates
               SET is_enabled=COALESCE(?, is_enabled), approval_status=COALESCE(?, approval_status), updated_at=?
               WHERE id=?""",
            (None if is_enabled is None else int(is_enabled), approval_status, iso_now(), template_id),
        )
        return cur.rowcount


def delete_template(db_path: str, template_id: str) -> int:
    with get_conn(db_path) as conn:
        return conn.execute("DELETE FROM templates WHERE id=?", (template_id,)).rowcount
