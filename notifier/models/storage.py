# notifier/models/storage.py
"""
Infra de SQLite compartilhada: conexão, transação explícita, schema e helpers de tempo.

Timestamps são TEXT ISO-8601 UTC com milissegundos e sufixo "Z"
(2026-01-01T10:00:00.000Z): a ordem lexical é a ordem cronológica, então
comparações como next_retry_at <= ? funcionam direto no SQL.
"""

from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

# ---------- helpers de tempo ----------

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_now() -> str:
    return iso(utcnow())


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def from_unix(ts: Any) -> Optional[str]:
    """Timestamp unix (string, como vem da Meta) -> ISO."""
    try:
        return iso(datetime.fromtimestamp(int(ts), tz=timezone.utc))
    except (TypeError, ValueError, OverflowError):
        return None


def dumps(value: Any) -> Optional[str]:
    return json.dumps(value, ensure_ascii=False) if value is not None else None


def loads(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


# ---------- conexão ----------

def _dict_factory(cursor, row):
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


@contextmanager
def get_conn(db_path: str):
    os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
    conn = sqlite3.connect(db_path, isolation_level=None, timeout=30)  # autocommit
    conn.row_factory = _dict_factory
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(db_path: str):
    """
    Transação explícita (BEGIN IMMEDIATE) para escritas que tocam várias linhas.
    Qualquer exceção desfaz tudo e é repropagada.
    """
    with get_conn(db_path) as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")


# ---------- schema ----------

DDL_QUEUE = """
CREATE TABLE IF NOT EXISTS queue_items (
  id                        TEXT PRIMARY KEY,
  chat_message_id           TEXT,
  message_metadata_id       TEXT,
  booking_id                TEXT,
  tenant_id                 TEXT,
  trigger_type              TEXT NOT NULL,
  status                    TEXT NOT NULL,      -- pending | processing | completed | failed | cancelled
  priority                  INTEGER NOT NULL DEFAULT 5,
  retry_count               INTEGER NOT NULL DEFAULT 0,
  max_retries               INTEGER NOT NULL DEFAULT 3,
  next_retry_at             TEXT,
  last_attempt_at           TEXT,
  last_error                TEXT,
  should_fallback_to_email  INTEGER NOT NULL DEFAULT 1,
  email_fallback_sent       INTEGER NOT NULL DEFAULT 0,
  email_fallback_sent_at    TEXT,
  version                   INTEGER NOT NULL DEFAULT 0,
  created_at                TEXT NOT NULL,
  updated_at                TEXT NOT NULL,
  completed_at              TEXT
);
CREATE INDEX IF NOT EXISTS idx_queue_due ON queue_items(status, next_retry_at, priority, created_at);
"""

DDL_CONVERSATIONS = """
CREATE TABLE IF NOT EXISTS conversations (
  id                TEXT PRIMARY KEY,
  tenant_id         TEXT NOT NULL,
  guest_phone       TEXT NOT NULL,
  booking_id        TEXT,
  property_id       TEXT,
  title             TEXT,
  last_inbound_at   TEXT,
  last_message_at   TEXT,
  created_at        TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_conversations_tenant_phone ON conversations(tenant_id, guest_phone);
"""

DDL_MESSAGES = """
CREATE TABLE IF NOT EXISTS chat_messages (
  id                TEXT PRIMARY KEY,
  conversation_id   TEXT,
  sender_id         TEXT,
  content           TEXT,
  message_type      TEXT NOT NULL,            -- text | template
  message_channel   TEXT NOT NULL DEFAULT 'whatsapp',
  created_at        TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_messages_conv ON chat_messages(conversation_id, created_at);

CREATE TABLE IF NOT EXISTS message_metadata (
  id                              TEXT PRIMARY KEY,
  chat_message_id                 TEXT UNIQUE,
  tenant_id                       TEXT,
  provider_message_id             TEXT UNIQUE, -- wamid; chave de idempotência
  direction                       TEXT NOT NULL, -- inbound | outbound
  message_type                    TEXT NOT NULL, -- text | template
  status                          TEXT NOT NULL, -- queued | sent | delivered | read | failed
  recipient_phone                 TEXT,
  sender_phone                    TEXT,
  property_id                     TEXT,
  template_type                   TEXT,
  language_code                   TEXT,
  template_variables              TEXT,
  template_id                     TEXT,
  sent_at                         TEXT,
  delivered_at                    TEXT,
  read_at                         TEXT,
  failed_at                       TEXT,
  failure_reason                  TEXT,
  conversation_window_expires_at  TEXT,
  created_at                      TEXT NOT NULL,
  updated_at                      TEXT NOT NULL
);
"""

DDL_TEMPLATES = """
CREATE TABLE IF NOT EXISTS templates (
  id               TEXT PRIMARY KEY,
  property_id      TEXT,                       -- NULL = template global
  template_type    TEXT NOT NULL,
  template_name    TEXT NOT NULL,              -- nome aprovado na Meta
  language_code    TEXT NOT NULL,
  header_text      TEXT,
  body_template    TEXT NOT NULL,
  footer_text      TEXT,
  button_config    TEXT,
  is_enabled       INTEGER NOT NULL DEFAULT 1,
  approval_status  TEXT NOT NULL DEFAULT 'draft', -- draft | pending | approved | rejected
  created_at       TEXT NOT NULL,
  updated_at       TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_templates_scope
  ON templates(COALESCE(property_id, ''), template_type, language_code);
"""

DDL_OPT_OUTS = """
CREATE TABLE IF NOT EXISTS opt_outs (
  phone_number     TEXT PRIMARY KEY,
  guest_id         TEXT,
  opted_in_at      TEXT,
  opted_out_at     TEXT,
  opt_out_reason   TEXT,
  opt_out_source   TEXT,                       -- user_request | whatsapp_stop | admin | bounce
  created_at       TEXT NOT NULL,
  updated_at       TEXT NOT NULL
);
"""

DDL_TENANTS = """
CREATE TABLE IF NOT EXISTS phone_tenant_mappings (
  phone_number_id  TEXT PRIMARY KEY,
  tenant_id        TEXT NOT NULL,
  updated_at       TEXT NOT NULL
);
"""

DDL_BOOKINGS = """
CREATE TABLE IF NOT EXISTS bookings (
  id                 TEXT PRIMARY KEY,
  tenant_id          TEXT NOT NULL,
  property_id        TEXT,
  guest_phone        TEXT NOT NULL,
  guest_name         TEXT,
  booking_reference  TEXT,
  check_in_date      TEXT,
  check_out_date     TEXT,
  language_code      TEXT NOT NULL DEFAULT 'en',
  status             TEXT NOT NULL,            -- pending | confirmed | cancelled
  meta               TEXT,
  created_at         TEXT NOT NULL,
  updated_at         TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_bookings_phone ON bookings(tenant_id, guest_phone);
"""


def ensure_db(db_path: str) -> None:
    with get_conn(db_path) as conn:
        cur = conn.cursor()
        for ddl in (DDL_QUEUE, DDL_CONVERSATIONS, DDL_MESSAGES, DDL_TEMPLATES, DDL_OPT_OUTS, DDL_TENANTS, DDL_BOOKINGS):
            cur.executescript(ddl)
