# notifier/delivery/optout.py
"""
Registro de opt-out (quem pediu para não receber WhatsApp).

O estado é derivado, não armazenado: uma linha está "fora" quando opted_in_at é
nulo ou opted_out_at é estritamente mais recente. Erro lendo o banco conta como
opted-out.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, Optional

from notifier.errors import ValidationError
from notifier.logging import get_logger
from notifier.models import optouts as store
from notifier.phones import is_valid_e164, mask_phone, to_e164

logger = get_logger(__name__)

OPT_OUT_SOURCES = ("user_request", "whatsapp_stop", "admin", "bounce")


def is_record_opted_out(record: Optional[Dict[str, Any]]) -> bool:
    if not record:
        return False
    opted_in = record.get("opted_in_at")
    opted_out = record.get("opted_out_at")
    if not opted_in:
        return True
    return bool(opted_out) and opted_out > opted_in


class OptOutRegistry:
    def __init__(self, db_path: str, default_country_code: str = "27"):
        self.db_path = db_path
        self.default_country_code = default_country_code

    def normalize(self, phone: str) -> str:
        e164 = to_e164(phone, self.default_country_code)
        if not is_valid_e164(e164):
            raise ValidationError(f"invalid phone number: {phone!r}")
        return e164

    def is_opted_out(self, phone: str) -> bool:
        try:
            record = store.get_opt_out(self.db_path, self.normalize(phone))
        except sqlite3.Error as e:
            logger.error("optout.read_failed", extra={"phone": mask_phone(phone), "error": str(e)})
            return True
        return is_record_opted_out(record)

    def get_status(self, phone: str) -> Dict[str, Any]:
        e164 = self.normalize(phone)
        record = store.get_opt_out(self.db_path, e164)
        return {
            "phone_number": e164,
            "opted_out": is_record_opted_out(record),
            "opted_out_at": (record or {}).get("opted_out_at"),
            "opted_in_at": (record or {}).get("opted_in_at"),
            "reason": (record or {}).get("opt_out_reason"),
            "source": (record or {}).get("opt_out_source"),
        }

    def add_opt_out(self, phone: str, reason: Optional[str] = None, source: str = "user_request") -> None:
        if source not in OPT_OUT_SOURCES:
            raise ValidationError(f"invalid opt-out source: {source}")
        e164 = self.normalize(phone)
        store.upsert_opt_out(self.db_path, e164, reason=reason, source=source)
        logger.info("optout.added", extra={"phone": mask_phone(e164), "source": source})

    def remove_opt_out(self, phone: str) -> None:
        e164 = self.normalize(phone)
        store.upsert_opt_in(self.db_path, e164)
        logger.info("optout.removed", extra={"phone": mask_phone(e164)})
