# notifier/phones.py
"""
Helpers de telefone: normalização E.164 (chave do registro de opt-out e das
conversas) e máscara para logs.
"""

from __future__ import annotations

import re

_E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


def to_e164(phone: str | None, default_country_code: str = "27") -> str:
    """
    Remove tudo que não é dígito; um "0" inicial vira o código do país padrão.
    Números que já chegam com DDI (ex.: webhook da Meta, "27821234567") só ganham o "+".
    """
    digits = re.sub(r"\D", "", str(phone or ""))
    if not digits:
        return ""
    if digits.startswith("0"):
        digits = default_country_code + digits[1:]
    return "+" + digits


def is_valid_e164(phone: str | None) -> bool:
    return bool(phone) and bool(_E164_RE.match(str(phone)))


def mask_phone(p: str | None) -> str | None:
    if not p:
        return p
    d = re.sub(r"\D", "", str(p))
    n = len(d)
    if n < 7:
        # mantém só os 2 últimos dígitos
        return ("*" * max(0, n - 2)) + d[-2:]
    # mantém 4 primeiros e 2 últimos
    return d[:4] + ("*" * (n - 6)) + d[-2:]
