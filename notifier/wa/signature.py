# notifier/wa/signature.py
from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from notifier.errors import SignatureError

_PREFIX = "sha256="


def compute_signature(secret: str, raw_body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return _PREFIX + digest


def verify_signature(secret: Optional[str], raw_body: bytes, header: Optional[str]) -> None:
    """
    Confere X-Hub-Signature-256 (HMAC-SHA256 do corpo cru com o app secret).
    Sem secret configurado nada passa. Comparação em tempo constante.
    """
    if not secret:
        raise SignatureError("webhook secret not configured")
    if not header or not header.startswith(_PREFIX):
        raise SignatureError("missing or malformed signature header")
    expected = compute_signature(secret, raw_body or b"")
    if not hmac.compare_digest(expected, header.strip()):
        raise SignatureError("signature mismatch")
