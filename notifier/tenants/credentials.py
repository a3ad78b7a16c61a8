# notifier/tenants/credentials.py
"""
Credenciais da Cloud API por tenant.

O armazenamento/criptografia real vive em outro serviço; aqui fica o contrato
(CredentialStore) e uma implementação em memória alimentada por
TENANT_CREDENTIALS_JSON, usada em dev e nos testes:

    {"tenant-a": {"phone_number_id": "879357005252665", "access_token": "EAAG..."}}

Salvar credenciais também grava o mapeamento phone_number_id -> tenant usado
pelo roteamento do webhook.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from notifier.errors import ValidationError
from notifier.logging import get_logger
from notifier.models.tenants import upsert_phone_mapping

logger = get_logger(__name__)


@dataclass(frozen=True)
class Credentials:
    phone_number_id: str
    access_token: str
    api_version: str = "v22.0"
    environment: str = "production"


class CredentialStore(Protocol):
    def get_decrypted_credentials(self, tenant_id: str) -> Optional[Credentials]: ...


class ConfigCredentialStore:
    def __init__(
        self,
        db_path: str,
        credentials: Optional[Dict[str, Dict[str, Any]]] = None,
        default_api_version: str = "v22.0",
    ):
        self.db_path = db_path
        self.default_api_version = default_api_version
        self._creds: Dict[str, Credentials] = {}
        for tenant_id, raw in (credentials or {}).items():
            self.save_credentials(tenant_id, **raw)

    def get_decrypted_credentials(self, tenant_id: Optional[str]) -> Optional[Credentials]:
        if not tenant_id:
            return None
        return self._creds.get(str(tenant_id))

    def save_credentials(
        self,
        tenant_id: str,
        *,
        phone_number_id: str,
        access_token: str,
        api_version: Optional[str] = None,
        environment: str = "production",
    ) -> Credentials:
        if not phone_number_id or not access_token:
            raise ValidationError("phone_number_id and access_token are required")
        creds = Credentials(
            phone_number_id=str(phone_number_id),
            access_token=access_token,
            api_version=api_version or self.default_api_version,
            environment=environment,
        )
        self._creds[str(tenant_id)] = creds
        upsert_phone_mapping(self.db_path, creds.phone_number_id, str(tenant_id))
        logger.info(
            "tenant.credentials_saved",
            extra={"tenant_id": tenant_id, "phone_number_id": creds.phone_number_id, "environment": environment},
        )
        return creds
