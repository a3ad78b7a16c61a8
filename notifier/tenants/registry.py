# notifier/tenants/registry.py
"""
Roteamento de tenant a partir do `phone_number_id` que chega no webhook.

Fonte da verdade: tabela phone_tenant_mappings. Ela é preenchida:
  1) pelo mapeamento estático REGISTRY abaixo (opcional)
  2) por app.config["TENANT_REGISTRY"] (env TENANT_REGISTRY_JSON)
  3) sempre que credenciais de um tenant são salvas

Ordem de precedência no seed (maior -> menor): app_config > REGISTRY.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from notifier.logging import get_logger
from notifier.models.tenants import get_tenant_for_phone_number_id, upsert_phone_mapping

logger = get_logger(__name__)

# REGISTRY["<PHONE_NUMBER_ID>"] = "<tenant_id>"
REGISTRY: Dict[str, str] = {}


def _merge_registry(app_config: Dict[str, Any] | None = None) -> Dict[str, str]:
    merged: Dict[str, str] = {}
    merged.update(REGISTRY)
    if app_config:
        cfg_map = app_config.get("TENANT_REGISTRY") or {}
        if isinstance(cfg_map, dict):
            merged.update({str(k): str(v) for k, v in cfg_map.items()})
    return merged


class TenantRouter:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def seed(self, app_config: Dict[str, Any] | None = None) -> int:
        mapping = _merge_registry(app_config)
        for phone_number_id, tenant_id in mapping.items():
            upsert_phone_mapping(self.db_path, phone_number_id, tenant_id)
        if mapping:
            logger.info("tenant.registry_seeded", extra={"count": len(mapping)})
        return len(mapping)

    def resolve(self, phone_number_id: Optional[str]) -> Optional[str]:
        if not phone_number_id:
            return None
        return get_tenant_for_phone_number_id(self.db_path, str(phone_number_id))
