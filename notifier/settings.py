# notifier/settings.py
"""
Carrega e organiza todas as configurações do app.

- Lê variáveis de ambiente (.env.<env>) usando dotenv
- Monta um dicionário simples com todas as chaves relevantes
- Define valores padrão quando necessário
- Evita múltiplos load_dotenv (feito apenas aqui)

Flags globais (ex.: QUEUE_PROCESSING_ENABLED) são lidas UMA vez aqui e repassadas
explicitamente aos construtores dos serviços; nenhum serviço consulta os.environ.

Uso:
    from notifier.settings import load_settings
    settings = load_settings("dev")
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _json_env(name: str) -> Dict[str, Any]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def load_settings(env_name: str | None = None) -> dict:
    """
    Carrega as variáveis de ambiente para o app Flask.
    Retorna um dicionário pronto para app.config.update().
    """
    config_name = env_name or os.getenv("CONFIG_NAME", "dev")
    env_file = Path(f".env.{config_name}")

    if env_file.exists():
        load_dotenv(env_file.as_posix(), override=True)
    else:
        generic_env = Path(".env")
        if generic_env.exists():
            load_dotenv(generic_env.as_posix(), override=False)

    dry_run_flag = _flag("DRY_RUN", "0")

    settings = {
        # Identificação
        "CONFIG_NAME": config_name,

        # Servidor
        "PORT": int(os.getenv("PORT", "3000")),
        "LOG_LEVEL": (os.getenv("LOG_LEVEL", "DEBUG" if dry_run_flag else "INFO")).upper(),

        # Webhook (Meta)
        "VERIFY_TOKEN": os.getenv("VERIFY_TOKEN"),
        "WEBHOOK_APP_SECRET": os.getenv("WEBHOOK_APP_SECRET"),

        # WhatsApp Cloud API
        "GRAPH_BASE_URL": os.getenv("GRAPH_BASE_URL", "https://graph.facebook.com"),
        "GRAPH_VERSION": os.getenv("GRAPH_VERSION", "v22.0"),
        "SEND_TIMEOUT_SECONDS": float(os.getenv("SEND_TIMEOUT_SECONDS", "10")),
        "DRY_RUN": dry_run_flag,

        # Fila
        "QUEUE_PROCESSING_ENABLED": _flag("QUEUE_PROCESSING_ENABLED", "1"),
        "QUEUE_BATCH_SIZE": int(os.getenv("QUEUE_BATCH_SIZE", "50")),
        "QUEUE_ITEM_DELAY_MS": int(os.getenv("QUEUE_ITEM_DELAY_MS", "100")),
        "QUEUE_POLL_INTERVAL_SECONDS": int(os.getenv("QUEUE_POLL_INTERVAL_SECONDS", "60")),
        "QUEUE_MAX_RETRIES": int(os.getenv("QUEUE_MAX_RETRIES", "3")),

        # Telefones
        "DEFAULT_COUNTRY_CODE": os.getenv("DEFAULT_COUNTRY_CODE", "27"),

        # Segurança dos endpoints internos (token opcional)
        "INTERNAL_API_TOKEN": os.getenv("INTERNAL_API_TOKEN"),

        # Tenants: {"<phone_number_id>": "<tenant_id>"} e credenciais de dev/teste
        "TENANT_REGISTRY": _json_env("TENANT_REGISTRY_JSON"),
        "TENANT_CREDENTIALS": _json_env("TENANT_CREDENTIALS_JSON"),
    }

    settings["SQLITE_PATH"] = os.getenv("SQLITE_PATH", "data/app.db")

    return settings
