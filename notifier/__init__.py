# notifier/__init__.py
"""
Fábrica principal do Flask App.

- Cria e configura a instância do Flask.
- Carrega configurações do ambiente (via notifier.settings) e aplica overrides.
- Inicializa logging.
- Garante SQLite pronto (SQLITE_PATH).
- Monta os serviços (dispatcher, reply, opt-out, ingestor) e guarda em app.config.
- Registra blueprints, handler de erros de domínio e comandos CLI.
"""

from __future__ import annotations

from typing import Any, Dict

import click
from flask import Flask, jsonify

from notifier.errors import NotifierError
from notifier.logging import configure_logging, get_logger
from notifier.models import ensure_db


def _build_services(app: Flask) -> None:
    from notifier.delivery.dispatcher import QueueDispatcher
    from notifier.delivery.fallback import LoggingEmailFallback
    from notifier.delivery.optout import OptOutRegistry
    from notifier.delivery.reply import ReplyService
    from notifier.delivery.templates import TemplateResolver
    from notifier.flows.ingest import WebhookIngestor
    from notifier.tenants.credentials import ConfigCredentialStore
    from notifier.tenants.registry import TenantRouter
    from notifier.wa.client import ProviderClient

    cfg = app.config
    db_path = cfg["SQLITE_PATH"]
    country = cfg.get("DEFAULT_COUNTRY_CODE", "27")

    router = TenantRouter(db_path)
    router.seed(cfg)
    credentials = cfg.get("CREDENTIAL_STORE") or ConfigCredentialStore(
        db_path, cfg.get("TENANT_CREDENTIALS") or {}, default_api_version=cfg.get("GRAPH_VERSION", "v22.0")
    )
    provider = cfg.get("PROVIDER_CLIENT") or ProviderClient(
        cfg.get("GRAPH_BASE_URL", "https://graph.facebook.com"),
        timeout=float(cfg.get("SEND_TIMEOUT_SECONDS", 10)),
        dry_run=bool(cfg.get("DRY_RUN", False)),
    )
    opt_outs = OptOutRegistry(db_path, default_country_code=country)

    cfg["TENANT_ROUTER"] = router
    cfg["CREDENTIAL_STORE"] = credentials
    cfg["PROVIDER_CLIENT"] = provider
    cfg["OPT_OUTS"] = opt_outs
    cfg["DISPATCHER"] = QueueDispatcher(
        db_path,
        provider=provider,
        credentials=credentials,
        resolver=TemplateResolver(db_path),
        opt_outs=opt_outs,
        fallback=cfg.get("EMAIL_FALLBACK") or LoggingEmailFallback(),
        enabled=bool(cfg.get("QUEUE_PROCESSING_ENABLED", True)),
        batch_size=int(cfg.get("QUEUE_BATCH_SIZE", 50)),
        item_delay=int(cfg.get("QUEUE_ITEM_DELAY_MS", 100)) / 1000,
        max_retries=int(cfg.get("QUEUE_MAX_RETRIES", 3)),
        default_country_code=country,
    )
    cfg["REPLY_SERVICE"] = ReplyService(db_path, provider=provider, credentials=credentials, opt_outs=opt_outs)
    cfg["INGESTOR"] = WebhookIngestor(db_path, tenants=router, opt_outs=opt_outs, default_country_code=country)


def _register_cli(app: Flask) -> None:
    @app.cli.command("process-queue")
    def process_queue_command():
        """Roda um ciclo do dispatcher (para cron)."""
        result = app.config["DISPATCHER"].process_queue()
        click.echo(result)

    @app.cli.command("cleanup-queue")
    @click.option("--days", default=30, show_default=True, help="Dias de histórico mantidos.")
    def cleanup_queue_command(days: int):
        """Remove itens terminais antigos da fila."""
        deleted = app.config["DISPATCHER"].cleanup_old_items(days)
        click.echo(f"deleted {deleted} queue items")


def create_app(config_name: str | None = None, overrides: Dict[str, Any] | None = None) -> Flask:
    from notifier.settings import load_settings

    app = Flask(__name__)

    # 1) Config (env + overrides explícitos)
    settings = load_settings(config_name)
    app.config.update(settings)
    if overrides:
        app.config.update(overrides)

    # 2) Logging
    configure_logging(app.config.get("LOG_LEVEL", "INFO"))
    log = get_logger(__name__)
    log.info("app.init", extra={"env": app.config.get("CONFIG_NAME", "dev")})

    # 3) SQLite (garante arquivo e tabelas)
    app.config.setdefault("SQLITE_PATH", "data/app.db")
    ensure_db(app.config["SQLITE_PATH"])
    log.info("db.ready", extra={"path": app.config["SQLITE_PATH"]})

    # 4) Serviços
    _build_services(app)

    # 5) Erros de domínio -> JSON {"error", "code"}
    @app.errorhandler(NotifierError)
    def _handle_notifier_error(e: NotifierError):
        level = log.error if e.http_status >= 500 else log.info
        level("http.domain_error", extra={"code": e.code, "error_message": e.message, "status": e.http_status})
        return jsonify(e.to_dict()), e.http_status

    # 6) Blueprints
    from notifier.blueprints.webhook import webhook
    from notifier.blueprints.outbound import outbound
    from notifier.blueprints.queue_api import queue_api
    from notifier.blueprints.optouts import optouts
    from notifier.blueprints.panel_api import panel_api
    from notifier.blueprints.health import health

    app.register_blueprint(webhook)
    app.register_blueprint(outbound)
    app.register_blueprint(queue_api)
    app.register_blueprint(optouts)
    app.register_blueprint(panel_api)
    app.register_blueprint(health)

    # 7) CLI
    _register_cli(app)

    return app
