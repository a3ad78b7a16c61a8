# run.py
"""
Ponto de entrada para desenvolvimento.

- `python run.py`        -> servidor embutido do Flask
- `python run.py worker` -> loop de polling da fila (process_queue a cada intervalo)

Em produção: gunicorn -c gunicorn_config.py "notifier:create_app()" para a API e
`flask --app notifier process-queue` no cron (ou `python run.py worker`).
"""

from __future__ import annotations

import os
import sys

from notifier import create_app
from notifier.logging import get_logger
from notifier.worker import run_worker

CONFIG_NAME = os.environ.get("CONFIG_NAME", "dev")
app = create_app(CONFIG_NAME)
log = get_logger("notifier.run")

if __name__ == "__main__":
    cfg = app.config
    mode = sys.argv[1] if len(sys.argv) > 1 else "server"
    port = int(cfg.get("PORT", 3000))

    log.info(
        "server.start",
        extra={
            "env": CONFIG_NAME,
            "mode": mode,
            "port": port,
            "python": sys.version.split()[0],
            "graph_version": cfg.get("GRAPH_VERSION", "v22.0"),
            "tenants": len(cfg.get("TENANT_REGISTRY") or {}),
            "verify_token_set": bool(cfg.get("VERIFY_TOKEN")),
            "app_secret_set": bool(cfg.get("WEBHOOK_APP_SECRET")),
            "dry_run": bool(cfg.get("DRY_RUN", False)),
            "queue_enabled": bool(cfg.get("QUEUE_PROCESSING_ENABLED", True)),
        },
    )

    # sem o app secret todo POST do webhook volta 403
    if not cfg.get("VERIFY_TOKEN") or not cfg.get("WEBHOOK_APP_SECRET"):
        log.warning("config.incomplete", extra={"hint": "set VERIFY_TOKEN and WEBHOOK_APP_SECRET in the env file"})

    if mode == "worker":
        run_worker(app)
    else:
        app.run(host="0.0.0.0", port=port)
