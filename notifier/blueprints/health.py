# notifier/blueprints/health.py
"""
Blueprint de healthcheck, status do ambiente e métricas Prometheus.
"""

from flask import Blueprint, Response, current_app, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

health = Blueprint("health", __name__)


@health.get("/health")
def get_health():
    """
    Retorna um JSON básico com informações do ambiente atual.
    - ok: True -> app está rodando
    - env: nome do ambiente (dev/hom/prod)
    - dry_run: indica se está em modo simulação
    - queue_enabled: se o dispatcher processa a fila
    """
    cfg = current_app.config
    return jsonify(
        {
            "ok": True,
            "env": cfg.get("CONFIG_NAME", "dev"),
            "dry_run": bool(cfg.get("DRY_RUN", False)),
            "graph_version": cfg.get("GRAPH_VERSION", "v22.0"),
            "queue_enabled": bool(cfg.get("QUEUE_PROCESSING_ENABLED", True)),
        }
    )


@health.get("/metrics")
def metrics():
    return Response(generate_latest(), content_type=CONTENT_TYPE_LATEST)
