# gunicorn_config.py
# gunicorn -c gunicorn_config.py "notifier:create_app()"

import multiprocessing
import os

from notifier.settings import load_settings

settings = load_settings()
PORT = int(settings.get("PORT", os.getenv("PORT", 3000)))
CONFIG_NAME = settings.get("CONFIG_NAME", os.getenv("CONFIG_NAME"))

bind = f"0.0.0.0:{PORT}"
# Quantidade de workers (processos) baseados em CPUs disponíveis
workers = multiprocessing.cpu_count() * 2 + 1
worker_class = "sync"
timeout = 120                 # Tempo máximo para uma requisição (em segundos)
keepalive = 5
errorlog = "-"
accesslog = "-"
loglevel = "info"

# Ativa reload automático apenas em desenvolvimento
reload = CONFIG_NAME == "dev"
