# notifier/worker.py
"""
Loop de polling da fila: roda process_queue() a cada QUEUE_POLL_INTERVAL_SECONDS.

Um ciclo que falha é logado e o loop segue no próximo intervalo.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from flask import Flask

from notifier.logging import get_logger

logger = get_logger(__name__)


def run_worker(
    app: Flask,
    *,
    max_cycles: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    interval = int(app.config.get("QUEUE_POLL_INTERVAL_SECONDS", 60))
    dispatcher = app.config["DISPATCHER"]
    logger.info("worker.start", extra={"interval_seconds": interval, "enabled": dispatcher.enabled})

    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        with app.app_context():
            try:
                dispatcher.process_queue()
            except Exception as e:
                logger.exception("worker.cycle_error", extra={"error_message": str(e)})
        cycles += 1
        if max_cycles is None or cycles < max_cycles:
            sleep(interval)

    logger.info("worker.stop", extra={"cycles": cycles})
    return cycles
