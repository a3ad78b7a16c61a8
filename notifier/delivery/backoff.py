# notifier/delivery/backoff.py
"""
Política de re-tentativa da fila.

A n-ésima re-tentativa (n = retry_count já incrementado, começando em 1) espera
delays[n-1]; tentativas além da tabela reutilizam o último valor. Com a tabela padrão
os intervalos sucessivos ficam 60s, 300s, 1800s, 1800s...
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

DEFAULT_DELAYS: Tuple[int, ...] = (60, 300, 1800)


@dataclass(frozen=True)
class RetryDecision:
    retry_count: int
    give_up: bool
    next_retry_at: Optional[datetime] = None


@dataclass(frozen=True)
class RetryPolicy:
    delays: Tuple[int, ...] = DEFAULT_DELAYS

    def __post_init__(self):
        if not self.delays or any(d < 0 for d in self.delays):
            raise ValueError("delays must be a non-empty sequence of non-negative seconds")

    def delay_for(self, attempt: int) -> int:
        """Segundos de espera antes da re-tentativa `attempt` (1-based)."""
        if attempt < 1:
            attempt = 1
        return self.delays[min(attempt, len(self.delays)) - 1]

    def next_retry_at(self, attempt: int, now: datetime) -> datetime:
        return now + timedelta(seconds=self.delay_for(attempt))

    def on_failure(self, retry_count: int, max_retries: int, now: datetime) -> RetryDecision:
        """
        Decide o destino de um item que falhou com erro re-tentável.
        `retry_count` é o valor atual (antes desta falha).
        """
        count = retry_count + 1
        if count >= max_retries:
            return RetryDecision(retry_count=count, give_up=True)
        return RetryDecision(retry_count=count, give_up=False, next_retry_at=self.next_retry_at(count, now))
