# notifier/http.py
"""
Cliente HTTP (requests.Session) usado pelo cliente da Cloud API.

- timeout padrão limitado (um envio travado não pode segurar o lote inteiro)
- retry de transporte APENAS na abertura de conexão: um POST de envio nunca é
  reenviado aqui; re-tentativas de entrega são responsabilidade da fila/backoff
- log de cada requisição com rid e tempo de execução
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from notifier.logging import get_logger

logger = get_logger(__name__)


class HttpClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 10,
        connect_retries: int = 2,
        backoff_factor: float = 0.3,
    ):
        self.base_url = base_url or ""
        self.timeout = timeout

        self.session = requests.Session()
        retries = Retry(
            total=connect_retries,
            connect=connect_retries,
            read=0,
            status=0,
            other=0,
            backoff_factor=backoff_factor,
            allowed_methods=None,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def url_for(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Executa a requisição com log estruturado. Timeout pode ser sobrescrito por chamada.
        """
        url = self.url_for(path)
        rid = str(uuid.uuid4())
        started = time.perf_counter()
        timeout = kwargs.pop("timeout", self.timeout)

        try:
            logger.debug("http.request", extra={"rid": rid, "method": method, "url": url})
            resp = self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning("http.error", extra={"rid": rid, "url": url, "error": str(e)})
            raise

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "http.response",
            extra={"rid": rid, "status": resp.status_code, "elapsed_ms": elapsed_ms, "snippet": resp.text[:200]},
        )
        return resp

    def post_json(self, path: str, payload: Dict[str, Any], **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", {})
        headers.setdefault("Accept", "application/json")
        headers.setdefault("Content-Type", "application/json")
        return self.request("POST", path, headers=headers, json=payload, **kwargs)
