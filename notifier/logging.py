# notifier/logging.py
"""
Logger estruturado (JSON, uma linha por evento).

- ts, level, msg, logger + extras passados via extra={...}
- exc_short: quando há exceção, só o frame relevante do projeto e a mensagem,
  sem o traceback completo
- chaves com cara de segredo (token, secret, authorization...) saem redigidas
"""

from __future__ import annotations

import json
import linecache
import logging
import os
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

_RESERVED_KEYS = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
    "relativeCreated", "thread", "threadName", "processName", "process", "message",
    "taskName",
}

_SECRET_HINTS = ("token", "secret", "authorization", "password")


def _now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _redact(key: str, value: Any) -> Any:
    k = key.lower()
    if any(h in k for h in _SECRET_HINTS) and isinstance(value, str) and value:
        return value[:4] + "…redacted"
    return value


class JsonFormatter(logging.Formatter):
    def _relevant_frame(self, tb) -> tuple[str, int, str] | None:
        frames = [(fr.filename, fr.lineno, fr.name) for fr in traceback.extract_tb(tb)]
        if not frames:
            return None
        cwd = os.getcwd()
        for fname, lineno, funcname in reversed(frames):
            if fname.startswith(cwd) and "site-packages" not in fname:
                return fname, lineno, funcname
        return frames[-1]

    def _exc_short(self, exc_info) -> str | None:
        exc_type, exc_value, tb = exc_info
        frame = self._relevant_frame(tb) if tb else None
        err = f"{getattr(exc_type, '__name__', str(exc_type))}: {exc_value}"
        if not frame:
            return err
        fname, lineno, funcname = frame
        line = linecache.getline(fname, lineno).strip() or "<source not available>"
        return f'File "{fname}", line {lineno}, in {funcname}\n    {line}\n{err}'

    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": _now_iso(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }

        for k, v in record.__dict__.items():
            if k in _RESERVED_KEYS or k.startswith("_"):
                continue
            base[k] = _redact(k, v)

        if record.exc_info:
            try:
                short = self._exc_short(record.exc_info)
                if short:
                    base["exc_short"] = short
            except Exception:
                # o formatter nunca pode derrubar o log
                base["exc_in_formatter_error"] = True

        return json.dumps(base, ensure_ascii=False, default=str)


def configure_logging(level: str = "INFO") -> None:
    """
    Configura o logger raiz com JsonFormatter. Chamado uma vez no create_app.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)

    logging.getLogger(__name__).info("logging configured: JsonFormatter active")


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or "notifier")
