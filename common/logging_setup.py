from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


class JsonFormatter(logging.Formatter):
    """
    Minimal JSON log formatter:
      { "t": 169, "lvl": "INFO", "name": "mod", "msg": "text", "extra": {...}, "error": {...} }

    `error` is filled from pipeline errors (kind, url, status) when one is being logged.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra") and isinstance(record.extra, dict):  # type: ignore[attr-defined]
            payload["extra"] = record.extra  # type: ignore[attr-defined]
        if record.exc_info:
            exc = record.exc_info[1]
            if exc is not None and hasattr(exc, "context"):
                payload["error"] = exc.context()
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def redact_url(url: str, secret_params: tuple = ("key",)) -> str:
    """Mask API keys in a URL before it reaches the logs."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [(k, "***" if k in secret_params else v) for k, v in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure root logger once with JSON formatting.
    Level precedence:
      - explicit `level` arg
      - env LOG_LEVEL (e.g., DEBUG/INFO/WARN/ERROR)
      - default INFO
    Later calls with an explicit `level` only adjust the level.
    """
    root = logging.getLogger()
    lvl_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    lvl = getattr(logging, lvl_name, logging.INFO)
    if not isinstance(lvl, int):
        lvl = logging.INFO

    if getattr(root, "_solar_layers_configured", False):
        if level:
            root.setLevel(lvl)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    root._solar_layers_configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    """Get a module logger; ensures root is configured."""
    setup_logging()
    return logging.getLogger(name)
