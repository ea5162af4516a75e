"""Process-wide logging configuration."""

from __future__ import annotations

import json
import logging
import sys

__all__ = ["setup_logging", "JsonFormatter"]

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _json_payload(record: logging.LogRecord, timestamp: str) -> str:
    base = {
        "time": timestamp,
        "level": record.levelname,
        "logger": record.name,
        "msg": record.getMessage(),
    }
    if record.exc_info:
        base["exc"] = logging.Formatter().formatException(record.exc_info)
    return json.dumps(base, ensure_ascii=False)


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        return _json_payload(record, self.formatTime(record))


def setup_logging(level: str = "INFO", *, json_output: bool = False) -> None:
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(_PLAIN_FORMAT))
    root = logging.getLogger("caxton")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)
    root.propagate = False
