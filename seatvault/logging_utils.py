"""
logging_utils.py - Structured logging for engine operators

Engines log through module loggers (logging.getLogger(__name__)) and never
configure handlers themselves. Operators who want JSON lines call
get_logger() once at startup.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Dict, Optional, TextIO
import json
import logging


_RESERVED = {
    "args", "asctime", "created", "exc_info", "exc_text", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs", "message", "msg", "name",
    "pathname", "process", "processName", "relativeCreated", "stack_info", "thread",
    "threadName", "taskName",
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for k, v in record.__dict__.items():
            if k not in _RESERVED:
                payload[k] = _jsonable(v)
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_logger(
    name: str = "seatvault",
    level: int = logging.INFO,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Attach a JSON stream handler to `name` once; later calls return the same logger."""
    lg = logging.getLogger(name)
    if getattr(lg, "_seatvault_configured", False):
        return lg
    lg.setLevel(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    lg.addHandler(handler)
    setattr(lg, "_seatvault_configured", True)
    return lg
