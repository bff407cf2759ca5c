"""
Callwatch — Logging

Progress output goes through Python logging under the `callwatch`
namespace. Two formats:

  - console: the bare message, one line per event, human-readable
  - json:    one JSON object per line with the structured fields
             (model, call_id, event, active) merged in

Usage:
    from callwatch.logging import configure_logging, get_logger

    configure_logging(level="INFO")               # console on stdout
    configure_logging(level="DEBUG", fmt="json")  # JSON lines
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "callwatch"


# ═══════════════════════════════════════════════════════════════════
# Formatters
# ═══════════════════════════════════════════════════════════════════

class ConsoleFormatter(logging.Formatter):
    """Message only. Progress lines already carry their own prefix."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info and record.exc_info[0] is not None:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def __init__(self, service_name: str = "callwatch"):
        super().__init__()
        self.service_name = service_name
        self.service_version = os.environ.get("CALLWATCH_VERSION", "0.1.0")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service.name": self.service_name,
            "service.version": self.service_version,
        }

        if hasattr(record, "structured"):
            entry.update(record.structured)

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception.type"] = record.exc_info[0].__name__
            entry["exception.message"] = str(record.exc_info[1])

        return json.dumps(entry, default=str, ensure_ascii=False)


_FORMATTERS = {
    "console": ConsoleFormatter,
    "json": JSONFormatter,
}


# ═══════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════

def configure_logging(
    level: str = "INFO",
    stream: Any = None,
    fmt: str = "console",
) -> logging.Logger:
    """
    Configure the callwatch logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR
        stream: Output stream (default: sys.stdout)
        fmt: "console" or "json"

    Returns:
        The configured callwatch root logger
    """
    if fmt not in _FORMATTERS:
        raise ValueError(f"Unknown log format {fmt!r}; expected one of {sorted(_FORMATTERS)}")

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers on reconfigure
    logger.handlers.clear()
    for name in list(logging.Logger.manager.loggerDict.keys()):
        if name.startswith(f"{ROOT_LOGGER}."):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.setLevel(logging.NOTSET)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(_FORMATTERS[fmt]())
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.addHandler(handler)

    logger.propagate = False
    return logger


def configure_from_config(config: dict[str, Any] | None = None, stream: Any = None) -> logging.Logger:
    """Apply the `logging` section of the callwatch config."""
    from callwatch.config import get_config_value

    return configure_logging(
        level=str(get_config_value("logging.level", config, "INFO")),
        stream=stream,
        fmt=str(get_config_value("logging.format", config, "console")),
    )


def ensure_logging(config: dict[str, Any] | None = None) -> logging.Logger:
    """Apply the configured logging once, unless handlers are already attached."""
    logger = logging.getLogger(ROOT_LOGGER)
    if logger.handlers:
        return logger
    return configure_from_config(config)


def get_logger(name: str = "") -> logging.Logger:
    """Get a child logger under the callwatch namespace."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


def emit(logger: logging.Logger, level: int, message: str, **fields) -> None:
    """Log `message` with `fields` attached as structured extras."""
    if not logger.isEnabledFor(level):
        return
    logger.log(level, message, extra={"structured": fields})
