"""Logger factory with JSON and text formatters.

Every component logs through a named logger under the ``harvester``
namespace. Execution units wrap theirs in a UnitLogger so that each record
carries the unit id; item id and attempt number are passed per call via
``extra``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional, Tuple

ROOT_LOGGER = "harvester"
CONTEXT_FIELDS = ("unit_id", "item_id", "attempt")


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            f"[{record.levelname:8s}]",
            record.name,
        ]
        unit_id = getattr(record, "unit_id", None)
        if unit_id is not None:
            parts.append(f"[W{unit_id}]")
        parts.append(f"- {record.getMessage()}")
        line = " ".join(parts)
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


class UnitLogger(logging.LoggerAdapter):
    """Tags records with the owning unit's id, keeping per-call extras."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> logging.Logger:
    """Get a named logger. Configuration is applied by setup_logging()."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_unit_logger(name: str, unit_id: int) -> UnitLogger:
    return UnitLogger(get_logger(name), {"unit_id": unit_id})


def setup_logging(level: str = "INFO", log_format: str = "json", stream: Optional[Any] = None) -> None:
    """Configure the root harvester logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format ("json" or "text").
        stream: Target stream, stdout by default.
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates on re-init
    root_logger.handlers.clear()

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JsonFormatter()
    else:
        formatter = TextFormatter()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.propagate = False
