"""Налаштування логування."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

_TEXT_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


class JsonLinesFormatter(logging.Formatter):
    """Один JSON-об'єкт на рядок — зручно для SIEM (ELK, Splunk)."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).strftime(
                "%Y-%m-%dT%H:%M:%S.%f"
            )[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_lines: bool = False) -> None:
    """Налаштовує кореневий логер.

    Args:
        level: Рівень логування (DEBUG, INFO, WARNING, ERROR).
        json_lines: Писати записи як JSON lines замість тексту.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    if json_lines:
        handler.setFormatter(JsonLinesFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))
    logging.basicConfig(level=numeric, handlers=[handler], force=True)
    # matplotlib is chatty at DEBUG
    logging.getLogger("matplotlib").setLevel(max(numeric, logging.WARNING))
