from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import sys
from typing import Iterable, Optional

from .config import settings

# Structured fields the defense layer passes through ``extra=``.
LOG_FIELDS = ("event", "ip", "username", "reason", "path", "method", "status", "origin", "removed")


class JsonFormatter(logging.Formatter):
    """One JSON object per record, stamped with the record's own creation time."""

    def __init__(self, fields: Iterable[str] = LOG_FIELDS) -> None:
        super().__init__()
        self.fields = tuple(fields)

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in self.fields:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    root.addHandler(handler)
