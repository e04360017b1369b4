"""
Structured logging setup.

Every record is emitted as one JSON line. Context passed through
``extra=`` (actor, role, resource ids) is kept under ``fields``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

_BASE_RECORD_KEYS = set(logging.makeLogRecord({}).__dict__.keys())
_CONTEXT_FIELDS = {
    "actor_id",
    "role",
    "resource",
    "resource_id",
    "kind",
    "previous_status",
    "new_status",
    "reason",
    "path",
    "method",
    "status_code",
    "error",
}


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        fields: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _BASE_RECORD_KEYS or key.startswith("_"):
                continue
            if key in _CONTEXT_FIELDS:
                fields[key] = value

        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:500]

        payload["fields"] = fields
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_backoffice_configured", False):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root_logger.handlers = [handler]
    root_logger.setLevel(level.upper())
    root_logger._backoffice_configured = True  # type: ignore[attr-defined]
