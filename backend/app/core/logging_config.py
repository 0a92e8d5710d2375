from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

# Attributes passed through ``extra=`` by the request middleware and the error journal.
CONTEXT_FIELDS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "error_id",
    "category",
    "severity",
    "operation",
)
STRUCTURED_ENVS = {"production", "staging"}
QUIET_LOGGERS = ("httpx", "httpcore", "alembic.runtime.migration")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in ("request_id", "session_id", *CONTEXT_FIELDS):
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(*, log_level: str, app_env: str) -> None:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    handler = logging.StreamHandler()
    if app_env.lower() in STRUCTURED_ENVS:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)
    # Each suggestion call logs a line per request otherwise.
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
