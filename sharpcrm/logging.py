from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from sharpcrm.context import get_correlation_id


_BASE_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__)

ACCESS_FIELDS = frozenset(
    {"operation", "resource", "resource_id", "user_id", "role", "tenant_id", "granted", "count", "filter_expression"}
)
HTTP_FIELDS = frozenset({"method", "path", "status_code", "duration_ms"})
_KNOWN_FIELDS = ACCESS_FIELDS | HTTP_FIELDS | {"error"}

# long IN-clauses and driver messages are cut to this many characters
_MAX_TEXT_FIELD = 500
_TRUNCATED_FIELDS = ("error", "filter_expression")


def _attach_correlation_id(record: logging.LogRecord) -> logging.LogRecord:
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        _attach_correlation_id(record)
        return True


_DEFAULT_RECORD_FACTORY = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    return _attach_correlation_id(_DEFAULT_RECORD_FACTORY(*args, **kwargs))


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; only known ``extra`` keys end up in ``fields``."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {}
        for key in _KNOWN_FIELDS.difference(_BASE_RECORD_KEYS):
            value = record.__dict__.get(key)
            if value is None:
                continue
            if key in _TRUNCATED_FIELDS and isinstance(value, str):
                value = value[:_MAX_TEXT_FIELD]
            fields[key] = value
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": dict(sorted(fields.items())),
        }
        return json.dumps(payload, default=str)


def configure_logging(level_name: str | None = None) -> None:
    """Route every logger through one JSON stdout handler; later calls are no-ops."""

    root_logger = logging.getLogger()
    if getattr(root_logger, "_sharpcrm_configured", False):
        return

    level_name = (level_name or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(CorrelationIdFilter())

    root_logger.handlers.clear()
    root_logger.setLevel(level)
    logging.setLogRecordFactory(_record_factory)
    root_logger.addHandler(handler)
    root_logger._sharpcrm_configured = True  # type: ignore[attr-defined]
