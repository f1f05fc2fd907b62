"""
Structured JSON Logging with Correlation ID Support

Three rotating files under ``settings.logs_path``:
- app.log: everything at the configured level
- error.log: ERROR and above
- audit_fallback.log: audit writes that failed; the only trace of an
  audit event that never reached the audit collection
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from ..config.settings import settings


correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

AUDIT_WRITER_LOGGER = "priorauth.engine.audit_writer"

# Record attributes copied into the JSON line when a caller passes them in ``extra``
EXTRA_FIELDS = (
    "authorization_id",
    "step_number",
    "current_step",
    "actor_id",
    "action",
    "resource_type",
    "resource_id",
    "audit_event_id",
    "error_code",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, stamped with the record's own creation time"""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_obj: Dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", None) or correlation_id_var.get()
        if correlation_id:
            log_obj["correlation_id"] = correlation_id

        log_obj.update({
            field: getattr(record, field)
            for field in EXTRA_FIELDS
            if hasattr(record, field)
        })

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        # Enum members and datetimes in extras fall back to str()
        return json.dumps(log_obj, default=str)


def _rotating_handler(
    filename: str,
    formatter: logging.Formatter,
    level: int = logging.NOTSET,
    logger_name: Optional[str] = None
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        os.path.join(settings.logs_path, filename),
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    if logger_name:
        handler.addFilter(logging.Filter(logger_name))
    return handler


def setup_logging() -> None:
    """Setup logging configuration"""
    os.makedirs(settings.logs_path, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()

    json_formatter = JsonFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(json_formatter)
    root_logger.addHandler(console_handler)

    root_logger.addHandler(_rotating_handler("app.log", json_formatter))
    root_logger.addHandler(_rotating_handler("error.log", json_formatter, level=logging.ERROR))
    root_logger.addHandler(_rotating_handler(
        "audit_fallback.log",
        json_formatter,
        level=logging.ERROR,
        logger_name=AUDIT_WRITER_LOGGER
    ))

    for noisy, level in (
        ("uvicorn", logging.INFO),
        ("uvicorn.access", logging.WARNING),
        ("httpx", logging.WARNING),
        ("pymongo", logging.WARNING),
    ):
        logging.getLogger(noisy).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Merges the bound workflow context with per-call ``extra``"""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra", {}))
        correlation_id = correlation_id_var.get()
        if correlation_id:
            extra["correlation_id"] = correlation_id
        kwargs["extra"] = extra
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> LoggerAdapter:
    """Logger bound to e.g. ``authorization_id`` and ``actor_id``"""
    return LoggerAdapter(logging.getLogger(name), context)


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()
