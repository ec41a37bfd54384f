# hairstyle_api/logging_config.py
"""
Logging for the hairstyle service.

Every record can carry `user_id`, `request_id` and an `extra_data` dict. The
generation record id (`generation_id`, or `reference_id` on ledger entries)
is the key for matching a charge to its refund, so both formatters always
surface it. Ledger and generation events also go to the `business` logger.
"""

import logging
import sys
import json
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
import traceback

from .config import settings

# extra_data keys that identify a generation attempt, in lookup order
GENERATION_KEYS = ("generation_id", "reference_id")

QUIET_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "botocore": logging.WARNING,
    "google_genai": logging.WARNING,
}

MAX_TEXT_VALUE_LENGTH = 120


def _generation_id(extra_data: Optional[Dict[str, Any]]) -> Optional[str]:
    if not extra_data:
        return None
    for key in GENERATION_KEYS:
        if extra_data.get(key):
            return str(extra_data[key])
    return None


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation"""

    def format(self, record: logging.LogRecord) -> str:
        extra_data = getattr(record, "extra_data", None)

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
            "user_id": getattr(record, "user_id", None),
            "request_id": getattr(record, "request_id", None),
            # Top-level so ledger entries and failures can be joined on it
            "generation_id": _generation_id(extra_data),
        }
        log_data = {k: v for k, v in log_data.items() if v is not None}

        if extra_data:
            log_data["extra"] = extra_data

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    One line per record for the console:

        2026-10-19 10:00:00 | ERROR    | hairstyle_api.generations | Generation failed [user=u1] [gen=3f2a...] provider=wavespeed
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def _level(self, levelname: str) -> str:
        if settings.ENVIRONMENT != "development":
            return f"{levelname:8s}"
        return f"{self.COLORS.get(levelname, self.RESET)}{levelname:8s}{self.RESET}"

    @staticmethod
    def _render_extra(extra_data: Dict[str, Any]) -> str:
        pairs = []
        for key, value in extra_data.items():
            if key in GENERATION_KEYS or value is None:
                continue
            text = value if isinstance(value, str) else json.dumps(value, default=str)
            if len(text) > MAX_TEXT_VALUE_LENGTH:
                text = text[:MAX_TEXT_VALUE_LENGTH] + "..."
            pairs.append(f"{key}={text}")
        return " ".join(pairs)

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        parts = [f"{timestamp} | {self._level(record.levelname)} | {record.name:25s} | {record.getMessage()}"]

        user_id = getattr(record, "user_id", None)
        if user_id:
            parts.append(f"[user={user_id}]")

        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(f"[req={request_id[:8]}]")

        extra_data = getattr(record, "extra_data", None) or {}
        generation_id = _generation_id(extra_data)
        if generation_id:
            parts.append(f"[gen={generation_id}]")

        rendered = self._render_extra(extra_data)
        if rendered:
            parts.append(rendered)

        message = " ".join(parts)
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO)
    handler.setFormatter(StructuredFormatter() if settings.LOG_FORMAT == "json" else HumanReadableFormatter())
    return handler


def _add_file_handlers(root_logger: logging.Logger):
    """app.log (everything), errors.log (daily), business.log (ledger events only)"""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    app_handler = RotatingFileHandler(
        log_dir / "app.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8"
    )
    app_handler.setLevel(logging.INFO)

    error_handler = TimedRotatingFileHandler(
        log_dir / "errors.log",
        when="midnight",
        backupCount=30,
        encoding="utf-8"
    )
    error_handler.setLevel(logging.ERROR)

    for handler in (app_handler, error_handler):
        handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(handler)

    business_handler = RotatingFileHandler(
        log_dir / "business.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=10,
        encoding="utf-8"
    )
    business_handler.setFormatter(StructuredFormatter())
    business_logger.addHandler(business_handler)
    business_logger.propagate = False


def setup_logging():
    """
    Configure logging for the entire application.
    Called once by the app module and by the reconciliation CLI.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))
    root_logger.handlers.clear()
    root_logger.addHandler(_console_handler())

    if settings.ENABLE_FILE_LOGGING:
        _add_file_handlers(root_logger)

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "extra_data": {
                "environment": settings.ENVIRONMENT,
                "log_level": settings.LOG_LEVEL,
                "log_format": settings.LOG_FORMAT,
                "file_logging": settings.ENABLE_FILE_LOGGING
            }
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# Ledger and generation audit trail
business_logger = logging.getLogger("business")


def log_business_event(
    event_type: str,
    user_id: Optional[str] = None,
    **kwargs: Any
):
    """
    Record a ledger or generation event.

    Pass `generation_id` (or `reference_id`) whenever the event belongs to a
    generation attempt so it can be matched against its debit and refund:

        log_business_event("credits_refunded", user_id="user_123", reference_id=gen_id, amount=1)
    """
    business_logger.info(
        f"Business Event: {event_type}",
        extra={
            "user_id": user_id,
            "extra_data": {
                "event_type": event_type,
                **kwargs
            }
        }
    )
