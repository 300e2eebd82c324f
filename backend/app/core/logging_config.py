"""
Structured logging configuration.

Two output formats share one record model:

    • json    one object per line, for the log shipper in staging / production
    • pretty  coloured single lines for a local terminal

Both attach the request context set by RequestLoggingMiddleware and any of
the scoring fields in SCORING_FIELDS passed through ``extra=``:

    logger.info("Weekly forecast built", extra={"reading_count": 96, "level": "high"})

pretty:  12:00:01 INFO     [3f2a9c1e] backend.app.api: Weekly forecast built  reading_count=96 level=high
json:    {"level": "INFO", ..., "reading_count": 96, "level_label": "high"}

LOG_FORMAT=auto picks json in production and pretty everywhere else.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from backend.app.core.config import settings

_request_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar(
    "request_context", default=None
)

# Record attributes lifted out of ``extra=`` into the log line
SCORING_FIELDS = (
    "reading_count", "lookback_days", "day_offset", "overall_risk",
    "risk_score", "confidence", "level", "duration_ms", "status_code", "endpoint",
)

# JSON keys that would collide with the envelope
_RENAMED_FIELDS = {"level": "level_label"}

QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def set_request_context(**kwargs: Any) -> None:
    """Bind request-scoped fields; call with no arguments to clear."""
    _request_context.set(kwargs or None)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get() or {}


def scoring_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """The SCORING_FIELDS present on a record, in declaration order."""
    return {key: getattr(record, key) for key in SCORING_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        ctx = get_request_context()
        if ctx:
            entry["request"] = ctx

        for key, value in scoring_fields(record).items():
            entry[_RENAMED_FIELDS.get(key, key)] = value

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    """Coloured terminal output with the request id and scoring fields inline."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        request_id = get_request_context().get("request_id")
        prefix = f" [{request_id[:8]}]" if request_id else ""

        line = f"{self.formatTime(record, '%H:%M:%S')} {level}{prefix} {record.name}: {record.getMessage()}"

        fields = scoring_fields(record)
        if fields:
            line += "  " + " ".join(f"{k}={v}" for k, v in fields.items())

        if record.exc_info and record.exc_info[1]:
            if record.levelno >= logging.ERROR:
                line += "\n" + self.formatException(record.exc_info)
            else:
                line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"

        return line


def _use_json(log_format: str) -> bool:
    if log_format == "json":
        return True
    if log_format == "pretty":
        return False
    return settings.is_production


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if _use_json((log_format or settings.LOG_FORMAT).lower()):
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(PrettyFormatter(use_color=sys.stdout.isatty()))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
