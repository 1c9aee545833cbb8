from __future__ import annotations

import json
import logging
import os
import pathlib
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any

from bibflow_observability.context import bind, snapshot

# Provider credentials travel in these keys; never print them
SENSITIVE_KEYS = {
    "api_key",
    "apikey",
    "x-api-key",
    "ads_api_key",
    "semantic_scholar_api_key",
    "pubmed_api_key",
    "authorization",
    "token",
    "password",
    "secret",
    "cookie",
}

CONTEXT_KEYS = ("request_id", "service", "target_id")

LOGRECORD_BUILTIN_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
}

_REDACTED = "***REDACTED***"
_DEFAULT_MAX_STRING = 2000


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _max_log_string_len() -> int:
    raw = (os.getenv("LOG_MAX_STRING") or "").strip()
    if not raw:
        return _DEFAULT_MAX_STRING
    try:
        return int(raw)
    except ValueError:
        return _DEFAULT_MAX_STRING


def _clamp(text: str) -> str:
    limit = _max_log_string_len()
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


def redact(key: str, value: Any) -> Any:
    if (key or "").lower() in SENSITIVE_KEYS:
        return _REDACTED
    return value


def to_jsonable(value: Any) -> Any:
    """Convert log extras into JSON-safe values, redacting credentials and clamping long strings."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _clamp(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(redact(str(k), v)) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return _clamp(str(value))


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    extras: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in LOGRECORD_BUILTIN_KEYS or key in CONTEXT_KEYS:
            continue
        extras[key] = to_jsonable(redact(key, value))
    return extras


class ContextFilter(logging.Filter):
    """Copy the bound correlation ids onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in snapshot().items():
            # An explicit extra= value wins over the bound one
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": _utc_iso(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_KEYS:
            payload[key] = getattr(record, key, None)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        extras = _record_extras(record)
        if extras:
            payload["extra"] = extras
        return json.dumps(payload, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    """Single-line local-time output for development."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime("%H:%M:%S")
        line = (
            f"{ts} [{record.levelname}] "
            f"svc={getattr(record, 'service', None)} "
            f"req={getattr(record, 'request_id', None)} "
            f"target={getattr(record, 'target_id', None)} "
            f"{record.name}: {record.getMessage()}"
        )
        extras = _record_extras(record)
        if extras:
            line += f" extra={extras}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _file_handler(path_value: str) -> RotatingFileHandler:
    path = pathlib.Path(path_value)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=int((os.getenv("LOG_FILE_MAX_BYTES") or "10485760").strip()),
        backupCount=int((os.getenv("LOG_FILE_BACKUP_COUNT") or "5").strip()),
        encoding="utf-8",
    )
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter())
    return handler


def setup_logging(service_name: str) -> None:
    """
    Configure root logging once per process.

    Repeated calls only rebind the service name. Reads:
    - LOG_LEVEL (default INFO)
    - LOG_FORMAT: ``pretty`` (default) or ``json``
    - LOG_FILE_PATH: adds a rotating JSON file handler when set
    """
    root = logging.getLogger()
    if getattr(root, "_configured_by_bibflow", False):
        bind(service=service_name)
        return

    level_name = (os.getenv("LOG_LEVEL") or "INFO").upper()
    log_format = (os.getenv("LOG_FORMAT") or "pretty").lower()

    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.addFilter(ContextFilter())
    console.setFormatter(JsonFormatter() if log_format == "json" else PrettyFormatter())
    root.addHandler(console)

    log_file_path = (os.getenv("LOG_FILE_PATH") or "").strip()
    if log_file_path:
        root.addHandler(_file_handler(log_file_path))

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    bind(service=service_name)
    root._configured_by_bibflow = True  # type: ignore[attr-defined]

    logging.getLogger(__name__).info(
        "logging_initialized",
        extra={
            "log_level": level_name,
            "log_format": log_format,
            "log_file_path": log_file_path or None,
        },
    )
