"""
Logging for the MZone service.

One application logger, ``mzone``. Payment and reconciliation code log
through ``log_event`` so every record carries the same correlation fields
(request id, user, gateway reference). ``LOG_FIELDS`` is the single list of
those fields: ``log_event`` fills them, ``ContextFilter`` backfills the
request id, and both formatters render these keys first, followed by any
other `extra` values.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

LOGGER_NAME = "mzone"

LOG_FIELDS = (
    "request_id",
    "user_id",
    "reference",
    "event_type",
    "error_code",
    "status",
    "method",
    "path",
    "latency_bucket",
)

# Upper bound (exclusive, ms) -> label; anything slower is the last label
_LATENCY_BUCKETS = (
    (10, "<10ms"),
    (100, "10-100ms"),
    (500, "100-500ms"),
    (1000, "500-1000ms"),
)
_SLOWEST_BUCKET = ">=1000ms"

MAX_VALUE_CHARS = 500

_request_id: ContextVar[Optional[str]] = ContextVar("mzone_request_id", default=None)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = _request_id.get()
    return default if rid is None else rid


@contextmanager
def bind_request_id(request_id: str) -> Iterator[str]:
    """Make `request_id` the current request id for the enclosed block."""
    token = _request_id.set(request_id)
    try:
        yield request_id
    finally:
        _request_id.reset(token)


def latency_bucket(elapsed_ms: Optional[float]) -> str:
    if elapsed_ms is None:
        return "unknown"
    for upper, label in _LATENCY_BUCKETS:
        if elapsed_ms < upper:
            return label
    return _SLOWEST_BUCKET


def clip(value: Any, limit: int = MAX_VALUE_CHARS) -> Any:
    """Keep scalars as they are; stringify anything else and cap its length."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Exception):
        text = f"{type(value).__name__}: {value}"
    else:
        text = str(value)
    if len(text) > limit:
        return f"{text[:limit]}...<truncated>"
    return text


# Attributes every LogRecord has; anything else on a record came from `extra`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Correlation fields in LOG_FIELDS order, then any other `extra` keys."""
    out = {name: getattr(record, name) for name in LOG_FIELDS if getattr(record, name, None) is not None}
    for name, value in vars(record).items():
        if name not in _RECORD_ATTRS and name not in out and value is not None:
            out[name] = value
    return out


class ContextFilter(logging.Filter):
    """Backfill the bound request id on records that did not pass one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line (production)."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        doc: Dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "event": record.getMessage(),
        }
        doc.update(_fields(record))
        if record.exc_info:
            doc["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(doc, default=str)


class PrettyFormatter(logging.Formatter):
    """`HH:MM:SS LEVEL event key=value ...` for local development."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        pairs = " ".join(f"{name}={value}" for name, value in _fields(record).items())
        line = f"{created:%H:%M:%S} {record.levelname:<7} {record.getMessage()}"
        if pairs:
            line = f"{line} {pairs}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development", level: int = logging.INFO) -> logging.Logger:
    """Install the handler for ``env`` on the application logger (idempotent)."""
    formatter = JsonFormatter() if env.lower() == "production" else PrettyFormatter()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers = [handler]
    return logger


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    reference: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log `msg` with the correlation fields set.

    `request_id` defaults to the id bound for the current request. Values
    in `extra` are clipped to ``MAX_VALUE_CHARS`` characters.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    fields: Dict[str, Any] = {k: clip(v) for k, v in (extra or {}).items()}
    fields.update(
        request_id=request_id or get_request_id(),
        user_id=user_id,
        reference=reference,
        event_type=event_type,
        error_code=error_code,
    )
    logger.log(logging.getLevelName(level.upper()), msg, extra=fields)
