"""
Logging setup for the login throttle.

Every record carries the request ID and the login source address of the
request being handled, so a deny, the audit line it produces and any
alert-delivery error can be tied back to one login attempt.

JSON output lifts the audit fields (``category``, ``severity``) and the
fields logged by the request middleware to the top level of the entry.
Plain output is a one-line format for local runs.

Usage:
    from throttleguard.utils.structured_logger import setup_structured_logging, get_logger

    setup_structured_logging(level="INFO", json_output=True)
    logger = get_logger(__name__)
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

DEFAULT_SERVICE_NAME = "login-throttle"

# Record attributes lifted into JSON entries when present
AUDIT_FIELDS = ("category", "severity")
REQUEST_FIELDS = ("method", "path", "status_code", "duration_ms", "error_type")

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s %(login_context)s%(message)s"

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_source_ip: ContextVar[Optional[str]] = ContextVar("source_ip", default=None)


def set_request_id(request_id: Optional[str]) -> None:
    _request_id.set(request_id)


def set_source_ip(source_ip: Optional[str]) -> None:
    _source_ip.set(source_ip)


def clear_context() -> None:
    """Forget the request ID and source address of the current context"""
    _request_id.set(None)
    _source_ip.set(None)


class LoginContextFilter(logging.Filter):
    """Stamps request_id, source_ip and a printable login_context on each record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        record.source_ip = _source_ip.get()
        tags = [value for value in (record.request_id, record.source_ip) if value]
        record.login_context = f"[{' '.join(tags)}] " if tags else ""
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    {"timestamp": "...Z", "level": "INFO", "logger": "throttleguard.audit",
     "message": "Throttling IP ...", "service": "login-throttle",
     "request_id": "...", "source_ip": "203.0.113.7",
     "category": "LoginThrottling", "severity": "Information"}
    """

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        entry = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "request_id": getattr(record, "request_id", _request_id.get()),
            "source_ip": getattr(record, "source_ip", _source_ip.get()),
        }
        for name in AUDIT_FIELDS + REQUEST_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_structured_logging(
    level: str = "INFO",
    json_output: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME
) -> logging.Handler:
    """Replace the root handlers with one stdout handler; returns that handler.

    Unknown level names fall back to INFO.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(LoginContextFilter())
    handler.setFormatter(JSONFormatter(service_name) if json_output else logging.Formatter(PLAIN_FORMAT))

    numeric_level = logging.getLevelName(level.upper())
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(numeric_level if isinstance(numeric_level, int) else logging.INFO)

    for noisy in ("uvicorn.access", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
