"""Structured logging for the ``userdir`` logger tree.

Every record is rendered as one JSON object. Values of whitelisted ``extra``
fields are copied into the object; string values that look like credentials
are replaced with ``[REDACTED]`` first.
"""

import json
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from userdir.domain.correlation_id import ROOT_LOGGER_NAME, CorrelationLoggerAdapter

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ROTATE_AT_BYTES = 10 * 1024 * 1024
ROTATED_FILES_KEPT = 5
REDACTED = "[REDACTED]"

# Secret-ish words, long hex digests, long base64 blobs.
SENSITIVE_PATTERNS = (
    re.compile(r"(?i)(authorization|bearer|token|key|password|passwd|secret|credential)"),
    re.compile(r"\b[A-Fa-f0-9]{32,}\b"),
    re.compile(r"\b[A-Za-z0-9+/]{32,}={0,2}\b"),
)

EXTRA_KEYS = (
    # request
    "client",
    "method",
    "route",
    "status_code",
    "duration_ms",
    "limit_type",
    # userdir
    "username",
    "sub_root",
    "path",
    "directory",
    "count",
    "errno",
    # directory service
    "ldap_server",
    "record",
    "result_code",
    "attempt",
    "backoff_seconds",
    # process
    "host",
    "port",
    "tls",
    "log_destination",
    "log_level",
    "socket_timeout",
    "shutdown_grace_seconds",
    "signal",
    # general
    "reason",
    "error_type",
)


def redact_sensitive(value: str) -> str:
    """Return ``value``, or the redaction marker when it looks secret."""
    if value and any(pattern.search(value) for pattern in SENSITIVE_PATTERNS):
        return REDACTED
    return value


class CorrelationIdFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Give records logged outside the adapter a ``correlation_id`` of ``-``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.__dict__.setdefault("correlation_id", "-")
        return True


class JsonFormatter(logging.Formatter):
    """Render records as sorted-key JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
            "component": getattr(record, "component", "unknown"),
        }
        fields = record.__dict__
        if "event" in fields:
            payload["event"] = fields["event"]
        for key in EXTRA_KEYS:
            if key not in fields:
                continue
            value = fields[key]
            payload[key] = redact_sensitive(value) if isinstance(value, str) else value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _make_handler(destination: Optional[str], use_json: bool) -> logging.Handler:
    handler: logging.Handler
    if destination is None or destination.lower() == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        log_file = Path(destination)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_file, maxBytes=ROTATE_AT_BYTES, backupCount=ROTATED_FILES_KEPT
        )
    formatter = (
        JsonFormatter(datefmt=DATE_FORMAT)
        if use_json
        else logging.Formatter(PLAIN_FORMAT, DATE_FORMAT)
    )
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())
    return handler


def configure_logging(
    level: str = "INFO", destination: Optional[str] = None, use_json: bool = True
) -> CorrelationLoggerAdapter:
    """Install a single handler on the ``userdir`` logger and return an adapter.

    Calling it again replaces the previous handler, closing it first.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    numeric_level = _level_from_name(level)
    for old_handler in root.handlers[:]:
        root.removeHandler(old_handler)
        old_handler.close()

    handler = _make_handler(destination, use_json)
    handler.setLevel(numeric_level)
    root.addHandler(handler)
    root.setLevel(numeric_level)
    root.propagate = False

    adapter = CorrelationLoggerAdapter(root, {})
    adapter.info(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "log_destination": destination or "stdout",
            "log_level": logging.getLevelName(numeric_level),
        },
    )
    return adapter
