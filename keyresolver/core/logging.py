"""Structured logging for key source resolution.

Provides:
- JSON structured output for log aggregation
- Human-readable output for terminals
- Masking of key material and credentials in structured fields
- Operation timing
- Handler setup from `log_json` and `log_level` settings

Usage:
    from keyresolver.core.logging import get_logger

    logger = get_logger(__name__)
    logger.error("Failed to read signing key", path=settings.rsa_signing_key_path)
"""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable

from keyresolver.config import PackagerSettings, get_settings

# Sensitive fields to mask in logs
SENSITIVE_FIELDS = {"password", "secret", "token", "key", "credential", "iv"}

# Field names that contain a sensitive word but only name a location
NON_SENSITIVE_FIELDS = {"key_server_url", "rsa_signing_key_path", "path", "field"}


def mask_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    """Mask sensitive values in a dictionary."""
    masked = {}
    for key, value in data.items():
        key_lower = key.lower()
        if key_lower in NON_SENSITIVE_FIELDS:
            masked[key] = value
        elif any(s in key_lower.split("_") for s in SENSITIVE_FIELDS):
            if isinstance(value, str) and len(value) > 8:
                masked[key] = f"{value[:4]}...{value[-4:]}"
            else:
                masked[key] = "[REDACTED]"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive(value)
        else:
            masked[key] = value
    return masked


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(mask_sensitive(getattr(record, "extra_fields", {})))

        if record.levelno >= logging.WARNING:
            entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Single-line terminal output with trailing key=value fields."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = getattr(record, "extra_fields", None)
        if not fields:
            return line

        head, sep, trace = line.partition("\n")
        pairs = " ".join(f"{k}={v}" for k, v in mask_sensitive(fields).items())
        return f"{head} | {pairs}{sep}{trace}"


class StructuredLogger(logging.Logger):
    """Logger whose calls take keyword fields.

    ``logger.warning("Multiple key sources enabled", selected="fixed")`` stores
    the keywords on the record as ``extra_fields`` for the formatters.
    """

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False,
             stacklevel=1, **fields):
        if fields:
            extra = {**(extra or {}), "extra_fields": fields}
        # One more frame to skip: this override sits between the caller and Logger._log.
        super()._log(
            level, msg, args,
            exc_info=exc_info, extra=extra, stack_info=stack_info, stacklevel=stacklevel + 1,
        )


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module."""
    logging.setLoggerClass(StructuredLogger)
    try:
        return logging.getLogger(name)
    finally:
        logging.setLoggerClass(logging.Logger)


def setup_logging(json_output: bool = False, level: str = "INFO"):
    """Configure packager logging.

    Args:
        json_output: Use JSON format (for log aggregation)
        level: Logging level name, case-insensitive
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if json_output else HumanFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    # The HTTP client logs every request at INFO
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging(settings: PackagerSettings | None = None):
    """Apply ``log_json`` and ``log_level`` from settings."""
    if settings is None:
        settings = get_settings()
    setup_logging(json_output=settings.log_json, level=settings.log_level)


def log_operation(operation: str):
    """Decorator to log function execution with timing."""
    def decorator(func: Callable):
        logger = get_logger(func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration_ms = (time.monotonic() - start) * 1000
                logger.error(
                    f"{operation} failed",
                    operation=operation,
                    error=str(e),
                    duration_ms=round(duration_ms, 2),
                )
                raise
            duration_ms = (time.monotonic() - start) * 1000
            logger.info(
                f"{operation} completed",
                operation=operation,
                selected=getattr(getattr(result, "source_type", None), "value", None),
                duration_ms=round(duration_ms, 2),
            )
            return result

        return wrapper

    return decorator
