"""Structured logging for vault-storage.

Records can be emitted as JSON (one object per line) or plain text. Every
storage operation runs inside ``log_context(operation=..., path=...)`` so
the fields appear on all records it produces, and reports its duration as
``elapsed_ms``.
"""

import json
import logging
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Optional, Union

ROOT_LOGGER_NAME = "vault_storage"

# Per-thread context; concurrent operations on different threads don't mix fields
_log_context = threading.local()


def _get_context() -> Dict[str, Any]:
    """Return the log context dict for the current thread."""
    if not hasattr(_log_context, "data"):
        _log_context.data = {}
    data: Dict[str, Any] = _log_context.data
    return data


class JSONFormatter(logging.Formatter):
    """Formatter that renders each record as a single JSON object.

    Standard fields are timestamp, level, logger, message, filename and
    lineno; ``exception`` is added when the record carries exc_info, and any
    extra fields (from ``extra=`` or ``log_context``) are copied through.

    Example output:
        {
            "timestamp": "2026-03-02T10:14:07.512034",
            "level": "DEBUG",
            "logger": "vault_storage.adapter",
            "message": "Saved",
            "filename": "adapter.py",
            "lineno": 171,
            "operation": "save",
            "path": "/vault.kdbx",
            "revision": "\\"0x8DC5B1F2A3E4D10\\"",
            "elapsed_ms": 84.2
        }
    """

    RESERVED_FIELDS = {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "filename": record.filename,
            "lineno": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in self.RESERVED_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class ContextFilter(logging.Filter):
    """Filter that copies static and thread-local context onto records.

    Args:
        context: Fields added to every record passing through the filter

    Example:
        handler.addFilter(ContextFilter({"backend": "azure"}))
    """

    def __init__(self, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__()
        self.context = context or {}

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to the record; never drops it."""
        for key, value in self.context.items():
            setattr(record, key, value)

        for key, value in _get_context().items():
            setattr(record, key, value)

        return True


@contextmanager
def log_context(**kwargs: Any) -> Any:
    """Attach fields to every log record emitted within the block.

    Contexts nest; the inner block sees the outer fields too, and the outer
    state is restored on exit.

    Example:
        with log_context(operation="save", path="/vault.kdbx"):
            logger.debug("Save")
    """
    context = _get_context()
    old_context = context.copy()

    try:
        context.update(kwargs)
        yield
    finally:
        context.clear()
        context.update(old_context)


def ts() -> float:
    """Return a start mark for ``elapsed_ms``."""
    return time.monotonic()


def elapsed_ms(start: float) -> float:
    """Milliseconds elapsed since ``start`` (from ``ts()``), rounded to 0.1ms."""
    return round((time.monotonic() - start) * 1000, 1)


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure the vault-storage logger hierarchy.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (True) or plain text (False)
        log_file: Optional file path to write logs to (in addition to stderr)

    Returns:
        The configured ``vault_storage`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))

    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    formatter: Union[JSONFormatter, logging.Formatter]
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # stderr so that `vault-storage load PATH` can stream content to stdout
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextFilter())
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(ContextFilter())
        logger.addHandler(file_handler)

    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the child logger ``vault_storage.<name>``.

    Example:
        logger = get_logger("adapter")
        logger.debug("Stat", extra={"path": "/vault.kdbx"})
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
