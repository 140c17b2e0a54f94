"""Logging setup for Flowline.

Every log line emitted while a run is executing carries the run's context
(``run_id``, ``workflow_id`` and, inside a node, ``node_id``/``node_type``).
Plain-text output appends it as ``key=value`` pairs; JSON output lifts it to
top-level keys.
"""

import json
import logging
import sys
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers that are too chatty at INFO for a workflow server
NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "urllib3": logging.WARNING,
}

_local = threading.local()


def _current_context() -> Dict[str, Any]:
    context = getattr(_local, "context", None)
    if context is None:
        context = _local.context = {}
    return context


class RunContextFilter(logging.Filter):
    """Attach the calling thread's run context to each record as ``record.flowline``."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = dict(_current_context())
        fields.update(getattr(record, "context_fields", None) or {})
        record.flowline = fields
        return True


class ContextTextFormatter(logging.Formatter):
    """Text formatter that appends the run context after the message."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = getattr(record, "flowline", None)
        if fields:
            pairs = " ".join(f"{key}={value}" for key, value in fields.items())
            line = f"{line} [{pairs}]"
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per line, suitable for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(getattr(record, "flowline", None) or {})
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the root logger for the server or CLI.

    Args:
        level: Logging level name
        log_file: Also write to this file, rotating at ``max_size`` bytes
        log_format: Format string for text output
        structured: Emit JSON lines instead of text
        max_size: Rotation threshold in bytes
        backup_count: Rotated files to keep

    Returns:
        The root logger
    """
    if structured:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = ContextTextFormatter(fmt=log_format or DEFAULT_FORMAT, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    context_filter = RunContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)


def set_logging_context(**fields: Any) -> None:
    """Add fields to the current thread's run context."""
    _current_context().update(fields)


def clear_logging_context() -> None:
    _current_context().clear()


@contextmanager
def run_logging_context(**fields: Any) -> Iterator[None]:
    """Set the run context for the duration of a block, then clear it."""
    set_logging_context(**fields)
    try:
        yield
    finally:
        clear_logging_context()


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log a message with extra context fields for this record only."""
    logger.log(level, message, extra={"context_fields": context})
