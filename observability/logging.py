"""Logging setup with run-scoped context and text or JSON output.

Every record passes through ``ContextFilter``, which stamps it with the
current run id (a contextvar set by the pipeline at the start of each
run), so concurrent source fetches inside one run share the same id.

Usage:
    >>> from observability.logging import setup_logging, set_run_context
    >>> setup_logging(config)
    >>> set_run_context("3f9a1c2e")
    >>> logger.info("Collection started | sources=%d", 13)
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any

LOG_FILE_NAME = "relay.log"

# Loggers raised to WARNING so HTTP client chatter stays out of run logs
NOISY_LOGGERS = ("aiohttp", "asyncio", "httpx", "httpcore", "openai", "urllib3")

_RESERVED = frozenset(logging.LogRecord(
    "", logging.INFO, "", 0, "", None, None,
).__dict__) | {"message", "run_id", "asctime"}

run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")


def set_run_context(run_id: str) -> contextvars.Token:
    """Bind a run id to all log records emitted in the current context."""
    return run_id_var.set(run_id)


def clear_context() -> None:
    run_id_var.set("-")


class ContextFilter(logging.Filter):
    """Adds ``run_id`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Fields: timestamp, level, logger, message, run_id, plus source
    location for WARNING and above, the exception text, and any
    ``extra=`` attributes passed by the caller.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", "-"),
        }
        if record.levelno >= logging.WARNING:
            log_data["where"] = f"{record.filename}:{record.lineno}"
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """``TIME [LEVEL] [run_id] logger: message``; the file variant adds the date."""

    def __init__(self, include_date: bool = False):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(run_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S" if include_date else "%H:%M:%S",
        )


def _file_handler(config: Any) -> logging.Handler:
    """Rotating handler: by size when LOG_MAX_BYTES > 0, else daily."""
    log_file = config.log_dir / LOG_FILE_NAME
    if config.log_max_bytes > 0:
        return RotatingFileHandler(
            log_file,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
    return TimedRotatingFileHandler(
        log_file,
        when="midnight",
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )


def setup_logging(config: Any, verbose: bool = False) -> bool:
    """Configure console and rotating file logging.

    Falls back to console-only logging when the log directory cannot be
    created or written.

    Args:
        config: Application configuration with ``log_*`` settings
        verbose: Force DEBUG on the console

    Returns:
        True if file logging is enabled
    """
    console_level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    json_output = config.log_format == "json"
    context_filter = ContextFilter()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(JsonFormatter() if json_output else TextFormatter())
    console.addFilter(context_filter)
    root.addHandler(console)

    file_logging_enabled = False
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = _file_handler(config)
    except OSError as e:
        print(
            f"Warning: Cannot write to log directory '{config.log_dir}': {e}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter() if json_output else TextFormatter(include_date=True))
        file_handler.addFilter(context_filter)
        root.addHandler(file_handler)
        file_logging_enabled = True

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return file_logging_enabled
