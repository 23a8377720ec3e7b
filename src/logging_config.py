"""
Logging configuration for the dashboard and the demand-matrix engine.

Format: 2026-01-06T14:05:52Z [demand-matrix] WARNING message

Usage:
    from src.logging_config import configure_logging

    configure_logging()
    logger = logging.getLogger(__name__)
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from src.config import config


HANDLER_NAME = "demand-matrix-stream"


class ISO8601Formatter(logging.Formatter):
    """Formatter producing ISO8601 UTC timestamps and a source tag."""

    def __init__(self, source: str = "demand-matrix"):
        self.source = source
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        message = record.getMessage()

        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{timestamp} [{self.source}] {record.levelname} {message}"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or config.log_level or "INFO").upper()
    resolved = logging.getLevelName(name)
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def configure_logging(source: str = "demand-matrix", level: Optional[str] = None) -> logging.Logger:
    """
    Install a single stdout handler on the ``src`` logger tree.

    Safe to call on every Streamlit rerun: an existing handler is replaced,
    never duplicated.
    """
    resolved = _resolve_level(level)

    app_logger = logging.getLogger("src")
    app_logger.setLevel(resolved)

    for handler in list(app_logger.handlers):
        if handler.get_name() == HANDLER_NAME:
            app_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setLevel(resolved)
    handler.setFormatter(ISO8601Formatter(source=source))
    app_logger.addHandler(handler)

    # Streamlit's file watcher is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(logging.WARNING)

    return app_logger
