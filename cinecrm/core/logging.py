"""Logging setup for the cinecrm commands.

structlog renders records (console or JSON, chosen by ``LOG_FORMAT``).
Operator summaries are printed to stdout by the CLI through rich, so log
records go to stderr and, when a ``logs/`` directory exists, to
``logs/cinecrm.log``.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog

LOG_FILE = Path("logs/cinecrm.log")

SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def json_logs_from_env() -> bool:
    return os.getenv("LOG_FORMAT", "text").lower() == "json"


def _handlers() -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if LOG_FILE.parent.exists():
        handlers.append(logging.FileHandler(LOG_FILE))
    return handlers


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Root level name; falls back to LOG_LEVEL, then INFO
        json_logs: JSON rendering; falls back to LOG_FORMAT=json
    """
    if json_logs is None:
        json_logs = json_logs_from_env()

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=SHARED_PROCESSORS + [renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        handlers=_handlers(),
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
    )
