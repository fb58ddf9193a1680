"""Logging configuration for mcp_forge with structlog support."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import sys
from typing import Any

import structlog


LogLevel = int | str

ROOT_LOGGER = "mcp_forge"
MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5

# Libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "mcp.server.lowlevel.server", "uvicorn.access")


def _to_level(level: LogLevel) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper())
    return level


def configure_logging(
    level: LogLevel = "INFO",
    *,
    use_colors: bool | None = None,
    json_logs: bool = False,
    log_file: str | None = None,
) -> None:
    """Configure structlog on top of standard logging.

    Output always goes to stderr, since stdout is the MCP channel when serving
    over stdio.

    Args:
        level: Logging level
        use_colors: Whether to use colored output (auto-detected if None)
        json_logs: Render JSON lines instead of console output
        log_file: Additionally log to this file, rotated at 10 MB
    """
    numeric_level = _to_level(level)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(
            RotatingFileHandler(
                log_file, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT, encoding="utf-8"
            )
        )
    logging.basicConfig(level=numeric_level, handlers=handlers, force=True, format="%(message)s")
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    if use_colors is None:
        use_colors = sys.stderr.isatty() and not json_logs
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs or not sys.stderr.isatty()
        else structlog.dev.ConsoleRenderer(colors=use_colors)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, log_level: LogLevel | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger below the `mcp_forge` namespace.

    Module names of the sibling packages (`mcp_forge_server.handlers`, ...) are
    nested under it as well, so one level setting covers the whole project.

    Args:
        name: Logger name, usually `__name__`
        log_level: Level to set on the underlying stdlib logger
    """
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    if log_level is not None:
        logging.getLogger(name).setLevel(_to_level(log_level))
    return structlog.get_logger(name)
