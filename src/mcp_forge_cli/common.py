"""Common utilities for the CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

import platformdirs
import typer as t

from mcp_forge import log
from mcp_forge_config import ForgeConfig


if TYPE_CHECKING:
    from pathlib import Path


CONFIG_HELP = "Path to a YAML forge configuration"
LOG_LEVEL_HELP = "Log level (DEBUG, INFO, WARNING, ERROR)"
JSON_LOGS_HELP = "Emit structured JSON logs"
LOG_FILE_HELP = "Also log to a rotating file in the user log directory"

LOG_DIR = platformdirs.user_log_path("mcp-forge", appauthor=False)


def setup_logging(
    log_level: str, *, json_logs: bool = False, log_file_name: str | None = None
) -> Path | None:
    """Configure logging for a CLI command.

    Returns:
        Path of the log file, if file logging was requested
    """
    log_file = None
    if log_file_name:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_file = LOG_DIR / log_file_name
    log.configure_logging(
        log_level, json_logs=json_logs, log_file=str(log_file) if log_file else None
    )
    return log_file


def load_config(path: str | None) -> ForgeConfig:
    """Load the forge configuration, or the defaults without a path."""
    if path is None:
        return ForgeConfig()
    try:
        return ForgeConfig.from_file(path)
    except ValueError as e:
        msg = f"{e}: {e.__cause__}" if e.__cause__ else str(e)
        raise t.BadParameter(msg, param_hint="--config") from e
