"""Command for running the forge server over stdio."""

from __future__ import annotations

from typing import Annotated

import anyio
import typer as t

from mcp_forge import log
from mcp_forge_cli.common import (
    CONFIG_HELP,
    JSON_LOGS_HELP,
    LOG_FILE_HELP,
    LOG_LEVEL_HELP,
    load_config,
    setup_logging,
)


logger = log.get_logger(__name__)


def serve_command(
    config: Annotated[str | None, t.Option("--config", "-c", help=CONFIG_HELP)] = None,
    log_level: Annotated[str, t.Option("--log-level", "-l", help=LOG_LEVEL_HELP)] = "INFO",
    json_logs: Annotated[bool, t.Option("--json-logs", help=JSON_LOGS_HELP)] = False,
    log_to_file: Annotated[bool, t.Option("--log-file", help=LOG_FILE_HELP)] = False,
) -> None:
    """Run the MCP Create server on stdin/stdout.

    Logs go to stderr; stdout carries the MCP stream.

    Examples:
        mcp-forge serve
        mcp-forge serve --config forge.yml --log-level DEBUG
    """
    from mcp_forge_server.server import ForgeServer

    log_file = setup_logging(
        log_level, json_logs=json_logs, log_file_name="serve.log" if log_to_file else None
    )
    if log_file:
        logger.info("Configured file logging with rollover", log_file=str(log_file))
    forge_config = load_config(config)
    logger.info("Starting MCP Create Server", servers_dir=str(forge_config.servers_dir))
    server = ForgeServer(forge_config)
    try:
        anyio.run(server.run_stdio)
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
