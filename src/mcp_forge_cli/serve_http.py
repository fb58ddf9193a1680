"""Command for running the stateless HTTP façade."""

from __future__ import annotations

from typing import Annotated

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


def serve_http_command(
    config: Annotated[str | None, t.Option("--config", "-c", help=CONFIG_HELP)] = None,
    host: Annotated[str | None, t.Option("--host", "-h", help="Host to bind to")] = None,
    port: Annotated[
        int | None,
        t.Option("--port", "-p", envvar="PORT", help="Port to listen on (default 8080)"),
    ] = None,
    log_level: Annotated[str, t.Option("--log-level", "-l", help=LOG_LEVEL_HELP)] = "INFO",
    json_logs: Annotated[bool, t.Option("--json-logs", help=JSON_LOGS_HELP)] = False,
    log_to_file: Annotated[bool, t.Option("--log-file", help=LOG_FILE_HELP)] = False,
) -> None:
    """Run the HTTP façade.

    Each POST to /api/mcp is relayed to a freshly spawned stdio worker.

    Examples:
        mcp-forge serve-http
        PORT=3000 mcp-forge serve-http --config forge.yml
    """
    from mcp_forge_server.http_server import HttpBridgeServer

    log_file = setup_logging(
        log_level, json_logs=json_logs, log_file_name="http.log" if log_to_file else None
    )
    if log_file:
        logger.info("Configured file logging with rollover", log_file=str(log_file))
    http_config = load_config(config).http
    overrides = {
        key: value for key, value in {"host": host, "port": port}.items() if value is not None
    }
    if overrides:
        http_config = http_config.model_copy(update=overrides)
    server = HttpBridgeServer(http_config)
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
