"""Command line interface for mcp_forge."""

from __future__ import annotations

import typer as t

from mcp_forge_cli.serve import serve_command
from mcp_forge_cli.serve_http import serve_http_command


MAIN_HELP = "Create, run and proxy MCP servers from submitted source code."

cli = t.Typer(name="mcp-forge", help=MAIN_HELP, no_args_is_help=True)
cli.command(name="serve")(serve_command)
cli.command(name="serve-http")(serve_http_command)


__all__ = ["cli"]
