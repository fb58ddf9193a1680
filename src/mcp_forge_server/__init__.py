"""MCP server and HTTP façade for mcp_forge."""

from __future__ import annotations

from mcp_forge_server.handlers import dispatch, register_handlers
from mcp_forge_server.http_server import HttpBridgeServer, create_app
from mcp_forge_server.server import ForgeServer
from mcp_forge_server.templates import TEMPLATES, get_template
from mcp_forge_server.tools import TOOLS


__all__ = [
    "TEMPLATES",
    "TOOLS",
    "ForgeServer",
    "HttpBridgeServer",
    "create_app",
    "dispatch",
    "get_template",
    "register_handlers",
]
