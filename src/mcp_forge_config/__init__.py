"""Configuration models for mcp_forge."""

from __future__ import annotations

from mcp_forge_config.forge import DEFAULT_SEARCH_PATHS, ForgeConfig
from mcp_forge_config.http_server import HttpServerConfig


__all__ = ["DEFAULT_SEARCH_PATHS", "ForgeConfig", "HttpServerConfig"]
