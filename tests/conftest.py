"""Test configuration and shared fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from mcp_forge_config import ForgeConfig
from mcp_forge_server.templates import PYTHON_TEMPLATE


if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def _python_server(body: str, name: str = "test-server") -> str:
    return (
        "import asyncio\n"
        "from pathlib import Path\n"
        "from mcp.server.fastmcp import FastMCP\n\n"
        f"mcp = FastMCP({name!r})\n\n"
        f"{body}\n\n"
        'if __name__ == "__main__":\n'
        "    mcp.run()\n"
    )


@pytest.fixture
def echo_source() -> str:
    """Python echo server source (tool `echo`, replies `Echo: <message>`)."""
    return PYTHON_TEMPLATE


@pytest.fixture
def python_server() -> Callable[..., str]:
    """Factory wrapping tool definitions into a runnable FastMCP server."""
    return _python_server


@pytest.fixture
def servers_dir(tmp_path: Path) -> Path:
    return tmp_path / "servers"


@pytest.fixture
def forge_config(servers_dir: Path) -> ForgeConfig:
    """Config isolated to a temporary directory, without host Node project."""
    return ForgeConfig(
        servers_dir=servers_dir,
        node_project_dir=None,
        shared_node_modules=None,
        handshake_timeout=20.0,
        shutdown_timeout=2.0,
    )
