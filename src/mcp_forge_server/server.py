"""Stdio MCP server exposing the forge operations."""

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import TYPE_CHECKING

from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from mcp_forge.log import get_logger
from mcp_forge.manager import ServerManager
from mcp_forge_config import ForgeConfig
from mcp_forge_server.handlers import register_handlers


if TYPE_CHECKING:
    from typing import Self


logger = get_logger(__name__)

SERVER_NAME = "MCP Create Server"
SERVER_VERSION = "1.0.0"


class ForgeServer:
    """MCP server that creates, runs and proxies other MCP servers.

    Example:
        server = ForgeServer(ForgeConfig.from_file("forge.yml"))
        await server.run_stdio()
    """

    def __init__(
        self,
        config: ForgeConfig | None = None,
        *,
        manager: ServerManager | None = None,
        name: str = SERVER_NAME,
        version: str = SERVER_VERSION,
    ) -> None:
        """Initialize the server.

        Args:
            config: Lifecycle configuration
            manager: Server manager to use instead of one built from `config`
            name: Name reported during initialization
            version: Version reported during initialization
        """
        self.config = config or ForgeConfig()
        self.manager = manager or ServerManager(self.config)
        self.name = name
        self.server: Server = Server(name, version=version)
        self._exit_stack = AsyncExitStack()
        register_handlers(self)

    async def __aenter__(self) -> Self:
        await self._exit_stack.enter_async_context(self.manager)
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self._exit_stack.aclose()

    async def run_stdio(self) -> None:
        """Serve over stdin/stdout until the client disconnects.

        All created servers are shut down before returning.
        """
        async with self, stdio_server() as (read_stream, write_stream):
            logger.info("MCP Create Server running on stdio")
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )
        logger.info("MCP Create Server stopped")
