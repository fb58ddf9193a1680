"""MCP protocol request handlers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from mcp import types

from mcp_forge.exceptions import ForgeError
from mcp_forge.log import get_logger
from mcp_forge_server.templates import get_template
from mcp_forge_server.tools import TOOLS


if TYPE_CHECKING:
    from mcp_forge.manager import ServerManager
    from mcp_forge_server.server import ForgeServer


logger = get_logger(__name__)


def _require(arguments: dict[str, Any], *names: str) -> None:
    missing = [name for name in names if not arguments.get(name)]
    if missing:
        noun = "argument" if len(missing) == 1 else "arguments"
        msg = f"Missing required {noun}: {' and '.join(missing)}"
        raise ValueError(msg)


async def dispatch(manager: ServerManager, name: str, arguments: dict[str, Any]) -> Any:
    """Run one forge operation and return its JSON-serializable payload.

    Raises:
        ValueError: Unknown tool or missing arguments
        ForgeError: Failure reported by the server manager
    """
    match name:
        case "create-server-from-template":
            _require(arguments, "language")
            language = arguments["language"]
            code = arguments.get("code") or get_template(language)
            server_id = await manager.create(code, language, arguments.get("dependencies"))
            message = (
                f"Created server from custom code in {language}"
                if arguments.get("code")
                else f"Created server from {language} template"
            )
            return {"serverId": server_id, "message": message}
        case "execute-tool":
            _require(arguments, "serverId", "toolName")
            return await manager.invoke(
                arguments["serverId"], arguments["toolName"], arguments.get("args") or {}
            )
        case "get-server-tools":
            _require(arguments, "serverId")
            return {"tools": await manager.list_tools(arguments["serverId"])}
        case "update-server":
            _require(arguments, "serverId", "code")
            old_id = arguments["serverId"]
            new_id = await manager.update(old_id, arguments["code"])
            return {
                "success": True,
                "message": f"Server {old_id} updated and restarted as {new_id}",
                "serverId": new_id,
            }
        case "delete-server":
            _require(arguments, "serverId")
            await manager.delete(arguments["serverId"])
            return {"success": True, "message": f"Server {arguments['serverId']} deleted"}
        case "list-servers":
            return {"servers": await manager.list_servers()}
        case _:
            msg = f"Unknown tool: {name}"
            raise ValueError(msg)


def register_handlers(forge_server: ForgeServer) -> None:
    """Register the MCP protocol handlers.

    Args:
        forge_server: Forge server instance
    """

    @forge_server.server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        """Handle tools/list request."""
        return TOOLS

    @forge_server.server.call_tool(validate_input=False)
    async def handle_call_tool(
        name: str,
        arguments: dict[str, Any] | None = None,
    ) -> list[types.TextContent]:
        """Handle tools/call request.

        Failures are reported as an `{"error": ...}` payload, never raised.
        """
        logger.debug("Received tool call", tool=name)
        try:
            payload = await dispatch(forge_server.manager, name, arguments or {})
        except (ForgeError, ValueError) as exc:
            logger.warning("Tool call failed", tool=name, error=str(exc))
            payload = {"error": str(exc)}
        except Exception as exc:
            logger.exception("Error executing tool", tool=name)
            payload = {"error": str(exc) or type(exc).__name__}
        return [types.TextContent(type="text", text=json.dumps(payload))]
