"""Tools advertised by the forge server."""

from __future__ import annotations

from mcp import types

from mcp_forge_server.templates import CREATE_FROM_TEMPLATE_DESCRIPTION


SERVER_ID_PROPERTY = {"type": "string", "description": "The ID of the server"}

CREATE_SERVER_FROM_TEMPLATE = types.Tool(
    name="create-server-from-template",
    description=CREATE_FROM_TEMPLATE_DESCRIPTION,
    inputSchema={
        "type": "object",
        "properties": {
            "language": {
                "type": "string",
                "enum": ["typescript", "javascript", "python"],
                "description": "The programming language for the template",
            },
            "code": {
                "type": "string",
                "description": (
                    "The customized server code based on the template. "
                    "The default template is used when omitted."
                ),
            },
            "dependencies": {
                "type": "object",
                "additionalProperties": {"type": "string"},
                "description": 'Libraries and their versions, e.g. {"axios": "^1.0.0"}',
            },
        },
        "required": ["language"],
    },
)

EXECUTE_TOOL = types.Tool(
    name="execute-tool",
    description="Execute a tool on a server",
    inputSchema={
        "type": "object",
        "properties": {
            "serverId": SERVER_ID_PROPERTY,
            "toolName": {"type": "string", "description": "The name of the tool to execute"},
            "args": {"type": "object", "description": "The arguments to pass to the tool"},
        },
        "required": ["serverId", "toolName"],
    },
)

GET_SERVER_TOOLS = types.Tool(
    name="get-server-tools",
    description="Get the tools available on a server",
    inputSchema={
        "type": "object",
        "properties": {"serverId": SERVER_ID_PROPERTY},
        "required": ["serverId"],
    },
)

UPDATE_SERVER = types.Tool(
    name="update-server",
    description=(
        "Replace a server's code. The server is restarted under a new ID; "
        "the old ID stops working."
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "serverId": SERVER_ID_PROPERTY,
            "code": {"type": "string", "description": "The new server code"},
        },
        "required": ["serverId", "code"],
    },
)

DELETE_SERVER = types.Tool(
    name="delete-server",
    description="Delete a server",
    inputSchema={
        "type": "object",
        "properties": {"serverId": SERVER_ID_PROPERTY},
        "required": ["serverId"],
    },
)

LIST_SERVERS = types.Tool(
    name="list-servers",
    description="List all running servers",
    inputSchema={"type": "object", "properties": {}},
)

TOOLS: list[types.Tool] = [
    CREATE_SERVER_FROM_TEMPLATE,
    EXECUTE_TOOL,
    GET_SERVER_TOOLS,
    UPDATE_SERVER,
    DELETE_SERVER,
    LIST_SERVERS,
]
