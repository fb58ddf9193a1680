"""Starter server sources offered to callers."""

from __future__ import annotations


TYPESCRIPT_TEMPLATE = """\
import { Server } from "@modelcontextprotocol/sdk/server/index.js";
import { StdioServerTransport } from "@modelcontextprotocol/sdk/server/stdio.js";
import {
  CallToolRequestSchema,
  ListToolsRequestSchema
} from "@modelcontextprotocol/sdk/types.js";

const server = new Server({
  name: "dynamic-test-server",
  version: "1.0.0"
}, {
  capabilities: {
    tools: {}
  }
});

server.setRequestHandler(ListToolsRequestSchema, async () => {
  return {
    tools: [{
      name: "echo",
      description: "Echo back a message",
      inputSchema: {
        type: "object",
        properties: {
          message: { type: "string" }
        },
        required: ["message"]
      }
    }]
  };
});

server.setRequestHandler(CallToolRequestSchema, async (request) => {
  if (request.params.name === "echo") {
    const message = request.params.arguments?.message as string;
    return {
      content: [
        {
          type: "text",
          text: `Echo: ${message}`
        }
      ]
    };
  }
  throw new Error("Tool not found");
});

const transport = new StdioServerTransport();
server.connect(transport);
"""

JAVASCRIPT_TEMPLATE = """\
import { Server } from "@modelcontextprotocol/sdk/server/index.js";
import { StdioServerTransport } from "@modelcontextprotocol/sdk/server/stdio.js";
import {
  CallToolRequestSchema,
  ListToolsRequestSchema
} from "@modelcontextprotocol/sdk/types.js";

const server = new Server(
  { name: "dynamic-test-server", version: "1.0.0" },
  { capabilities: { tools: {} } }
);

server.setRequestHandler(ListToolsRequestSchema, async () => ({
  tools: [{
    name: "echo",
    description: "Echo back a message",
    inputSchema: {
      type: "object",
      properties: { message: { type: "string" } },
      required: ["message"]
    }
  }]
}));

server.setRequestHandler(CallToolRequestSchema, async (request) => {
  if (request.params.name === "echo") {
    return {
      content: [{ type: "text", text: `Echo: ${request.params.arguments?.message}` }]
    };
  }
  throw new Error("Tool not found");
});

const transport = new StdioServerTransport();
server.connect(transport);
"""

PYTHON_TEMPLATE = '''\
from mcp.server.fastmcp import FastMCP

mcp = FastMCP("dynamic-test-server")


@mcp.tool()
def echo(message: str) -> str:
    """Echo back a message"""
    return f"Echo: {message}"


if __name__ == "__main__":
    mcp.run()
'''

TEMPLATES: dict[str, str] = {
    "typescript": TYPESCRIPT_TEMPLATE,
    "javascript": JAVASCRIPT_TEMPLATE,
    "python": PYTHON_TEMPLATE,
}


def get_template(language: str) -> str:
    """Echo server source for a language.

    Raises:
        ValueError: If there is no template for the language
    """
    try:
        return TEMPLATES[language]
    except KeyError:
        msg = f"Unsupported template language: {language}"
        raise ValueError(msg) from None


CREATE_FROM_TEMPLATE_DESCRIPTION = f"""\
Create a new MCP server from a template.

Use one of the templates below as the starting point and adapt it to what the
user asked for: rename the tools, change their input schemas and implement
their behaviour while keeping the overall structure (a stdio MCP server).

TypeScript template:
```typescript
{TYPESCRIPT_TEMPLATE}```

JavaScript template (ES module):
```javascript
{JAVASCRIPT_TEMPLATE}```

Python template:
```python
{PYTHON_TEMPLATE}```

Notes:
- In TypeScript, narrow tool arguments explicitly (for example `as string`) or
  declare interfaces for complex argument shapes.
- Servers talk over stdin/stdout; write diagnostics to stderr only.
- Extra libraries go into `dependencies` as a name to version mapping,
  for example {{"axios": "^1.0.0"}} or {{"requests": ">=2.0"}}.
- Without `code`, the echo template for the language is used as-is.
"""
