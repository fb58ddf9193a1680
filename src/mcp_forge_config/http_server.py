"""HTTP façade configuration."""

from __future__ import annotations

import sys

from pydantic import ConfigDict, Field
from schemez import Schema


class HttpServerConfig(Schema):
    """Configuration for the stateless HTTP façade.

    Each POST is relayed to a fresh worker process over stdio; nothing is shared
    with the server registry.
    """

    host: str = Field(
        default="0.0.0.0",
        title="Server host",
        examples=["0.0.0.0", "127.0.0.1", "localhost"],
    )
    """Host to bind the HTTP server to."""

    port: int = Field(default=8080, gt=0, title="Server port", examples=[8080, 3000])
    """Port to listen on."""

    worker_command: list[str] = Field(
        default_factory=lambda: [sys.executable, "-m", "mcp_forge_server"],
        title="Worker command",
        examples=[["python", "-m", "mcp_forge_server"], ["node", "build/index.js"]],
    )
    """Command spawned once per request; receives the request body on stdin."""

    model_config = ConfigDict(frozen=True)
