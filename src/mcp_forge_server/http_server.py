"""Stateless HTTP façade relaying requests to short-lived stdio workers.

Every POST spawns a fresh worker, writes the request body to its stdin and
answers with whatever the worker printed. Nothing is shared between requests.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import anyio
from fastapi import FastAPI, Request  # noqa: TC002
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from mcp_forge.launcher import resolve_command_path
from mcp_forge.log import get_logger
from mcp_forge_config import DEFAULT_SEARCH_PATHS, HttpServerConfig


if TYPE_CHECKING:
    from collections.abc import Sequence


logger = get_logger(__name__)

VERSION = "1.0.0"


async def relay_to_worker(command: Sequence[str], body: bytes) -> Response:
    """Run one worker to completion with `body` on stdin and translate its output."""
    try:
        result = await anyio.run_process(list(command), input=body, check=False)
    except OSError as exc:
        logger.exception("Failed to start MCP process", command=list(command))
        return JSONResponse(status_code=500, content={"error": str(exc)})

    stderr = result.stderr.decode("utf-8", errors="replace")
    if stderr:
        logger.debug("MCP stderr", output=stderr)
    if result.returncode != 0:
        logger.error("MCP process exited", code=result.returncode)
        return JSONResponse(
            status_code=500,
            content={"error": "MCP process failed", "details": stderr, "code": result.returncode},
        )

    stdout = result.stdout.decode("utf-8", errors="replace")
    try:
        return JSONResponse(content=json.loads(stdout))
    except ValueError:
        return PlainTextResponse(stdout)


def create_app(config: HttpServerConfig | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: HTTP façade configuration

    Returns:
        Configured FastAPI application.
    """
    config = config or HttpServerConfig()
    command = [resolve_command_path(config.worker_command[0], DEFAULT_SEARCH_PATHS)]
    command.extend(config.worker_command[1:])

    app = FastAPI(
        title="MCP Create HTTP Bridge",
        description="Forwards MCP requests to a freshly spawned stdio worker",
        version=VERSION,
    )
    app.state.http_config = config

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code in (404, 405):
            return JSONResponse(
                status_code=404,
                content={"error": "Not found", "path": request.url.path},
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok", "message": "MCP Server is running"}

    @app.post("/api/mcp")
    async def handle_mcp(request: Request) -> Response:
        """Relay one JSON request to a new worker process."""
        raw = await request.body()
        try:
            body = json.loads(raw) if raw.strip() else {}
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})
        payload = (json.dumps(body) + "\n").encode()
        logger.debug("Relaying MCP request", command=command, size=len(payload))
        return await relay_to_worker(command, payload)

    return app


class HttpBridgeServer:
    """HTTP façade server wrapper.

    Provides a convenient interface for running the server.
    """

    def __init__(self, config: HttpServerConfig | None = None) -> None:
        self.config = config or HttpServerConfig()
        self._app: FastAPI | None = None

    @property
    def app(self) -> FastAPI:
        """Get or create the FastAPI application."""
        if self._app is None:
            self._app = create_app(self.config)
        return self._app

    def run(self) -> None:
        """Run the server (blocking)."""
        import uvicorn

        logger.info("MCP HTTP Server starting", host=self.config.host, port=self.config.port)
        uvicorn.run(self.app, host=self.config.host, port=self.config.port, log_config=None)

    async def run_async(self) -> None:
        """Run the server asynchronously."""
        import uvicorn

        config = uvicorn.Config(
            self.app, host=self.config.host, port=self.config.port, log_config=None
        )
        server = uvicorn.Server(config)
        await server.serve()
