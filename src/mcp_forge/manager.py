"""Lifecycle controller for dynamically created MCP servers."""

from __future__ import annotations

import contextlib
from contextlib import AsyncExitStack
from functools import partial
import math
from typing import TYPE_CHECKING, Any
import uuid

import anyio
from mcp import McpError, types

from mcp_forge.client import StdioToolClient
from mcp_forge.exceptions import (
    ClientClosedError,
    ForgeError,
    HandshakeFailedError,
    ServerNotFoundError,
    ToolInvocationFailedError,
    collapse_exception_group,
)
from mcp_forge.launcher import ProcessLauncher
from mcp_forge.log import get_logger
from mcp_forge.models import ServerSession
from mcp_forge.pipeline import BuildPipeline
from mcp_forge.registry import SessionRegistry
from mcp_forge_config import ForgeConfig


if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Self

    from anyio.abc import Process, TaskGroup, TaskStatus

    from mcp_forge.languages import Language
    from mcp_forge.pipeline import BuildArtifact


logger = get_logger(__name__)


class ServerManager:
    """Builds, runs and tears down MCP servers from submitted source.

    Every server is owned by one runner task inside the manager's task group.
    That task is the only place a server is torn down, whether it was deleted,
    replaced, or its process died on its own.

    Example:
        async with ServerManager() as manager:
            server_id = await manager.create(source, "python")
            result = await manager.invoke(server_id, "echo", {"message": "hi"})
    """

    def __init__(
        self,
        config: ForgeConfig | None = None,
        *,
        languages: Mapping[str, Language] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Lifecycle configuration (defaults apply when omitted)
            languages: Build strategies by tag, replacing the built-in ones
        """
        self.config = config or ForgeConfig()
        self.pipeline = BuildPipeline(self.config, languages)
        self.launcher = ProcessLauncher(self.config.search_paths)
        self.registry = SessionRegistry()
        self.client_info = types.Implementation(
            name=self.config.client_name, version=self.config.client_version
        )
        self._exits_send, self._exits_receive = anyio.create_memory_object_stream[
            tuple[str, int | None]
        ](math.inf)
        self._exit_stack = AsyncExitStack()
        self._task_group: TaskGroup | None = None

    async def __aenter__(self) -> Self:
        self.config.servers_dir.mkdir(parents=True, exist_ok=True)
        task_group = await self._exit_stack.enter_async_context(anyio.create_task_group())
        self._exit_stack.push_callback(task_group.cancel_scope.cancel)
        self._exit_stack.push_async_callback(self.shutdown_all)
        task_group.start_soon(self._reap_exits)
        self._task_group = task_group
        logger.debug("Server manager started", servers_dir=str(self.config.servers_dir))
        return self

    async def __aexit__(self, *_args: object) -> None:
        self._task_group = None
        await self._exit_stack.aclose()
        logger.debug("Server manager stopped")

    async def create(
        self,
        source: str,
        language: str,
        dependencies: Mapping[str, str] | None = None,
    ) -> str:
        """Build, launch and connect a new server.

        Nothing is registered and nothing is left on disk when this fails.

        Args:
            source: Server source text
            language: Language tag ("typescript", "javascript", "python")
            dependencies: Package name to version constraint

        Returns:
            The new server's id

        Raises:
            UnsupportedLanguageError: Unknown language tag
            DependencyInstallFailedError: Dependency installation failed
            BuildFailedError: Compilation or syntax check failed
            LaunchFailedError: The process could not be spawned
            HandshakeFailedError: The process never completed MCP initialization
        """
        task_group = self._task_group
        if task_group is None:
            msg = "ServerManager is not running, use it as an async context manager"
            raise RuntimeError(msg)
        session_id = str(uuid.uuid4())
        artifact = await self.pipeline.build(session_id, source, language, dependencies)
        try:
            session: ServerSession = await task_group.start(self._run_session, artifact)
        except ForgeError:
            raise
        except Exception as exc:
            error = collapse_exception_group(exc)
            if isinstance(error, ForgeError):
                raise error from None
            msg = f"Server {session_id} failed to start: {error}"
            raise HandshakeFailedError(msg) from exc
        logger.info("Created server", session_id=session.id, language=language, pid=session.pid)
        return session.id

    async def list_tools(self, server_id: str) -> list[dict[str, Any]]:
        """Tool descriptors of a running server, in the server's order.

        Raises:
            ServerNotFoundError: If the id is not running
            ToolInvocationFailedError: If the server answers with an error
        """
        session = await self.registry.get(server_id)
        try:
            return await session.client.list_tools()
        except McpError as exc:
            payload = exc.error.model_dump(exclude_none=True)
            raise ToolInvocationFailedError(server_id, "tools/list", payload) from exc
        except ClientClosedError as exc:
            raise ServerNotFoundError(server_id) from exc

    async def invoke(
        self, server_id: str, tool_name: str, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Call a tool on a running server.

        Returns:
            The tool result as a protocol-shaped dict

        Raises:
            ServerNotFoundError: If the id is not running
            ToolInvocationFailedError: If the tool reports an error, or the process
                goes away while the call is in flight
        """
        session = await self.registry.get(server_id)
        try:
            result = await session.client.call_tool(tool_name, arguments)
        except McpError as exc:
            payload = exc.error.model_dump(exclude_none=True)
            raise ToolInvocationFailedError(server_id, tool_name, payload) from exc
        except ClientClosedError as exc:
            payload = {"message": "Server process exited during the call"}
            raise ToolInvocationFailedError(server_id, tool_name, payload) from exc
        data = result.model_dump(by_alias=True, exclude_none=True)
        if result.isError:
            raise ToolInvocationFailedError(server_id, tool_name, data)
        return data

    async def update(self, server_id: str, source: str) -> str:
        """Replace a server with one built from new source.

        The old server is fully torn down first. The replacement gets a new id,
        keeps the language and dependency manifest, and the old id stays invalid.

        Raises:
            ServerNotFoundError: If the id is not running
            ForgeError: Any error `create` can raise for the new source
        """
        session = await self.registry.pop(server_id)
        if session is None:
            raise ServerNotFoundError(server_id)
        logger.info("Replacing server", session_id=server_id)
        await self._stop(session)
        return await self.create(source, session.language, session.dependencies or None)

    async def delete(self, server_id: str) -> None:
        """Stop a server and remove its working directory.

        Returns once the process is reaped and the directory is gone.

        Raises:
            ServerNotFoundError: If the id is not running
        """
        session = await self.registry.pop(server_id)
        if session is None:
            raise ServerNotFoundError(server_id)
        logger.info("Deleting server", session_id=server_id)
        await self._stop(session)

    async def list_servers(self) -> list[str]:
        """Ids of all running servers."""
        return await self.registry.snapshot()

    async def get_session(self, server_id: str) -> ServerSession:
        return await self.registry.get(server_id)

    async def shutdown_all(self) -> None:
        """Stop every server concurrently. Failures are logged, never raised."""
        while sessions := await self.registry.drain():
            logger.info("Shutting down servers", count=len(sessions))
            async with anyio.create_task_group() as tg:
                for session in sessions:
                    tg.start_soon(self._stop, session)

    async def _stop(self, session: ServerSession) -> None:
        session.stop_requested.set()
        await session.finished.wait()

    async def _run_session(
        self,
        artifact: BuildArtifact,
        *,
        task_status: TaskStatus[ServerSession] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        session_id = artifact.session_id
        process: Process | None = None
        session: ServerSession | None = None
        failure: BaseException | None = None
        started = False
        try:
            process = await self.launcher.spawn(artifact.launch)
            async with anyio.create_task_group() as tg:
                tg.start_soon(self.launcher.drain_stderr, process, session_id)
                client = StdioToolClient(
                    process,
                    client_info=self.client_info,
                    handshake_timeout=self.config.handshake_timeout,
                    session_id=session_id,
                )
                async with client:
                    session = ServerSession(
                        id=session_id,
                        language=artifact.language,
                        working_dir=artifact.working_dir,
                        process=process,
                        client=client,
                        dependencies=dict(artifact.dependencies),
                    )
                    await self.registry.add(session)
                    session.status = "running"
                    on_exit = partial(self._report_exit, session_id)
                    tg.start_soon(self.launcher.watch_exit, process, on_exit)
                    task_status.started(session)
                    started = True
                    await session.stop_requested.wait()
                await self.launcher.terminate(process, self.config.shutdown_timeout)
                tg.cancel_scope.cancel()
        except Exception as exc:
            if not started:
                failure = collapse_exception_group(exc)
                raise
            logger.exception("Server session failed", session_id=session_id)
        finally:
            with anyio.CancelScope(shield=True):
                if process is not None:
                    exit_code = await self.launcher.terminate(
                        process, self.config.shutdown_timeout
                    )
                    with contextlib.suppress(OSError):
                        await process.aclose()
                    logger.debug("Server process reaped", session_id=session_id, code=exit_code)
                await self.registry.pop(session_id)
                await self.pipeline.cleanup(artifact.working_dir, primary=failure)
            if session is not None:
                session.status = "terminated"
                session.finished.set()

    async def _report_exit(self, session_id: str, exit_code: int | None) -> None:
        with contextlib.suppress(anyio.ClosedResourceError, anyio.BrokenResourceError):
            await self._exits_send.send((session_id, exit_code))

    async def _reap_exits(self) -> None:
        """Remove servers whose process ended without being asked to."""
        async with self._exits_receive:
            async for session_id, exit_code in self._exits_receive:
                session = await self.registry.pop(session_id)
                if session is None:
                    continue
                logger.warning("Server exited unexpectedly", session_id=session_id, code=exit_code)
                session.stop_requested.set()
