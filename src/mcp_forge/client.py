"""MCP client session over a spawned process's stdin and stdout."""

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any, TypeVar

import anyio
from anyio.streams.text import TextReceiveStream
from mcp import ClientSession, types
from mcp.shared.message import SessionMessage
from pydantic import ValidationError

from mcp_forge.exceptions import ClientClosedError, HandshakeFailedError
from mcp_forge.log import get_logger


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import Self

    from anyio.abc import Process
    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream


logger = get_logger(__name__)

T = TypeVar("T")


class StdioToolClient:
    """Protocol adapter for one server process.

    Newline-delimited JSON-RPC messages are pumped between the process pipes and
    an `mcp.ClientSession`, which correlates concurrent requests. Once the
    process's stdout closes, every in-flight call fails with `ClientClosedError`.

    Must be entered and exited from the same task.
    """

    def __init__(
        self,
        process: Process,
        *,
        client_info: types.Implementation | None = None,
        handshake_timeout: float | None = 60.0,
        session_id: str = "",
    ) -> None:
        self._process = process
        self._client_info = client_info or types.Implementation(
            name="mcp-create-client", version="1.0.0"
        )
        self._handshake_timeout = handshake_timeout
        self._session_id = session_id
        self._exit_stack = AsyncExitStack()
        self._session: ClientSession | None = None
        self._in_flight: set[anyio.CancelScope] = set()
        self._eof = anyio.Event()
        self._closed = False
        self.server_info: types.InitializeResult | None = None

    async def __aenter__(self) -> Self:
        try:
            await self._connect()
        except BaseException:
            await self.aclose()
            raise
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.aclose()

    @property
    def connected(self) -> bool:
        return self._session is not None and not self._closed and not self._eof.is_set()

    async def _connect(self) -> None:
        read_send, read_receive = anyio.create_memory_object_stream[SessionMessage | Exception](0)
        write_send, write_receive = anyio.create_memory_object_stream[SessionMessage](0)

        self._exit_stack.push_async_callback(self._close_stdin)
        task_group = await self._exit_stack.enter_async_context(anyio.create_task_group())
        self._exit_stack.push_callback(task_group.cancel_scope.cancel)
        task_group.start_soon(self._read_stdout, read_send)
        task_group.start_soon(self._write_stdin, write_receive)

        session = ClientSession(read_receive, write_send, client_info=self._client_info)
        self._session = await self._exit_stack.enter_async_context(session)
        try:
            with anyio.fail_after(self._handshake_timeout):
                self.server_info = await self._request(self._session.initialize)
        except TimeoutError:
            msg = f"No handshake response within {self._handshake_timeout}s"
            raise HandshakeFailedError(msg) from None
        except ClientClosedError:
            code = self._process.returncode
            msg = f"Process exited before completing the handshake (code {code})"
            raise HandshakeFailedError(msg) from None
        except Exception as exc:
            msg = f"Handshake rejected: {exc}"
            raise HandshakeFailedError(msg) from exc
        logger.debug(
            "Handshake complete",
            session_id=self._session_id,
            server=self.server_info.serverInfo.name,
            protocol_version=self.server_info.protocolVersion,
        )

    async def _read_stdout(
        self, send_stream: MemoryObjectSendStream[SessionMessage | Exception]
    ) -> None:
        assert self._process.stdout
        buffer = ""
        async with send_stream:
            try:
                async for chunk in TextReceiveStream(self._process.stdout, errors="replace"):
                    *lines, buffer = (buffer + chunk).split("\n")
                    for line in lines:
                        if not line.strip():
                            continue
                        try:
                            message = types.JSONRPCMessage.model_validate_json(line)
                        except ValidationError:
                            logger.warning(
                                "Ignoring non-protocol output",
                                session_id=self._session_id,
                                line=line[:200],
                            )
                            continue
                        await send_stream.send(SessionMessage(message))
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                pass
        self._on_eof()

    async def _write_stdin(
        self, receive_stream: MemoryObjectReceiveStream[SessionMessage]
    ) -> None:
        assert self._process.stdin
        async with receive_stream:
            try:
                async for session_message in receive_stream:
                    payload = session_message.message.model_dump_json(
                        by_alias=True, exclude_none=True
                    )
                    await self._process.stdin.send(f"{payload}\n".encode())
            except (anyio.ClosedResourceError, anyio.BrokenResourceError, OSError) as exc:
                logger.debug("Server stdin closed", session_id=self._session_id, error=str(exc))
                self._on_eof()

    async def _close_stdin(self) -> None:
        if self._process.stdin is None:
            return
        try:
            await self._process.stdin.aclose()
        except (anyio.ClosedResourceError, anyio.BrokenResourceError, OSError):
            pass

    def _on_eof(self) -> None:
        if not self._eof.is_set():
            logger.debug("Server connection closed", session_id=self._session_id)
        self._eof.set()
        for scope in list(self._in_flight):
            scope.cancel()

    async def _request(self, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        if self._session is None or self._closed or self._eof.is_set():
            raise ClientClosedError
        with anyio.CancelScope() as scope:
            self._in_flight.add(scope)
            try:
                return await func(*args)
            except (anyio.ClosedResourceError, anyio.BrokenResourceError) as exc:
                raise ClientClosedError from exc
            finally:
                self._in_flight.discard(scope)
        raise ClientClosedError

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise ClientClosedError("Not connected")
        return self._session

    async def list_tools(self) -> list[dict[str, Any]]:
        """Tool descriptors in the order the server reports them."""
        result = await self._request(self._require_session().list_tools)
        return [tool.model_dump(by_alias=True, exclude_none=True) for tool in result.tools]

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> types.CallToolResult:
        """Invoke a tool on the server.

        Raises:
            ClientClosedError: If the connection is (or becomes) unusable
            McpError: If the server answers with an error response
        """
        session = self._require_session()
        return await self._request(session.call_tool, name, arguments or {})

    async def aclose(self) -> None:
        """Stop accepting requests, cancel in-flight calls and release the streams."""
        self._closed = True
        for scope in list(self._in_flight):
            scope.cancel()
        await self._exit_stack.aclose()
