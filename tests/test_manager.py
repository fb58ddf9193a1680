"""Tests for the server lifecycle controller, running real server processes."""

from __future__ import annotations

from collections.abc import Callable
import os
from pathlib import Path
import sys

import anyio
import pytest

from mcp_forge import (
    BuildFailedError,
    DependencyInstallFailedError,
    HandshakeFailedError,
    LaunchFailedError,
    LaunchSpec,
    PythonLanguage,
    ServerManager,
    ServerNotFoundError,
    ToolInvocationFailedError,
    UnsupportedLanguageError,
)
from mcp_forge_config import ForgeConfig


UPDATED_ECHO = '''\
from mcp.server.fastmcp import FastMCP

mcp = FastMCP("echo-server")


@mcp.tool()
def echo(message: str) -> str:
    """Echo back a message"""
    return f"Updated: {message}"


if __name__ == "__main__":
    mcp.run()
'''

HANGING_TOOL = '''
@mcp.tool()
async def hang() -> str:
    """Never returns."""
    Path("started").touch()
    await asyncio.sleep(600)
    return "done"
'''

ORDERED_TOOLS = '''
@mcp.tool()
def zeta() -> str:
    """Registered first."""
    return "z"


@mcp.tool()
def alpha() -> str:
    """Registered second."""
    return "a"
'''

FAILING_TOOL = '''
@mcp.tool()
def explode() -> str:
    """Always fails."""
    raise ValueError("kaboom")
'''


class BadInterpreterPython(PythonLanguage):
    def resolve_launch(self, working_dir: Path, entry: Path) -> LaunchSpec:
        return LaunchSpec(command="/nonexistent/interpreter", args=[str(entry)], cwd=working_dir)


class LocalModulePython(PythonLanguage):
    """Python strategy whose installer drops a module into site-packages."""

    def install_command(self, working_dir: Path) -> list[str]:
        script = (
            "import pathlib; p = pathlib.Path('site-packages'); p.mkdir(); "
            "(p / 'greeting.py').write_text('WORD = \"installed\"')"
        )
        return [sys.executable, "-c", script]


async def wait_until_gone(manager: ServerManager, server_id: str, timeout: float = 10.0):
    with anyio.fail_after(timeout):
        while server_id in await manager.list_servers():
            await anyio.sleep(0.05)


def text_of(result: dict) -> str:
    return result["content"][0]["text"]


async def test_create_list_tools_and_invoke(forge_config: ForgeConfig, echo_source: str):
    """Test the basic create / listTools / invoke round trip."""
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(echo_source, "python")
        assert server_id in await manager.list_servers()

        tools = await manager.list_tools(server_id)
        assert [tool["name"] for tool in tools] == ["echo"]
        assert "message" in tools[0]["inputSchema"]["properties"]

        result = await manager.invoke(server_id, "echo", {"message": "hi"})
        assert text_of(result) == "Echo: hi"

        session = await manager.get_session(server_id)
        assert session.status == "running"
        assert session.language == "python"


async def test_tools_keep_server_order(
    forge_config: ForgeConfig, python_server: Callable[..., str]
):
    """Test that tool descriptors are not re-sorted."""
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(python_server(ORDERED_TOOLS), "python")
        tools = await manager.list_tools(server_id)
        assert [tool["name"] for tool in tools] == ["zeta", "alpha"]


async def test_concurrent_calls_on_one_server(forge_config: ForgeConfig, echo_source: str):
    """Test that concurrent invocations get their own results."""
    results: dict[int, str] = {}
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(echo_source, "python")

        async def call(i: int):
            result = await manager.invoke(server_id, "echo", {"message": str(i)})
            results[i] = text_of(result)

        async with anyio.create_task_group() as tg:
            for i in range(10):
                tg.start_soon(call, i)

    assert results == {i: f"Echo: {i}" for i in range(10)}


async def test_unknown_ids_are_not_found(forge_config: ForgeConfig):
    """Test that operations on ids that never existed raise ServerNotFoundError."""
    async with ServerManager(forge_config) as manager:
        with pytest.raises(ServerNotFoundError):
            await manager.list_tools("missing")
        with pytest.raises(ServerNotFoundError):
            await manager.invoke("missing", "echo", {})
        with pytest.raises(ServerNotFoundError):
            await manager.update("missing", "x = 1")
        with pytest.raises(ServerNotFoundError):
            await manager.delete("missing")


async def test_delete_twice(forge_config: ForgeConfig, echo_source: str):
    """Test that deleting removes process and directory, and a second delete fails."""
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(echo_source, "python")
        session = await manager.get_session(server_id)

        await manager.delete(server_id)

        assert server_id not in await manager.list_servers()
        assert not session.working_dir.exists()
        assert session.process.returncode is not None
        assert session.status == "terminated"
        with pytest.raises(ServerNotFoundError):
            await manager.delete(server_id)
        with pytest.raises(ServerNotFoundError):
            await manager.invoke(server_id, "echo", {"message": "hi"})


async def test_update_replaces_server(forge_config: ForgeConfig, echo_source: str):
    """Test that update yields a new id running the new source."""
    async with ServerManager(forge_config) as manager:
        old_id = await manager.create(echo_source, "python")
        old_session = await manager.get_session(old_id)

        new_id = await manager.update(old_id, UPDATED_ECHO)

        assert new_id != old_id
        assert await manager.list_servers() == [new_id]
        assert old_session.process.returncode is not None
        assert not old_session.working_dir.exists()
        with pytest.raises(ServerNotFoundError):
            await manager.invoke(old_id, "echo", {"message": "hi"})
        result = await manager.invoke(new_id, "echo", {"message": "hi"})
        assert text_of(result) == "Updated: hi"


async def test_update_keeps_dependencies(forge_config: ForgeConfig):
    """Test that the replacement is installed with the original dependency manifest."""
    source = "import greeting\n" + (
        "from mcp.server.fastmcp import FastMCP\n"
        "mcp = FastMCP('deps')\n\n"
        "@mcp.tool()\n"
        "def word() -> str:\n"
        "    return greeting.WORD\n\n"
        "if __name__ == '__main__':\n"
        "    mcp.run()\n"
    )
    languages = {"python": LocalModulePython(forge_config)}
    async with ServerManager(forge_config, languages=languages) as manager:
        server_id = await manager.create(source, "python", {"greeting": "1.0"})
        assert text_of(await manager.invoke(server_id, "word", {})) == "installed"

        new_source = source.replace("return greeting", "return '!' + greeting")
        new_id = await manager.update(server_id, new_source)
        session = await manager.get_session(new_id)
        assert session.dependencies == {"greeting": "1.0"}
        assert text_of(await manager.invoke(new_id, "word", {})) == "!installed"


async def test_external_kill_removes_server(forge_config: ForgeConfig, echo_source: str):
    """Test that a server killed outside the manager disappears from the listing."""
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(echo_source, "python")
        session = await manager.get_session(server_id)

        session.process.kill()

        await wait_until_gone(manager, server_id)
        with anyio.fail_after(10):
            await session.finished.wait()
        assert not session.working_dir.exists()
        with pytest.raises(ServerNotFoundError):
            await manager.list_tools(server_id)


async def test_in_flight_call_fails_when_process_dies(
    forge_config: ForgeConfig, python_server: Callable[..., str]
):
    """Test that killing the process surfaces as ToolInvocationFailedError to waiters."""
    errors: list[BaseException] = []
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(python_server(HANGING_TOOL), "python")
        session = await manager.get_session(server_id)

        async def call():
            try:
                await manager.invoke(server_id, "hang", {})
            except ToolInvocationFailedError as exc:
                errors.append(exc)

        async with anyio.create_task_group() as tg:
            tg.start_soon(call)
            with anyio.fail_after(10):
                while not (session.working_dir / "started").exists():
                    await anyio.sleep(0.05)
            session.process.kill()

    assert len(errors) == 1


async def test_delete_fails_in_flight_calls(
    forge_config: ForgeConfig, python_server: Callable[..., str]
):
    """Test that deleting a server releases callers waiting on it."""
    errors: list[BaseException] = []
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(python_server(HANGING_TOOL), "python")
        session = await manager.get_session(server_id)

        async def call():
            try:
                await manager.invoke(server_id, "hang", {})
            except ToolInvocationFailedError as exc:
                errors.append(exc)

        async with anyio.create_task_group() as tg:
            tg.start_soon(call)
            with anyio.fail_after(10):
                while not (session.working_dir / "started").exists():
                    await anyio.sleep(0.05)
            await manager.delete(server_id)

    assert len(errors) == 1


async def test_tool_error_is_reported_verbatim(
    forge_config: ForgeConfig, python_server: Callable[..., str]
):
    """Test that a failing tool raises ToolInvocationFailedError with the child's payload."""
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(python_server(FAILING_TOOL), "python")
        with pytest.raises(ToolInvocationFailedError) as exc_info:
            await manager.invoke(server_id, "explode", {})
        assert exc_info.value.payload["isError"] is True
        assert "kaboom" in exc_info.value.payload["content"][0]["text"]
        assert server_id in await manager.list_servers()


async def test_concurrent_creates_yield_unique_ids(forge_config: ForgeConfig, echo_source: str):
    """Test that parallel creates never collide."""
    ids: list[str] = []
    async with ServerManager(forge_config) as manager:

        async def create():
            ids.append(await manager.create(echo_source, "python"))

        async with anyio.create_task_group() as tg:
            for _ in range(3):
                tg.start_soon(create)

        assert len(set(ids)) == 3
        assert sorted(await manager.list_servers()) == sorted(ids)


async def test_shutdown_all(forge_config: ForgeConfig, echo_source: str):
    """Test that shutdown_all stops everything and empties the registry."""
    async with ServerManager(forge_config) as manager:
        first = await manager.create(echo_source, "python")
        second = await manager.create(echo_source, "python")
        sessions = [await manager.get_session(i) for i in (first, second)]

        await manager.shutdown_all()

        assert await manager.list_servers() == []
        for session in sessions:
            assert session.process.returncode is not None
            assert not session.working_dir.exists()


async def test_exiting_manager_stops_servers(forge_config: ForgeConfig, echo_source: str):
    """Test that leaving the context shuts down running servers."""
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(echo_source, "python")
        session = await manager.get_session(server_id)
    assert session.process.returncode is not None
    assert not session.working_dir.exists()


async def test_create_requires_running_manager(forge_config: ForgeConfig, echo_source: str):
    """Test that create outside the context manager is rejected."""
    manager = ServerManager(forge_config)
    with pytest.raises(RuntimeError, match="not running"):
        await manager.create(echo_source, "python")


async def test_unsupported_language(forge_config: ForgeConfig, servers_dir: Path):
    """Test that unknown languages are rejected without side effects."""
    async with ServerManager(forge_config) as manager:
        with pytest.raises(UnsupportedLanguageError):
            await manager.create("puts 'hi'", "ruby")
        assert await manager.list_servers() == []
    assert list(servers_dir.iterdir()) == []


async def test_build_failure_leaves_nothing(forge_config: ForgeConfig, servers_dir: Path):
    """Test that invalid source fails with BuildFailedError and registers nothing."""
    async with ServerManager(forge_config) as manager:
        with pytest.raises(BuildFailedError):
            await manager.create("def broken(:\n", "python")
        assert await manager.list_servers() == []
    assert list(servers_dir.iterdir()) == []


async def test_dependency_install_failure(forge_config: ForgeConfig, servers_dir: Path):
    """Test that a failed install aborts creation."""
    config = forge_config.model_copy(update={"pip_args": ["--no-index"]})
    async with ServerManager(config) as manager:
        with pytest.raises(DependencyInstallFailedError) as exc_info:
            await manager.create("x = 1\n", "python", {"surely-not-a-real-package-xyz": "*"})
        assert exc_info.value.exit_code != 0
        assert await manager.list_servers() == []
    assert list(servers_dir.iterdir()) == []


async def test_launch_failure(forge_config: ForgeConfig, servers_dir: Path, echo_source: str):
    """Test that an unstartable interpreter fails with LaunchFailedError."""
    languages = {"python": BadInterpreterPython(forge_config)}
    async with ServerManager(forge_config, languages=languages) as manager:
        with pytest.raises(LaunchFailedError):
            await manager.create(echo_source, "python")
        assert await manager.list_servers() == []
    assert list(servers_dir.iterdir()) == []


async def test_process_exiting_before_handshake(forge_config: ForgeConfig, servers_dir: Path):
    """Test that a process that exits immediately fails the handshake."""
    async with ServerManager(forge_config) as manager:
        with pytest.raises(HandshakeFailedError):
            await manager.create("import sys\nsys.exit(1)\n", "python")
        assert await manager.list_servers() == []
    assert list(servers_dir.iterdir()) == []


async def test_handshake_timeout(servers_dir: Path):
    """Test that a process that never speaks MCP fails the handshake and is stopped."""
    config = ForgeConfig(
        servers_dir=servers_dir,
        node_project_dir=None,
        shared_node_modules=None,
        handshake_timeout=1.0,
        shutdown_timeout=1.0,
    )
    source = "import time\nprint('hello there', flush=True)\ntime.sleep(60)\n"
    async with ServerManager(config) as manager:
        with anyio.fail_after(20), pytest.raises(HandshakeFailedError, match="handshake"):
            await manager.create(source, "python")
        assert await manager.list_servers() == []
    assert list(servers_dir.iterdir()) == []


async def test_non_protocol_output_is_ignored(
    forge_config: ForgeConfig, python_server: Callable[..., str]
):
    """Test that stray stdout lines do not break the connection."""
    source = "print('starting up', flush=True)\n" + python_server(
        '@mcp.tool()\ndef ping() -> str:\n    return "pong"\n'
    )
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(source, "python")
        assert text_of(await manager.invoke(server_id, "ping", {})) == "pong"


@pytest.mark.network
@pytest.mark.skipif(
    os.environ.get("MCP_FORGE_NETWORK_TESTS") != "1",
    reason="set MCP_FORGE_NETWORK_TESTS=1 to install from the package index",
)
async def test_python_dependency_from_index(
    forge_config: ForgeConfig, python_server: Callable[..., str]
):
    """Test installing a real dependency before launch."""
    body = (
        "@mcp.tool()\n"
        "def requests_version() -> str:\n"
        "    import requests\n"
        "    return requests.__version__\n"
    )
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(python_server(body), "python", {"requests": ">=2.0"})
        session = await manager.get_session(server_id)
        assert (session.working_dir / "site-packages" / "requests").is_dir()
        result = await manager.invoke(server_id, "requests_version", {})
        assert text_of(result).startswith("2.")


async def test_delete_racing_spontaneous_exit(forge_config: ForgeConfig, echo_source: str):
    """Test that delete and a process death at the same moment tear down exactly once."""
    outcomes: list[str] = []
    async with ServerManager(forge_config) as manager:
        server_id = await manager.create(echo_source, "python")
        session = await manager.get_session(server_id)

        async def delete():
            try:
                await manager.delete(server_id)
            except ServerNotFoundError:
                outcomes.append("not found")
            else:
                outcomes.append("deleted")

        with anyio.fail_after(20):
            async with anyio.create_task_group() as tg:
                session.process.kill()
                tg.start_soon(delete)
            await session.finished.wait()

        assert len(outcomes) == 1
        assert await manager.list_servers() == []
        assert not session.working_dir.exists()
        assert session.status == "terminated"
