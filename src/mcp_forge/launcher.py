"""Spawning and supervising server processes."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
import contextlib
from dataclasses import dataclass, field
import os
from pathlib import Path
import subprocess
from typing import TYPE_CHECKING, TypeAlias

import anyio
from anyio.streams.text import TextReceiveStream

from mcp_forge.exceptions import LaunchFailedError
from mcp_forge.log import get_logger
from mcp_forge_config import DEFAULT_SEARCH_PATHS


if TYPE_CHECKING:
    from anyio.abc import Process


logger = get_logger(__name__)

DEFAULT_PATH = "/usr/local/bin:/usr/bin:/bin"

ExitCallback: TypeAlias = Callable[[int | None], Awaitable[None]]


@dataclass(frozen=True)
class LaunchSpec:
    """Fully resolved command line for a server process."""

    command: str
    args: list[str] = field(default_factory=list)
    cwd: Path | None = None
    env: dict[str, str] = field(default_factory=dict)

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


def base_environment(**extra: str) -> dict[str, str]:
    """Host environment with a usable PATH, updated by `extra`."""
    env = dict(os.environ)
    env["PATH"] = env.get("PATH") or DEFAULT_PATH
    env.update(extra)
    return env


def resolve_command_path(
    command: str, search_paths: Sequence[str | os.PathLike[str]] = DEFAULT_SEARCH_PATHS
) -> str:
    """Resolve a bare command name to an absolute executable path.

    The directories are probed in order instead of relying on the inherited PATH.
    Absolute commands are returned as-is; unknown commands fall back to the bare name.

    Args:
        command: Command name or path
        search_paths: Ordered directories to probe

    Returns:
        Absolute path of the first match, or the command unchanged
    """
    if os.path.isabs(command) or os.sep in command:
        return command
    for directory in search_paths:
        candidate = Path(directory) / command
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
    return command


async def run_tool(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[bytes]:
    """Run an external build tool to completion, capturing its output.

    Raises:
        TimeoutError: If `timeout` expires first (the tool is killed)
        OSError: If the tool cannot be started
    """
    logger.debug("Running tool", command=list(command), cwd=str(cwd))
    with anyio.fail_after(timeout):
        return await anyio.run_process(list(command), cwd=cwd, env=env, check=False)


class ProcessLauncher:
    """Starts server processes and watches them until they are gone."""

    def __init__(self, search_paths: Sequence[str] = DEFAULT_SEARCH_PATHS) -> None:
        self.search_paths = list(search_paths)

    async def spawn(self, launch: LaunchSpec) -> Process:
        """Start a process with piped stdin, stdout and stderr.

        Raises:
            LaunchFailedError: If the executable cannot be started
        """
        command = resolve_command_path(launch.command, self.search_paths)
        argv = [command, *launch.args]
        try:
            process = await anyio.open_process(argv, cwd=launch.cwd, env=launch.env or None)
        except OSError as exc:
            raise LaunchFailedError(command, str(exc)) from exc
        logger.info("Spawned server process", command=argv, pid=process.pid)
        return process

    async def drain_stderr(self, process: Process, session_id: str = "") -> None:
        """Forward the process's stderr to the log, line by line, until EOF."""
        if process.stderr is None:
            return
        buffer = ""
        try:
            async for chunk in TextReceiveStream(process.stderr, errors="replace"):
                *lines, buffer = (buffer + chunk).split("\n")
                for line in lines:
                    if line.strip():
                        logger.debug("Server stderr", session_id=session_id, line=line)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            return
        if buffer.strip():
            logger.debug("Server stderr", session_id=session_id, line=buffer)

    async def watch_exit(self, process: Process, on_exit: ExitCallback) -> None:
        """Wait for the process to end, however that happens, then report it."""
        exit_code = await process.wait()
        await on_exit(exit_code)

    async def terminate(self, process: Process, grace: float = 5.0) -> int | None:
        """SIGTERM the process, SIGKILL it after `grace` seconds, and reap it.

        Safe to call on processes that already exited.
        """
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            with anyio.move_on_after(grace):
                await process.wait()
        if process.returncode is None:
            logger.warning("Process ignored SIGTERM, killing", pid=process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
        return process.returncode
