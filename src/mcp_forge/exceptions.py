"""Exceptions raised by the server lifecycle."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any


class ForgeError(Exception):
    """Base class for all lifecycle errors."""


class UnsupportedLanguageError(ForgeError):
    """Raised when source is submitted in a language without a build strategy."""

    def __init__(self, language: str, available: Sequence[str]):
        self.language = language
        msg = f"Unsupported language: {language}. Available: {', '.join(available)}"
        super().__init__(msg)


class _ToolFailure(ForgeError):
    """An external build tool exited unsuccessfully."""

    step: str = "Step"

    def __init__(self, exit_code: int | None, stderr_excerpt: str = ""):
        self.exit_code = exit_code
        self.stderr_excerpt = stderr_excerpt
        if exit_code is None:
            msg = f"{self.step} timed out"
        else:
            msg = f"{self.step} failed with code {exit_code}"
        if stderr_excerpt:
            msg = f"{msg}: {stderr_excerpt}"
        super().__init__(msg)


class BuildFailedError(_ToolFailure):
    """Raised when compiling (or syntax-checking) submitted source fails."""

    step = "Build"


class DependencyInstallFailedError(_ToolFailure):
    """Raised when the package manager cannot install a dependency manifest."""

    step = "Dependency installation"


class LaunchFailedError(ForgeError):
    """Raised when the server process cannot be spawned."""

    def __init__(self, command: str, reason: str):
        self.command = command
        super().__init__(f"Failed to launch {command!r}: {reason}")


class HandshakeFailedError(ForgeError):
    """Raised when the spawned process never completes MCP initialization."""


class ServerNotFoundError(ForgeError):
    """Raised for ids that are not (or no longer) registered."""

    def __init__(self, server_id: str):
        self.server_id = server_id
        super().__init__(f"Server {server_id} not found")


class ToolInvocationFailedError(ForgeError):
    """Raised when a tool call fails; carries the child's failure payload verbatim."""

    def __init__(self, server_id: str, tool_name: str, payload: Any):
        self.server_id = server_id
        self.tool_name = tool_name
        self.payload = payload
        super().__init__(f"Tool {tool_name!r} failed on server {server_id}: {payload}")


class CleanupError(ForgeError):
    """Secondary failure while releasing resources. Only ever logged."""

    def __init__(self, target: str, reason: str):
        self.target = target
        super().__init__(f"Error cleaning up {target}: {reason}")


class ClientClosedError(RuntimeError):
    """Raised by the protocol client once its connection is gone."""

    def __init__(self, reason: str = "Connection closed"):
        super().__init__(reason)


def iter_leaf_exceptions(exc: BaseException) -> Iterator[BaseException]:
    """Yield the non-group exceptions contained in a (possibly nested) group."""
    if isinstance(exc, BaseExceptionGroup):
        for inner in exc.exceptions:
            yield from iter_leaf_exceptions(inner)
    else:
        yield exc


def collapse_exception_group(exc: BaseException) -> BaseException:
    """Reduce an exception group raised by a task group to its most telling leaf.

    Prefers the first ForgeError, then the first non-cancellation exception.
    """
    if not isinstance(exc, BaseExceptionGroup):
        return exc
    leaves = list(iter_leaf_exceptions(exc))
    for leaf in leaves:
        if isinstance(leaf, ForgeError):
            return leaf
    for leaf in leaves:
        if isinstance(leaf, Exception):
            return leaf
    return exc
