"""mcp_forge: build and run MCP servers from submitted source."""

from __future__ import annotations

from mcp_forge.client import StdioToolClient
from mcp_forge.exceptions import (
    BuildFailedError,
    CleanupError,
    ClientClosedError,
    DependencyInstallFailedError,
    ForgeError,
    HandshakeFailedError,
    LaunchFailedError,
    ServerNotFoundError,
    ToolInvocationFailedError,
    UnsupportedLanguageError,
)
from mcp_forge.languages import (
    JavaScriptLanguage,
    Language,
    PythonLanguage,
    TypeScriptLanguage,
    default_languages,
)
from mcp_forge.launcher import LaunchSpec, ProcessLauncher, resolve_command_path
from mcp_forge.manager import ServerManager
from mcp_forge.models import ServerSession, SessionStatus
from mcp_forge.pipeline import BuildArtifact, BuildPipeline
from mcp_forge.registry import SessionRegistry

__all__ = [
    "BuildArtifact",
    "BuildFailedError",
    "BuildPipeline",
    "CleanupError",
    "ClientClosedError",
    "DependencyInstallFailedError",
    "ForgeError",
    "HandshakeFailedError",
    "JavaScriptLanguage",
    "Language",
    "LaunchFailedError",
    "LaunchSpec",
    "ProcessLauncher",
    "PythonLanguage",
    "ServerManager",
    "ServerNotFoundError",
    "ServerSession",
    "SessionRegistry",
    "SessionStatus",
    "StdioToolClient",
    "ToolInvocationFailedError",
    "TypeScriptLanguage",
    "UnsupportedLanguageError",
    "default_languages",
    "resolve_command_path",
]
