"""Server lifecycle configuration."""

from __future__ import annotations

from pathlib import Path
import sys
import tempfile
from typing import Self

from pydantic import ConfigDict, Field
from schemez import Schema

from mcp_forge_config.http_server import HttpServerConfig


DEFAULT_SEARCH_PATHS = [
    "/usr/local/bin",
    "/usr/bin",
    "/bin",
    "/usr/local/sbin",
    "/usr/sbin",
    "/sbin",
]


class ForgeConfig(Schema):
    """Configuration for building, launching and supervising dynamic MCP servers."""

    servers_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "mcp-create-servers",
        title="Servers directory",
        examples=["/tmp/mcp-create-servers"],
    )
    """Parent directory of the per-server working directories."""

    search_paths: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SEARCH_PATHS),
        title="Executable search paths",
    )
    """Directories probed (in order) to resolve bare command names.

    The inherited PATH is not trusted, commands found nowhere are used verbatim.
    """

    node_project_dir: Path | None = Field(
        default=Path("/app"),
        title="Host Node project",
        examples=["/app"],
    )
    """Node project providing the MCP SDK dependencies and the TypeScript compiler."""

    shared_node_modules: Path | None = Field(
        default=Path("/app/node_modules"),
        title="Shared node_modules",
    )
    """Pre-installed node_modules linked into servers that declare no dependencies."""

    shared_site_packages: Path | None = Field(default=None, title="Shared site-packages")
    """Pre-installed Python packages linked into servers that declare no dependencies."""

    python_command: str = Field(default=sys.executable, title="Python interpreter")
    """Interpreter running Python servers and pip."""

    node_command: str = Field(default="node", title="Node command")
    npm_command: str = Field(default="npm", title="npm command")
    npx_command: str = Field(default="npx", title="npx command")

    pip_args: list[str] = Field(
        default_factory=list,
        title="Extra pip arguments",
        examples=[["--retries", "0"], ["--index-url", "https://pypi.internal/simple"]],
    )
    """Additional arguments appended to every pip install."""

    build_timeout: float | None = Field(default=None, gt=0, title="Build timeout")
    """Seconds a compile step may take. None blocks until the compiler exits."""

    install_timeout: float | None = Field(default=None, gt=0, title="Install timeout")
    """Seconds a dependency install may take. None blocks until it exits."""

    handshake_timeout: float | None = Field(default=60.0, gt=0, title="Handshake timeout")
    """Seconds to wait for the MCP initialize exchange."""

    shutdown_timeout: float = Field(default=5.0, ge=0, title="Shutdown grace period")
    """Seconds between SIGTERM and SIGKILL when stopping a server."""

    client_name: str = Field(default="mcp-create-client", title="Client name")
    client_version: str = Field(default="1.0.0", title="Client version")

    stderr_excerpt_limit: int = Field(default=2000, gt=0, title="stderr excerpt length")
    """Trailing characters of build tool stderr kept in error messages."""

    http: HttpServerConfig = Field(default_factory=HttpServerConfig, title="HTTP façade")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_file(cls, path: str | Path) -> Self:
        """Load configuration from a YAML file.

        Args:
            path: Path to the configuration file

        Returns:
            Loaded configuration

        Raises:
            ValueError: If loading fails
        """
        import yamling

        try:
            data = yamling.load_yaml_file(path)
            return cls.model_validate(data or {})
        except Exception as exc:
            msg = f"Failed to load forge config from {path}"
            raise ValueError(msg) from exc
