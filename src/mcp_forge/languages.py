"""Per-language build and launch strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from mcp_forge.exceptions import BuildFailedError
from mcp_forge.launcher import LaunchSpec, base_environment, resolve_command_path, run_tool
from mcp_forge.log import get_logger


if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from mcp_forge.exceptions import _ToolFailure
    from mcp_forge_config import ForgeConfig


logger = get_logger(__name__)

SDK_PACKAGE_PREFIX = "@modelcontextprotocol"


def stderr_excerpt(output: bytes | None, limit: int) -> str:
    """Decode tool output and keep its trailing `limit` characters."""
    text = (output or b"").decode("utf-8", errors="replace").strip()
    return text[-limit:]


async def run_build_step(
    error_type: type[_ToolFailure],
    command: Sequence[str],
    *,
    cwd: Path | None,
    env: dict[str, str],
    timeout: float | None,
    excerpt_limit: int,
) -> None:
    """Run a build tool and translate an unsuccessful exit into `error_type`.

    A tool that cannot be started reports exit code 127, like a shell would.
    """
    try:
        result = await run_tool(command, cwd=cwd, env=env, timeout=timeout)
    except TimeoutError:
        raise error_type(None) from None
    except OSError as exc:
        raise error_type(127, str(exc)) from exc
    if result.returncode != 0:
        excerpt = stderr_excerpt(result.stderr or result.stdout, excerpt_limit)
        raise error_type(result.returncode, excerpt)


class Language(ABC):
    """Build and launch strategy for one source language."""

    name: ClassVar[str]
    source_filename: ClassVar[str]
    manifest_filename: ClassVar[str]
    dependency_dirname: ClassVar[str]

    def __init__(self, config: ForgeConfig) -> None:
        self.config = config

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    @abstractmethod
    def write_manifest(self, working_dir: Path, dependencies: Mapping[str, str]) -> Path:
        """Write the dependency manifest into the working directory."""

    @abstractmethod
    def install_command(self, working_dir: Path) -> list[str]:
        """Package manager invocation installing the written manifest."""

    @abstractmethod
    def shared_dependencies(self) -> Path | None:
        """Pre-installed dependency set linked in when no manifest is given."""

    @abstractmethod
    def resolve_launch(self, working_dir: Path, entry: Path) -> LaunchSpec:
        """Command line running the built entry point."""

    def tool_environment(self, working_dir: Path) -> dict[str, str]:
        """Environment for build tools and the package manager."""
        return base_environment()

    async def build(self, working_dir: Path, source_path: Path) -> Path:
        """Turn the written source into a runnable entry point.

        Returns:
            Absolute path of the entry point
        """
        return source_path

    async def _run(
        self, command: Sequence[str], cwd: Path | None, timeout: float | None
    ) -> None:
        await run_build_step(
            BuildFailedError,
            command,
            cwd=cwd,
            env=self.tool_environment(cwd or Path.cwd()),
            timeout=timeout,
            excerpt_limit=self.config.stderr_excerpt_limit,
        )


class NodeLanguage(Language):
    """Shared behaviour of the Node-hosted languages."""

    manifest_filename = "package.json"
    dependency_dirname = "node_modules"

    def sdk_dependencies(self) -> dict[str, str]:
        """MCP SDK dependencies declared by the host Node project."""
        if self.config.node_project_dir is None:
            return {}
        path = self.config.node_project_dir / "package.json"
        try:
            declared = json.loads(path.read_text(encoding="utf-8")).get("dependencies", {})
        except (OSError, ValueError):
            return {}
        return {
            name: version
            for name, version in declared.items()
            if name.startswith(SDK_PACKAGE_PREFIX) or name == "mcp"
        }

    def write_manifest(self, working_dir: Path, dependencies: Mapping[str, str]) -> Path:
        manifest = {
            "name": "mcp-dynamic-server",
            "version": "1.0.0",
            "type": "module",
            "dependencies": {**self.sdk_dependencies(), **dependencies},
        }
        path = working_dir / self.manifest_filename
        path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        return path

    def install_command(self, working_dir: Path) -> list[str]:
        return [resolve_command_path(self.config.npm_command, self.config.search_paths), "install"]

    def shared_dependencies(self) -> Path | None:
        return self.config.shared_node_modules

    def tool_environment(self, working_dir: Path) -> dict[str, str]:
        if self.config.shared_node_modules is None:
            return base_environment()
        return base_environment(NODE_PATH=str(self.config.shared_node_modules))

    def resolve_launch(self, working_dir: Path, entry: Path) -> LaunchSpec:
        return LaunchSpec(
            command=self.config.node_command,
            args=[str(entry)],
            cwd=working_dir,
            env=self.tool_environment(working_dir),
        )


class JavaScriptLanguage(NodeLanguage):
    """Plain ES module JavaScript, run as-is."""

    name = "javascript"
    source_filename = "index.js"


class TypeScriptLanguage(NodeLanguage):
    """TypeScript compiled with the host project's tsc."""

    name = "typescript"
    source_filename = "index.ts"

    def compile_command(self, working_dir: Path, source_path: Path) -> list[str]:
        npx = resolve_command_path(self.config.npx_command, self.config.search_paths)
        return [
            npx,
            "tsc",
            "--allowJs",
            str(source_path),
            "--outDir",
            str(working_dir),
            "--target",
            "ES2020",
            "--module",
            "NodeNext",
            "--moduleResolution",
            "NodeNext",
            "--esModuleInterop",
            "--skipLibCheck",
            "--resolveJsonModule",
        ]

    async def build(self, working_dir: Path, source_path: Path) -> Path:
        project_dir = self.config.node_project_dir
        cwd = project_dir if project_dir is not None and project_dir.is_dir() else working_dir
        logger.debug("Compiling TypeScript", source=str(source_path), cwd=str(cwd))
        await self._run(
            self.compile_command(working_dir, source_path), cwd, self.config.build_timeout
        )
        return working_dir / "index.js"


class PythonLanguage(Language):
    """Python servers, run with the configured interpreter."""

    name = "python"
    source_filename = "server.py"
    manifest_filename = "requirements.txt"
    dependency_dirname = "site-packages"

    @staticmethod
    def requirement_line(name: str, constraint: str) -> str:
        """Format one requirements.txt line.

        Empty and `*` constraints mean any version; bare version numbers are pinned.
        """
        constraint = constraint.strip()
        if not constraint or constraint == "*":
            return name
        if constraint[0].isdigit():
            return f"{name}=={constraint}"
        return f"{name}{constraint}"

    @property
    def interpreter(self) -> str:
        """Configured interpreter, resolved like the Node tools."""
        return resolve_command_path(self.config.python_command, self.config.search_paths)

    def write_manifest(self, working_dir: Path, dependencies: Mapping[str, str]) -> Path:
        lines = [self.requirement_line(name, version) for name, version in dependencies.items()]
        path = working_dir / self.manifest_filename
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    def install_command(self, working_dir: Path) -> list[str]:
        return [
            self.interpreter,
            "-m",
            "pip",
            "install",
            "--disable-pip-version-check",
            "-r",
            self.manifest_filename,
            "--target",
            self.dependency_dirname,
            *self.config.pip_args,
        ]

    def shared_dependencies(self) -> Path | None:
        return self.config.shared_site_packages

    def python_path(self, working_dir: Path) -> str:
        entries = [str(working_dir / self.dependency_dirname)]
        if self.config.shared_site_packages is not None:
            entries.append(str(self.config.shared_site_packages))
        if inherited := os.environ.get("PYTHONPATH"):
            entries.append(inherited)
        return os.pathsep.join(entries)

    async def build(self, working_dir: Path, source_path: Path) -> Path:
        command = [self.interpreter, "-m", "py_compile", str(source_path)]
        await self._run(command, working_dir, self.config.build_timeout)
        return source_path

    def resolve_launch(self, working_dir: Path, entry: Path) -> LaunchSpec:
        env = base_environment(
            PYTHONPATH=self.python_path(working_dir),
            PYTHONUNBUFFERED="1",
        )
        return LaunchSpec(
            command=self.interpreter,
            args=[str(entry)],
            cwd=working_dir,
            env=env,
        )


LANGUAGES: tuple[type[Language], ...] = (
    TypeScriptLanguage,
    JavaScriptLanguage,
    PythonLanguage,
)


def default_languages(config: ForgeConfig) -> dict[str, Language]:
    """Instantiate the built-in languages, keyed by their tag."""
    return {language.name: language(config) for language in LANGUAGES}
