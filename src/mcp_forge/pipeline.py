"""Build pipeline turning submitted source into a launchable artifact."""

from __future__ import annotations

from dataclasses import dataclass, field
import shutil
from typing import TYPE_CHECKING

import anyio

from mcp_forge.exceptions import (
    CleanupError,
    DependencyInstallFailedError,
    UnsupportedLanguageError,
)
from mcp_forge.languages import default_languages, run_build_step
from mcp_forge.log import get_logger


if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from mcp_forge.languages import Language
    from mcp_forge.launcher import LaunchSpec
    from mcp_forge_config import ForgeConfig


logger = get_logger(__name__)


@dataclass(frozen=True)
class BuildArtifact:
    """Everything needed to start a freshly built server."""

    session_id: str
    language: str
    working_dir: Path
    entry_point: Path
    launch: LaunchSpec
    dependencies: dict[str, str] = field(default_factory=dict)


class BuildPipeline:
    """Writes, installs and compiles server source in per-session directories."""

    def __init__(
        self, config: ForgeConfig, languages: Mapping[str, Language] | None = None
    ) -> None:
        self.config = config
        self.languages = dict(languages) if languages is not None else default_languages(config)

    def get_language(self, name: str) -> Language:
        """Look up the strategy for a language tag.

        Raises:
            UnsupportedLanguageError: If no strategy is registered for `name`
        """
        try:
            return self.languages[name]
        except KeyError:
            raise UnsupportedLanguageError(name, sorted(self.languages)) from None

    async def build(
        self,
        session_id: str,
        source: str,
        language: str,
        dependencies: Mapping[str, str] | None = None,
    ) -> BuildArtifact:
        """Build a server in `<servers_dir>/<session_id>`.

        On failure the working directory is removed before the error propagates.

        Raises:
            UnsupportedLanguageError: Unknown language tag
            DependencyInstallFailedError: Package manager exited unsuccessfully
            BuildFailedError: Compiler or syntax check exited unsuccessfully
        """
        strategy = self.get_language(language)
        working_dir = self.config.servers_dir / session_id
        deps = dict(dependencies or {})
        logger.info("Building server", session_id=session_id, language=language)
        try:
            working_dir.mkdir(parents=True)
            source_path = working_dir / strategy.source_filename
            source_path.write_text(source, encoding="utf-8")
            if deps:
                await self._install(strategy, working_dir, deps)
            else:
                self._link_shared(strategy, working_dir)
            entry = await strategy.build(working_dir, source_path)
            launch = strategy.resolve_launch(working_dir, entry.absolute())
        except BaseException as exc:
            logger.warning("Build failed", session_id=session_id, error=str(exc))
            await self.cleanup(working_dir, primary=exc)
            raise
        return BuildArtifact(
            session_id=session_id,
            language=language,
            working_dir=working_dir,
            entry_point=entry.absolute(),
            launch=launch,
            dependencies=deps,
        )

    async def _install(
        self, strategy: Language, working_dir: Path, dependencies: Mapping[str, str]
    ) -> None:
        manifest = strategy.write_manifest(working_dir, dependencies)
        logger.info("Installing dependencies", manifest=str(manifest), count=len(dependencies))
        await run_build_step(
            DependencyInstallFailedError,
            strategy.install_command(working_dir),
            cwd=working_dir,
            env=strategy.tool_environment(working_dir),
            timeout=self.config.install_timeout,
            excerpt_limit=self.config.stderr_excerpt_limit,
        )

    def _link_shared(self, strategy: Language, working_dir: Path) -> None:
        """Link the shared dependency set into the working directory, if possible."""
        shared = strategy.shared_dependencies()
        if shared is None:
            return
        link = working_dir / strategy.dependency_dirname
        if not shared.exists():
            logger.debug("Shared dependencies not available", path=str(shared))
            return
        try:
            link.symlink_to(shared, target_is_directory=True)
        except OSError as exc:
            logger.warning("Could not link shared dependencies", path=str(link), error=str(exc))

    async def cleanup(self, working_dir: Path, primary: BaseException | None = None) -> None:
        """Remove a working directory; failures are logged and never raised.

        Args:
            working_dir: Directory to remove
            primary: Error being propagated, annotated with any cleanup failure
        """
        with anyio.CancelScope(shield=True):
            try:
                await anyio.to_thread.run_sync(shutil.rmtree, working_dir)
            except FileNotFoundError:
                return
            except OSError as exc:
                error = CleanupError(str(working_dir), str(exc))
                logger.warning("Cleanup failed", path=str(working_dir), error=str(error))
                if primary is not None:
                    primary.add_note(str(error))
                return
        logger.debug("Removed working directory", path=str(working_dir))
