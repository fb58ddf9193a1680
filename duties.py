"""Project tasks."""

from __future__ import annotations

from pathlib import Path

from duty import duty  # pyright: ignore[reportMissingImports]


@duty(capture=False)
def test(ctx, *args: str):
    """Run tests."""
    args_str = " " + " ".join(args) if args else ""
    args_str = " -n auto" + args_str
    ctx.run(f"uv run pytest{args_str}")


@duty(capture=False)
def clean(ctx):
    """Clean all files from the Git directory except checked-in files."""
    ctx.run("git clean -dfX")


@duty(capture=False)
def update(ctx):
    """Update all environment packages."""
    ctx.run("uv lock --upgrade")
    ctx.run("uv sync --all-extras")


def _get_lint_targets(filepath: str | None) -> tuple[str, str]:
    """Get lint targets based on optional filepath.

    Returns:
        Tuple of (ruff_target, mypy_target)
    """
    if filepath is None:
        return ".", "src/"
    # mypy only checks package sources
    mypy_target = filepath if Path(filepath).parts[:1] == ("src",) else ""
    return filepath, mypy_target


@duty(capture=False)
def lint(ctx, filepath: str | None = None):  # noqa: D417
    """Lint the code and fix issues if possible.

    Args:
        filepath: Optional path to a specific file to lint.
                  If not provided, lints the entire project.
    """
    ruff_target, mypy_target = _get_lint_targets(filepath)
    ctx.run(f"uv run ruff check --fix --unsafe-fixes {ruff_target}")
    ctx.run(f"uv run ruff format {ruff_target}")
    if mypy_target:
        ctx.run(f"uv run mypy {mypy_target}")


@duty(capture=False)
def lint_check(ctx, filepath: str | None = None):  # noqa: D417
    """Lint the code (check only, no fixes).

    Args:
        filepath: Optional path to a specific file to lint.
                  If not provided, lints the entire project.
    """
    ruff_target, mypy_target = _get_lint_targets(filepath)
    ctx.run(f"uv run ruff check {ruff_target}")
    ctx.run(f"uv run ruff format --check {ruff_target}")
    if mypy_target:
        ctx.run(f"uv run mypy {mypy_target}")


@duty(capture=False)
def serve(ctx, *args: str):
    """Run the MCP Create server on stdio."""
    args_str = " " + " ".join(args) if args else ""
    ctx.run(f"uv run mcp-forge serve{args_str}")


@duty(capture=False)
def serve_http(ctx, *args: str):
    """Run the HTTP façade.

    Usage:
        duty serve-http                  # Port 8080 (or $PORT)
        duty serve-http --port=3000      # Custom port
    """
    port = None
    remaining = []
    for arg in args:
        if arg.startswith("--port="):
            port = arg.split("=", 1)[1]
        else:
            remaining.append(arg)
    if port:
        remaining.extend(["--port", port])
    args_str = " " + " ".join(remaining) if remaining else ""
    ctx.run(f"uv run mcp-forge serve-http{args_str}")
