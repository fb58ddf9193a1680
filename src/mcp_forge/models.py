"""Session state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

import anyio


if TYPE_CHECKING:
    from pathlib import Path

    from anyio.abc import Process

    from mcp_forge.client import StdioToolClient


SessionStatus = Literal["creating", "running", "terminated"]


@dataclass
class ServerSession:
    """A running server: its process, its protocol client and where it was built."""

    id: str
    language: str
    working_dir: Path
    process: Process
    client: StdioToolClient
    dependencies: dict[str, str] = field(default_factory=dict)
    status: SessionStatus = "creating"
    created_at: datetime = field(default_factory=datetime.now)
    stop_requested: anyio.Event = field(default_factory=anyio.Event, repr=False)
    """Set to make the session's runner tear it down."""
    finished: anyio.Event = field(default_factory=anyio.Event, repr=False)
    """Set once the process is reaped and the working directory removed."""

    @property
    def pid(self) -> int:
        return self.process.pid

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "language": self.language,
            "status": self.status,
            "pid": self.pid,
            "working_dir": str(self.working_dir),
            "dependencies": dict(self.dependencies),
            "created_at": self.created_at.isoformat(),
        }
