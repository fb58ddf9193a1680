"""Table of running sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio

from mcp_forge.exceptions import ServerNotFoundError


if TYPE_CHECKING:
    from mcp_forge.models import ServerSession


class SessionRegistry:
    """Maps server ids to running sessions.

    All mutations are serialized by a lock. The most recent `max_retired` removed
    ids are remembered and cannot be registered again; older ones are forgotten.
    """

    def __init__(self, max_retired: int = 10_000) -> None:
        self._sessions: dict[str, ServerSession] = {}
        self._retired: dict[str, None] = {}
        self._max_retired = max_retired
        self._lock = anyio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._sessions

    async def add(self, session: ServerSession) -> None:
        """Register a session that completed its handshake.

        Raises:
            ValueError: If the id is registered or was registered before
        """
        async with self._lock:
            if session.id in self._sessions or session.id in self._retired:
                msg = f"Server id {session.id} has already been used"
                raise ValueError(msg)
            self._sessions[session.id] = session

    async def get(self, server_id: str) -> ServerSession:
        """Look up a running session.

        Raises:
            ServerNotFoundError: If the id is unknown or was removed
        """
        async with self._lock:
            try:
                return self._sessions[server_id]
            except KeyError:
                raise ServerNotFoundError(server_id) from None

    async def pop(self, server_id: str) -> ServerSession | None:
        """Remove a session. Returns None if someone else removed it first."""
        async with self._lock:
            session = self._sessions.pop(server_id, None)
            if session is not None:
                self._retire([server_id])
            return session

    async def snapshot(self) -> list[str]:
        async with self._lock:
            return list(self._sessions)

    async def drain(self) -> list[ServerSession]:
        """Remove and return every session."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._retire(list(self._sessions))
            self._sessions.clear()
            return sessions

    def _retire(self, server_ids: list[str]) -> None:
        for server_id in server_ids:
            self._retired[server_id] = None
        while len(self._retired) > self._max_retired:
            del self._retired[next(iter(self._retired))]
