"""Registry of the configured DVR servers.

Loads every server found in the settings DB, creates new ones and removes
them.  This is the entry point the CLI and embedding applications use.
"""

from __future__ import annotations

import logging
from typing import Any

from dvrclient.db import SettingsStore
from dvrclient.server import DVRServer

logger = logging.getLogger(__name__)


class ServerManager:
    """Owns the :class:`DVRServer` instances of one process."""

    def __init__(self, store: SettingsStore | None = None, **server_kwargs: Any) -> None:
        self.store = store if store is not None else SettingsStore()
        self._server_kwargs = server_kwargs
        self._servers: dict[int, DVRServer] = {}

    def load_servers(self) -> list[DVRServer]:
        """Instantiate every configured server not loaded yet."""
        for server_id in self.store.server_ids():
            if server_id not in self._servers:
                self._add(DVRServer(server_id, self.store, **self._server_kwargs))
        logger.info("Loaded %d DVR server(s)", len(self._servers))
        return self.list_servers()

    def create_server(self, display_name: str) -> DVRServer:
        """Create and persist a new server with the next free id."""
        known = set(self.store.server_ids()) | set(self._servers)
        server_id = max(known, default=0) + 1
        server = DVRServer(server_id, self.store, **self._server_kwargs)
        server.display_name = display_name
        self._add(server)
        logger.info("Created DVR server %d (%s)", server_id, display_name)
        return server

    def get_server(self, server_id: int) -> DVRServer | None:
        return self._servers.get(server_id)

    def list_servers(self) -> list[DVRServer]:
        """Return loaded servers ordered by id."""
        return [self._servers[i] for i in sorted(self._servers)]

    async def remove_server(self, server_id: int) -> bool:
        """Remove a server and erase its settings.  Returns False if unknown."""
        server = self._servers.get(server_id)
        if server is None:
            return False
        await server.remove_server()
        return True

    async def close(self) -> None:
        """Close every server session."""
        for server in list(self._servers.values()):
            await server.close()

    def _add(self, server: DVRServer) -> None:
        self._servers[server.config_id] = server
        server.on("server_removed", self._on_server_removed)

    def _on_server_removed(self, server: DVRServer) -> None:
        self._servers.pop(server.config_id, None)
