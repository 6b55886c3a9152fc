"""Session lifecycle of one configured DVR server.

A :class:`DVRServer` owns the persisted settings of one server, logs in
through its :class:`ServerRequestManager`, polls the device list and status
while online, and clears all derived state when the session drops.

Events (register with :meth:`DVRServer.on`):

* ``changed``: a setting was written
* ``server_removed(server)``
* ``camera_added(camera)`` / ``camera_removed(camera)``
* ``devices_ready``: first device list applied, or list repopulated
* ``status_alert_message_changed(message)``
* ``login_error(message)``
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from dvrclient.config import DEVICES_PATH, REFRESH_INTERVAL_S, STATS_PATH, normalize_port
from dvrclient.db import SettingsStore
from dvrclient.events import EventEmitter
from dvrclient.inventory import DeviceInventory
from dvrclient.models import Camera
from dvrclient.scheduler import PollingScheduler
from dvrclient.status import StatusMonitor
from dvrclient.transport import ServerReply, ServerRequestManager
from dvrclient.trust import CertificateTrustStore

logger = logging.getLogger(__name__)


class DVRServer(EventEmitter):
    """One configured DVR server and its live session."""

    def __init__(
        self,
        config_id: int,
        store: SettingsStore | None = None,
        *,
        refresh_interval: float = REFRESH_INTERVAL_S,
        http_transport: httpx.AsyncBaseTransport | None = None,
        auto_connect: bool = True,
    ) -> None:
        super().__init__()
        self.config_id = config_id
        self._store = store if store is not None else SettingsStore()
        self._read_from_settings()

        self.trust = CertificateTrustStore(
            self._store, config_id, on_change=lambda: self.emit("changed")
        )
        self.api = ServerRequestManager(
            self._base_url(),
            certificate_check=self.is_known_certificate,
            http_transport=http_transport,
        )
        self.api.on("login_successful", self.update_cameras)
        self.api.on("login_error", lambda message: self.emit("login_error", message))
        self.api.on("disconnected", self._on_disconnected)

        self.inventory = DeviceInventory(config_id, self.emit)
        self.status = StatusMonitor(self.emit)
        self._refresh = PollingScheduler(self.update_cameras, refresh_interval)
        self._tasks: set[asyncio.Task] = set()

        if auto_connect and self._auto_connect and self._hostname and self._username:
            self._schedule_login()

    def __repr__(self) -> str:
        return f"<DVRServer {self.config_id} {self._display_name!r} {self._hostname}:{self._port}>"

    # ------------------------------------------------------------------ #
    # Settings
    # ------------------------------------------------------------------ #

    @property
    def display_name(self) -> str:
        return self._display_name

    @display_name.setter
    def display_name(self, name: str) -> None:
        if name == self._display_name:
            return
        self._display_name = name
        self._write_setting("displayName", name)

    @property
    def hostname(self) -> str:
        return self._hostname

    @hostname.setter
    def hostname(self, hostname: str) -> None:
        self._hostname = hostname
        self.api.base_url = self._base_url()
        self._write_setting("hostname", hostname)

    @property
    def server_port(self) -> int:
        return self._port

    @server_port.setter
    def server_port(self, port: int) -> None:
        self._port = normalize_port(port)
        self.api.base_url = self._base_url()
        self._write_setting("port", self._port)

    @property
    def rtsp_port(self) -> int:
        """Streaming port, always one above the server port."""
        return self._port + 1

    @property
    def username(self) -> str:
        return self._username

    @username.setter
    def username(self, username: str) -> None:
        self._username = username
        self._write_setting("username", username)

    @property
    def password(self) -> str:
        return self._password

    @password.setter
    def password(self, password: str) -> None:
        self._password = password
        self._write_setting("password", password)

    @property
    def auto_connect(self) -> bool:
        return self._auto_connect

    @auto_connect.setter
    def auto_connect(self, auto_connect: bool) -> None:
        self._auto_connect = bool(auto_connect)
        self._write_setting("autoConnect", self._auto_connect)

    # ------------------------------------------------------------------ #
    # Session state
    # ------------------------------------------------------------------ #

    @property
    def is_online(self) -> bool:
        return self.api.is_online()

    @property
    def cameras(self) -> list[Camera]:
        return self.inventory.cameras

    @property
    def devices_loaded(self) -> bool:
        return self.inventory.devices_loaded

    @property
    def status_alert_message(self) -> str:
        return self.status.message

    @property
    def polling(self) -> bool:
        """Whether the refresh timer is active."""
        return self._refresh.running

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def login(self) -> bool:
        """Log in with the stored credentials."""
        return await self.api.login(self._username, self._password)

    async def toggle_online(self) -> None:
        """Log out when online, log in otherwise."""
        if self.api.is_online():
            await self.api.logout()
        else:
            await self.login()

    def update_cameras(self) -> tuple[asyncio.Task, asyncio.Task] | None:
        """Run one poll cycle: request the device list and the status.

        Stops polling instead when the session is offline.  Returns the two
        request tasks, or ``None`` if nothing was sent.
        """
        if not self.api.is_online():
            self._refresh.stop()
            return None

        if not self._refresh.running:
            self._refresh.start()

        logger.debug("Server %d: requesting cameras list", self.config_id)
        devices = self.api.send_request(DEVICES_PATH)
        devices.add_done_callback(self._on_cameras_reply)

        stats = self.api.send_request(STATS_PATH)
        stats.add_done_callback(self._on_stats_reply)
        return devices, stats

    async def remove_server(self) -> None:
        """Forget this server: notify observers, erase settings and close."""
        logger.info("Deleting DVR server %d", self.config_id)
        self.emit("server_removed", self)
        self._store.remove(self.config_id)
        await self.close()

    async def close(self) -> None:
        """Stop polling and release the transport."""
        self._refresh.stop()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.api.aclose()

    # ------------------------------------------------------------------ #
    # Certificates
    # ------------------------------------------------------------------ #

    def is_known_certificate(self, certificate: bytes) -> bool:
        return self.trust.is_known_certificate(certificate)

    def set_known_certificate(self, certificate: bytes) -> None:
        self.trust.set_known_certificate(certificate)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _read_from_settings(self) -> None:
        self._display_name = str(self._read_setting("displayName", "") or "")
        self._hostname = str(self._read_setting("hostname", "") or "")
        self._port = normalize_port(self._read_setting("port", 0))
        self._username = str(self._read_setting("username", "") or "")
        self._password = str(self._read_setting("password", "") or "")
        self._auto_connect = bool(self._read_setting("autoConnect", True))

    def _read_setting(self, key: str, default: Any = None) -> Any:
        return self._store.read(self.config_id, key, default)

    def _write_setting(self, key: str, value: Any) -> None:
        self._store.write(self.config_id, key, value)
        self.emit("changed")

    def _base_url(self) -> str:
        return f"https://{self._hostname}:{self._port}"

    def _schedule_login(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; auto-connect of server %d skipped", self.config_id)
            return
        loop.call_soon(self._start_login)

    def _start_login(self) -> None:
        task = asyncio.ensure_future(self.login())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _reply_from(self, task: asyncio.Task) -> ServerReply | None:
        """Return the reply of a finished request, or None if it is stale."""
        if task.cancelled():
            return None
        exc = task.exception()
        if exc is not None:
            logger.error("Server %d: request failed unexpectedly: %s", self.config_id, exc)
            return None
        reply: ServerReply = task.result()
        if reply.generation != self.api.generation:
            logger.debug(
                "Server %d: discarding stale reply %d for %s",
                self.config_id,
                reply.request_id,
                reply.path,
            )
            return None
        return reply

    def _on_cameras_reply(self, task: asyncio.Task) -> None:
        reply = self._reply_from(task)
        if reply is None:
            return
        logger.debug("Server %d: received cameras list reply", self.config_id)
        self.inventory.handle_reply(reply)

    def _on_stats_reply(self, task: asyncio.Task) -> None:
        reply = self._reply_from(task)
        if reply is None:
            return
        self.status.handle_reply(reply)

    def _on_disconnected(self) -> None:
        self._refresh.stop()
        self.inventory.clear()
        self.status.clear()
