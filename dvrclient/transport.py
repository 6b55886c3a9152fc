"""HTTP request transport for a DVR server.

Uses httpx for async HTTP.  One :class:`httpx.AsyncClient` is kept per
server so the session cookie set by the login survives across requests.

Certificate verification is not done by the TLS layer; instead the DER
certificate of every response is handed to a ``certificate_check`` callable
(normally :meth:`CertificateTrustStore.is_known_certificate`).  Before the
credentials are posted, an uncredentialed GET of ``TRUST_CHECK_PATH`` must
come back from a trusted peer.  Redirects are never followed.

Events (see :class:`~dvrclient.events.EventEmitter`):

* ``login_successful``: the session is online
* ``login_error(message)``: a login attempt failed
* ``disconnected``: an online session ended
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Callable

import httpx

from dvrclient.config import LOGIN_PATH, LOGOUT_PATH, REQUEST_TIMEOUT_S, TRUST_CHECK_PATH
from dvrclient.errors import AuthError, DVRError, TransportError, TrustMismatchError
from dvrclient.events import EventEmitter

logger = logging.getLogger(__name__)


@dataclass
class ServerReply:
    """Completion of one request.

    ``generation`` is the transport session the request was sent in; replies
    from an earlier session are stale.
    """

    request_id: int
    path: str
    generation: int
    data: bytes = b""
    status_code: int | None = None
    error: str | None = None


class ServerRequestManager(EventEmitter):
    """Authenticated request channel to one DVR server."""

    def __init__(
        self,
        base_url: str,
        certificate_check: Callable[[bytes], bool] | None = None,
        timeout: float = REQUEST_TIMEOUT_S,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.certificate_check = certificate_check
        self.timeout = timeout
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None
        self._online = False
        self._generation = 0
        self._request_ids = itertools.count(1)
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def is_online(self) -> bool:
        return self._online

    @property
    def generation(self) -> int:
        """Session counter, bumped on every login and every disconnect."""
        return self._generation

    async def login(self, username: str, password: str) -> bool:
        """Authenticate and go online.  Returns True on success."""
        try:
            await self._check_peer()
            response = await self._request(
                "POST",
                LOGIN_PATH,
                data={"login": username, "password": password, "from_client": "true"},
            )
            self._raise_for_status(response)
        except DVRError as exc:
            logger.warning("Login to %s failed: %s", self.base_url, exc)
            self.emit("login_error", str(exc))
            return False

        self._online = True
        self._generation += 1
        logger.info("Logged in to %s", self.base_url)
        self.emit("login_successful")
        return True

    async def logout(self) -> None:
        """End the session; the logout request itself is best-effort."""
        if not self._online:
            return
        try:
            await self._request("GET", LOGOUT_PATH)
        except DVRError as exc:
            logger.debug("Logout request to %s failed: %s", self.base_url, exc)
        self._go_offline()

    def send_request(self, path: str) -> asyncio.Task[ServerReply]:
        """Start a GET for *path* and return the task resolving to its reply.

        The task never raises for network or HTTP failures; those are
        reported through :attr:`ServerReply.error`.
        """
        reply = ServerReply(
            request_id=next(self._request_ids),
            path=path,
            generation=self._generation,
        )
        task = asyncio.get_running_loop().create_task(self._perform(reply))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def aclose(self) -> None:
        """Cancel outstanding requests and close the HTTP client."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
        self._online = False

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=False,
                follow_redirects=False,
                transport=self._http_transport,
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._get_client().request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"Cannot reach {url}: {exc or type(exc).__name__}") from exc
        self._verify_peer(response)
        return response

    async def _check_peer(self) -> None:
        """Reject an untrusted HTTPS peer before anything secret is sent to it."""
        if self.certificate_check is None or not self.base_url.startswith("https://"):
            return
        await self._request("GET", TRUST_CHECK_PATH)

    async def _perform(self, reply: ServerReply) -> ServerReply:
        try:
            response = await self._request("GET", reply.path)
        except TrustMismatchError as exc:
            reply.error = str(exc)
            logger.warning("Dropping session to %s: %s", self.base_url, exc)
            if reply.generation == self._generation:
                self._go_offline()
            return reply
        except TransportError as exc:
            reply.error = str(exc)
            return reply

        reply.status_code = response.status_code
        if response.status_code in (401, 403):
            reply.error = f"Not authorized (HTTP {response.status_code})"
            if reply.generation == self._generation:
                logger.info("Session to %s expired", self.base_url)
                self._go_offline()
        elif not response.is_success:
            reply.error = f"HTTP {response.status_code} {response.reason_phrase}".strip()
        else:
            reply.data = response.content
        return reply

    def _verify_peer(self, response: httpx.Response) -> None:
        """Reject *response* if its TLS certificate is not trusted."""
        if self.certificate_check is None:
            return
        stream = response.extensions.get("network_stream")
        if stream is None:
            return
        ssl_object = stream.get_extra_info("ssl_object")
        if ssl_object is None:
            return
        certificate = ssl_object.getpeercert(binary_form=True)
        if certificate and not self.certificate_check(certificate):
            raise TrustMismatchError(
                f"Certificate of {self.base_url} does not match the pinned certificate"
            )

    def _go_offline(self) -> None:
        if not self._online:
            return
        self._online = False
        self._generation += 1
        logger.info("Disconnected from %s", self.base_url)
        self.emit("disconnected")

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code in (401, 403):
            raise AuthError(f"Server returned {response.status_code}, check your credentials")
        if not response.is_success:
            raise TransportError(f"Server returned HTTP {response.status_code}")
