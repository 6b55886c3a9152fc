"""Trust-on-first-use pinning of DVR server certificates.

The first certificate seen for a server is accepted and its SHA-1 digest is
stored in the settings DB.  Every later certificate must match that digest
exactly.  This is insecure against a man-in-the-middle on first contact,
which is the accepted trade-off for self-signed DVR appliances.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Callable

from dvrclient.db import SettingsStore

logger = logging.getLogger(__name__)

DIGEST_KEY = "sslDigest"


def certificate_digest(certificate: bytes) -> str:
    """Return the hex SHA-1 digest of a DER-encoded certificate."""
    return hashlib.sha1(certificate).hexdigest()


class CertificateTrustStore:
    """Pinned certificate digest of one server."""

    def __init__(
        self,
        store: SettingsStore,
        server_id: int,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._store = store
        self._server_id = server_id
        self._on_change = on_change

    @property
    def known_digest(self) -> str:
        """The pinned digest, or ``""`` when nothing is pinned yet."""
        return str(self._store.read(self._server_id, DIGEST_KEY, "") or "")

    def is_known_certificate(self, certificate: bytes) -> bool:
        """Return True if *certificate* is trusted for this server.

        Pins *certificate* as a side effect when no digest is stored yet.
        """
        known = self.known_digest
        if not known:
            logger.info("Pinning first certificate seen for server %d", self._server_id)
            self.set_known_certificate(certificate)
            return True

        if hmac.compare_digest(certificate_digest(certificate), known):
            return True
        logger.warning(
            "Certificate mismatch for server %d (pinned %s, got %s)",
            self._server_id,
            known,
            certificate_digest(certificate),
        )
        return False

    def set_known_certificate(self, certificate: bytes) -> None:
        """Pin *certificate*, replacing any previous digest."""
        self._store.write(self._server_id, DIGEST_KEY, certificate_digest(certificate))
        if self._on_change is not None:
            self._on_change()
