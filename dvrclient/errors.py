"""Error hierarchy shared by the DVR session components."""

from __future__ import annotations


class DVRError(Exception):
    """Base error for DVR client failures."""


class TransportError(DVRError):
    """Raised when a request fails before a usable response exists."""


class AuthError(TransportError):
    """Raised when the server returns 401 or 403."""


class MalformedDocumentError(DVRError):
    """Raised when a reply is missing its required top-level container."""


class MalformedEntryError(DVRError):
    """Raised when a single device entry (or one of its fields) cannot be parsed."""


class TrustMismatchError(DVRError):
    """Raised when the server certificate differs from the pinned digest."""
