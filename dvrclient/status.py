"""Server health alerts from ``/ajax/stats.php``.

Expected document::

    <stats>
      <message>Disk almost full</message>
      <bc-server-running>up</bc-server-running>
    </stats>
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Callable

from dvrclient.errors import MalformedDocumentError
from dvrclient.transport import ServerReply

logger = logging.getLogger(__name__)

SERVER_STOPPED_MESSAGE = "Server process stopped"
INVALID_RESPONSE_MESSAGE = "Status request error: invalid server response"


def parse_status_message(data: bytes) -> str:
    """Derive the alert message from a stats document.

    A ``bc-server-running`` of ``down`` wins over any ``message``; otherwise
    the last non-empty ``message`` is used.  Raises
    :class:`MalformedDocumentError` when the document carries no ``message``
    element at all.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise MalformedDocumentError(f"Invalid XML: {exc}") from exc

    stats = root if root.tag == "stats" else root.find(".//stats")
    if stats is None:
        raise MalformedDocumentError("Invalid format: no stats element")

    message = ""
    had_message = False
    server_down = False
    for element in stats.iter():
        if element is stats:
            continue
        if element.tag == "message":
            had_message = True
            text = element.text or ""
            if text:
                message = text
        elif element.tag == "bc-server-running":
            if (element.text or "").strip() == "down":
                server_down = True

    if not had_message:
        raise MalformedDocumentError("Invalid format: no message element")
    return SERVER_STOPPED_MESSAGE if server_down else message


class StatusMonitor:
    """Current status alert of one server."""

    def __init__(self, emit: Callable[..., Any]) -> None:
        self._emit = emit
        self._message = ""

    @property
    def message(self) -> str:
        return self._message

    def handle_reply(self, reply: ServerReply) -> str:
        """Update the alert from a stats reply and return the new message."""
        if reply.error is not None:
            message = f"Status request error: {reply.error}"
        else:
            try:
                message = parse_status_message(reply.data)
            except MalformedDocumentError as exc:
                logger.warning("Error while parsing server status: %s", exc)
                message = INVALID_RESPONSE_MESSAGE
        self._set_message(message)
        return message

    def clear(self) -> None:
        self._set_message("")

    def _set_message(self, message: str) -> None:
        if message == self._message:
            return
        self._message = message
        self._emit("status_alert_message_changed", message)
