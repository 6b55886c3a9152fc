"""Domain entities reported by a DVR server."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

from dvrclient.errors import MalformedEntryError

# Device fields the server always sends as integers
_INT_FIELDS = ("resolutionX", "resolutionY", "ptz_control_protocol", "disabled")


@dataclass(unsafe_hash=True)
class Camera:
    """One device of a DVR server.

    Identity is ``(server_id, unique_id)``; the remaining attributes are the
    mutable view of the latest device-list reply.
    """

    server_id: int
    unique_id: int
    name: str = field(default="", compare=False)
    fields: dict[str, str] = field(default_factory=dict, compare=False)
    online: bool = field(default=False, compare=False)
    is_removed: bool = field(default=False, compare=False)

    def parse_xml(self, element: ET.Element) -> None:
        """Load the child elements of a ``<device>`` entry.

        Raises :class:`MalformedEntryError` when a numeric field is not an
        integer; the camera is left unchanged in that case.
        """
        parsed: dict[str, str] = {}
        for child in element:
            text = (child.text or "").strip()
            if child.tag in _INT_FIELDS and text:
                try:
                    int(text)
                except ValueError:
                    raise MalformedEntryError(
                        f"Device {self.unique_id}: invalid {child.tag} {text!r}"
                    ) from None
            parsed[child.tag] = text

        self.fields = parsed
        self.name = parsed.get("device_name") or f"Camera {self.unique_id}"

    def set_online(self, online: bool) -> None:
        self.online = online
        if online:
            self.is_removed = False

    def removed(self) -> None:
        """Mark the camera as gone from its server."""
        self.online = False
        self.is_removed = True

    @property
    def resolution(self) -> tuple[int, int] | None:
        """``(width, height)`` when the server reported both, else ``None``."""
        try:
            return int(self.fields["resolutionX"]), int(self.fields["resolutionY"])
        except (KeyError, ValueError):
            return None

    @property
    def disabled(self) -> bool:
        return self.fields.get("disabled", "0") not in ("", "0")

    @property
    def has_ptz(self) -> bool:
        return self.fields.get("ptz_control_protocol", "0") not in ("", "0")
