"""Device inventory reconciliation.

Turns ``/ajax/devices.php?XML=1`` replies into the camera set of one server,
emitting ``camera_added`` / ``camera_removed`` for the difference and
``devices_ready`` once the first list has been applied.

Expected document::

    <devices>
      <device id="1">
        <device_name>Front door</device_name>
        <resolutionX>704</resolutionX>
        ...
      </device>
    </devices>
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Callable

from dvrclient.errors import MalformedDocumentError, MalformedEntryError
from dvrclient.models import Camera
from dvrclient.transport import ServerReply

logger = logging.getLogger(__name__)


def parse_devices_document(data: bytes) -> ET.Element:
    """Return the ``<devices>`` root of *data*.

    Raises :class:`MalformedDocumentError` if the document is not XML or has
    no top-level ``devices`` element.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise MalformedDocumentError(f"Invalid XML: {exc}") from exc
    if root.tag != "devices":
        raise MalformedDocumentError("Invalid format: no devices element")
    return root


def parse_device_id(element: ET.Element) -> int:
    """Return the non-negative ``id`` attribute of a ``<device>`` entry."""
    value = element.get("id")
    if value is None:
        raise MalformedEntryError("Device entry without id")
    try:
        device_id = int(value)
    except ValueError:
        raise MalformedEntryError(f"Invalid device ID {value!r}") from None
    if device_id < 0:
        raise MalformedEntryError(f"Invalid device ID {value!r}")
    return device_id


class DeviceInventory:
    """Camera set of one server, kept in sync with device-list replies."""

    def __init__(self, server_id: int, emit: Callable[..., Any]) -> None:
        self.server_id = server_id
        self._emit = emit
        self._cameras: dict[int, Camera] = {}
        self.devices_loaded = False

    @property
    def cameras(self) -> list[Camera]:
        """Cameras in the order they were first reported."""
        return list(self._cameras.values())

    def get_camera(self, unique_id: int) -> Camera | None:
        return self._cameras.get(unique_id)

    def handle_reply(self, reply: ServerReply) -> bool:
        """Apply a device-list reply.  Returns False if it was discarded."""
        if reply.error is not None:
            logger.warning("Error from updating cameras: %s", reply.error)
            return False
        try:
            self.apply(reply.data)
        except MalformedDocumentError as exc:
            logger.warning("Error while parsing camera list: %s", exc)
            return False
        return True

    def apply(self, data: bytes) -> None:
        """Reconcile the camera set against the device list in *data*.

        Invalid entries are skipped.  A malformed document raises
        :class:`MalformedDocumentError` before anything is changed.
        """
        root = parse_devices_document(data)

        was_empty = not self._cameras
        observed: set[int] = set()
        staged: dict[int, Camera] = {}

        for entry in root.iter("device"):
            try:
                device_id = parse_device_id(entry)
            except MalformedEntryError as exc:
                logger.warning("Skipping device entry: %s", exc)
                continue

            observed.add(device_id)
            camera = self._cameras.get(device_id) or staged.get(device_id)
            if camera is None:
                camera = Camera(self.server_id, device_id)
            camera.set_online(True)
            try:
                camera.parse_xml(entry)
            except MalformedEntryError as exc:
                logger.warning("Device parsing failed: %s", exc)
                continue

            if device_id not in self._cameras:
                staged[device_id] = camera

        for device_id in [i for i in self._cameras if i not in observed]:
            camera = self._cameras.pop(device_id)
            camera.removed()
            logger.debug("Camera %d removed from server %d", device_id, self.server_id)
            self._emit("camera_removed", camera)

        for device_id, camera in staged.items():
            self._cameras[device_id] = camera
            logger.debug("Camera %d added to server %d", device_id, self.server_id)
            self._emit("camera_added", camera)

        if not self.devices_loaded or (was_empty and self._cameras):
            self.devices_loaded = True
            self._emit("devices_ready")

    def clear(self) -> None:
        """Remove every camera, as on disconnect, and forget the initial sync."""
        while self._cameras:
            device_id = next(iter(self._cameras))
            camera = self._cameras.pop(device_id)
            camera.removed()
            self._emit("camera_removed", camera)
        self.devices_loaded = False
