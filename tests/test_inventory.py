"""Tests for device list parsing and camera reconciliation."""

from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from dvrclient.errors import MalformedDocumentError, MalformedEntryError
from dvrclient.inventory import DeviceInventory, parse_device_id, parse_devices_document
from dvrclient.models import Camera
from dvrclient.transport import ServerReply


def _devices(*ids, extra: str = "") -> bytes:
    entries = "".join(
        f'<device id="{i}"><device_name>Cam {i}</device_name>'
        f"<resolutionX>704</resolutionX><resolutionY>480</resolutionY></device>"
        for i in ids
    )
    return f'<?xml version="1.0"?><devices>{entries}{extra}</devices>'.encode()


def _reply(data: bytes = b"", error: str | None = None) -> ServerReply:
    return ServerReply(request_id=1, path="/ajax/devices.php?XML=1", generation=1, data=data, error=error)


@pytest.fixture
def inventory(recorder):
    return DeviceInventory(7, recorder)


# ── Parsing helpers ───────────────────────────────────────────────


class TestParsing:
    def test_document_requires_devices_root(self):
        with pytest.raises(MalformedDocumentError, match="no devices element"):
            parse_devices_document(b"<response><device id='1'/></response>")

    def test_document_rejects_invalid_xml(self):
        with pytest.raises(MalformedDocumentError, match="Invalid XML"):
            parse_devices_document(b"<devices><device id='1'>")

    def test_empty_devices_is_valid(self):
        assert parse_devices_document(b"<devices/>").tag == "devices"

    @pytest.mark.parametrize("raw", ["0", "12", "4096"])
    def test_valid_ids(self, raw):
        assert parse_device_id(ET.fromstring(f'<device id="{raw}"/>')) == int(raw)

    @pytest.mark.parametrize("raw", ["", "abc", "-1", "1.5"])
    def test_invalid_ids(self, raw):
        with pytest.raises(MalformedEntryError):
            parse_device_id(ET.fromstring(f'<device id="{raw}"/>'))

    def test_missing_id(self):
        with pytest.raises(MalformedEntryError, match="without id"):
            parse_device_id(ET.fromstring("<device/>"))


class TestCameraModel:
    def test_parse_fields(self):
        cam = Camera(1, 5)
        cam.parse_xml(ET.fromstring(
            '<device id="5"><device_name>Lobby</device_name>'
            "<resolutionX>1280</resolutionX><resolutionY>720</resolutionY>"
            "<ptz_control_protocol>1</ptz_control_protocol><disabled>0</disabled></device>"
        ))
        assert cam.name == "Lobby"
        assert cam.resolution == (1280, 720)
        assert cam.has_ptz is True
        assert cam.disabled is False

    def test_default_name(self):
        cam = Camera(1, 5)
        cam.parse_xml(ET.fromstring('<device id="5"/>'))
        assert cam.name == "Camera 5"
        assert cam.resolution is None

    def test_bad_numeric_field_leaves_camera_unchanged(self):
        cam = Camera(1, 5)
        cam.parse_xml(ET.fromstring('<device id="5"><device_name>Old</device_name></device>'))
        with pytest.raises(MalformedEntryError):
            cam.parse_xml(ET.fromstring(
                '<device id="5"><device_name>New</device_name><resolutionX>wide</resolutionX></device>'
            ))
        assert cam.name == "Old"

    def test_equality_by_identity(self):
        a = Camera(1, 5, name="a", online=True)
        b = Camera(1, 5, name="b")
        assert a == b
        assert hash(a) == hash(b)
        assert Camera(1, 5) != Camera(2, 5)


# ── Reconciliation ────────────────────────────────────────────────


class TestReconcile:
    def test_first_reply_adds_all_and_signals_ready(self, inventory, recorder):
        assert inventory.handle_reply(_reply(_devices(1, 2))) is True
        assert recorder.names() == ["camera_added", "camera_added", "devices_ready"]
        assert [c.unique_id for c in inventory.cameras] == [1, 2]
        assert all(c.online for c in inventory.cameras)
        assert inventory.devices_loaded is True

    def test_removed_camera_scenario(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1, 2)))
        first = inventory.get_camera(1)
        recorder.clear()

        inventory.handle_reply(_reply(_devices(2)))

        assert recorder.of("camera_removed") == [(first,)]
        assert recorder.of("camera_added") == []
        assert recorder.of("devices_ready") == []
        assert first.online is False
        assert first.is_removed is True
        assert [c.unique_id for c in inventory.cameras] == [2]

    def test_removed_camera_is_offline_when_notified(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1)))
        seen = []
        inventory._emit = lambda name, *args: seen.append((name, args[0].online) if args else name)
        inventory.handle_reply(_reply(_devices()))
        assert ("camera_removed", False) in seen

    def test_idempotent(self, inventory, recorder):
        data = _devices(1, 2, 3)
        inventory.handle_reply(_reply(data))
        recorder.clear()
        inventory.handle_reply(_reply(data))
        assert recorder.events == []

    def test_camera_objects_are_stable(self, inventory):
        inventory.handle_reply(_reply(_devices(1)))
        cam = inventory.get_camera(1)
        inventory.handle_reply(_reply(_devices(1, 2)))
        assert inventory.get_camera(1) is cam

    def test_set_equals_observed_ids(self, inventory):
        for ids in [(1, 2, 3), (3, 4), (), (5,), (5, 1, 9)]:
            inventory.handle_reply(_reply(_devices(*ids)))
            assert {c.unique_id for c in inventory.cameras} == set(ids)

    def test_fields_refresh_on_later_reply(self, inventory):
        inventory.handle_reply(_reply(_devices(1)))
        inventory.handle_reply(_reply(
            b'<devices><device id="1"><device_name>Renamed</device_name></device></devices>'
        ))
        assert inventory.get_camera(1).name == "Renamed"

    def test_nested_device_entries_are_read(self, inventory, recorder):
        inventory.handle_reply(_reply(b'<devices><group><device id="3"/></group></devices>'))
        assert [c.unique_id for c in inventory.cameras] == [3]
        assert recorder.names() == ["camera_added", "devices_ready"]

    def test_nested_entry_keeps_existing_camera(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(3)))
        camera = inventory.get_camera(3)
        recorder.clear()
        inventory.handle_reply(
            _reply(b'<devices><group><device id="3"><device_name>Yard</device_name></device></group></devices>')
        )
        assert inventory.get_camera(3) is camera
        assert camera.name == "Yard"
        assert recorder.events == []

    def test_duplicate_ids_in_one_reply_add_once(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(4, 4)))
        assert len(recorder.of("camera_added")) == 1
        assert len(inventory.cameras) == 1


class TestErrors:
    def test_transport_error_keeps_state(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1, 2)))
        recorder.clear()
        assert inventory.handle_reply(_reply(error="Connection refused")) is False
        assert recorder.events == []
        assert len(inventory.cameras) == 2

    def test_missing_devices_container_keeps_state(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1, 2)))
        recorder.clear()
        assert inventory.handle_reply(_reply(b"<error>database offline</error>")) is False
        assert recorder.events == []
        assert {c.unique_id for c in inventory.cameras} == {1, 2}

    def test_truncated_document_keeps_state(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1)))
        recorder.clear()
        assert inventory.handle_reply(_reply(b'<devices><device id="2">')) is False
        assert recorder.events == []
        assert [c.unique_id for c in inventory.cameras] == [1]

    def test_malformed_document_before_first_sync_is_not_ready(self, inventory, recorder):
        inventory.handle_reply(_reply(b"not xml"))
        assert recorder.events == []
        assert inventory.devices_loaded is False

    def test_invalid_id_entry_is_skipped(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1, extra='<device id="x"/><device/>')))
        assert [c.unique_id for c in inventory.cameras] == [1]
        assert recorder.of("devices_ready") == [()]

    def test_bad_fields_skip_new_camera(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(
            1, extra='<device id="2"><resolutionX>wide</resolutionX></device>'
        )))
        assert [c.unique_id for c in inventory.cameras] == [1]
        assert len(recorder.of("camera_added")) == 1

    def test_bad_fields_keep_existing_camera(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1, 2)))
        recorder.clear()
        inventory.handle_reply(_reply(_devices(
            1, extra='<device id="2"><resolutionX>wide</resolutionX></device>'
        )))
        assert recorder.events == []
        assert inventory.get_camera(2).name == "Cam 2"


class TestDevicesReady:
    def test_fires_on_first_empty_list(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices()))
        assert recorder.names() == ["devices_ready"]

    def test_fires_again_when_list_repopulated(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1)))
        inventory.handle_reply(_reply(_devices()))
        recorder.clear()
        inventory.handle_reply(_reply(_devices(2)))
        assert recorder.names() == ["camera_added", "devices_ready"]

    def test_not_repeated_while_empty(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices()))
        inventory.handle_reply(_reply(_devices()))
        assert recorder.of("devices_ready") == [()]

    def test_fires_after_clear(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1)))
        inventory.clear()
        recorder.clear()
        inventory.handle_reply(_reply(_devices()))
        assert recorder.names() == ["devices_ready"]


class TestClear:
    def test_clear_removes_everything_offline(self, inventory, recorder):
        inventory.handle_reply(_reply(_devices(1, 2)))
        cams = inventory.cameras
        recorder.clear()

        inventory.clear()

        assert inventory.cameras == []
        assert inventory.devices_loaded is False
        assert recorder.of("camera_removed") == [(cams[0],), (cams[1],)]
        assert all(not c.online and c.is_removed for c in cams)
