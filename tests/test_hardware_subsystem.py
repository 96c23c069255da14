"""Unit tests for the harvesters backend with a mock Harvester.

Tests HarvestersSubsystem and HarvestersDeviceSession against mock
ImageAcquirer and node map objects, enabling testing without a GenTL
producer or camera.

Test Categories:
1. HarvestersSubsystem Tests
   - Producer loading from the active search path
   - Device enumeration and format probing
   - Failure translation to SubsystemQueryError
2. HarvestersDeviceSession Tests
   - ROI clamping to node ranges and increments
   - Snapshot fetch and acquirer start/stop
   - Source properties from the node map
   - close() resource cleanup
"""

from __future__ import annotations

import os
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

pytest.importorskip("harvesters.core")

from gentl_conformance.drivers.subsystem import (  # noqa: E402
    AcquisitionSubsystem,
    DeviceSession,
    VideoSource,
)
from gentl_conformance.drivers.subsystem.hardware import HarvestersSubsystem  # noqa: E402
from gentl_conformance.errors import SubsystemQueryError  # noqa: E402
from tests.helpers import assert_implements_protocol, make_producer_dir  # noqa: E402

# =============================================================================
# Mock Fixtures
# =============================================================================


def _int_node(value: int, low: int, high: int, inc: int = 1) -> SimpleNamespace:
    return SimpleNamespace(value=value, min=low, max=high, inc=inc)


class MockNodeMap:
    """GenICam node map of a 640x480 mono camera."""

    def __init__(self) -> None:
        self.PixelFormat = SimpleNamespace(value="Mono8", symbolics=("Mono8", "Mono12"))
        self.WidthMax = SimpleNamespace(value=640)
        self.HeightMax = SimpleNamespace(value=480)
        self.Width = _int_node(640, 16, 640, 4)
        self.Height = _int_node(480, 16, 480, 4)
        self.OffsetX = _int_node(0, 0, 624, 2)
        self.OffsetY = _int_node(0, 0, 464, 2)
        self.Gain = SimpleNamespace(value=1.5, min=0.0, max=24.0)
        self.DeviceUserID = SimpleNamespace(value="")


def _mock_acquirer(node_map: MockNodeMap) -> MagicMock:
    acquirer = MagicMock()
    acquirer.remote_device.node_map = node_map

    def fetch(timeout: float) -> MagicMock:
        width, height = node_map.Width.value, node_map.Height.value
        component = SimpleNamespace(
            width=width,
            height=height,
            num_components_per_pixel=1,
            data=(np.arange(width * height) % 256).astype(np.uint8),
        )
        buffer = SimpleNamespace(payload=SimpleNamespace(components=[component]))
        context = MagicMock()
        context.__enter__.return_value = buffer
        return context

    acquirer.fetch.side_effect = fetch
    return acquirer


@pytest.fixture
def node_map() -> MockNodeMap:
    return MockNodeMap()


@pytest.fixture
def harvester(node_map: MockNodeMap) -> MagicMock:
    mock = MagicMock()
    mock.device_info_list = [SimpleNamespace(vendor="Acme", model="Cam", serial_number="S1")]
    mock.create.side_effect = lambda index: _mock_acquirer(node_map)
    return mock


@pytest.fixture
def producer_dir(tmp_path, monkeypatch):
    directory = make_producer_dir(tmp_path, "acme", ("acme.cti",))
    monkeypatch.setenv("GENICAM_GENTL64_PATH", str(directory))
    return directory


@pytest.fixture
def subsystem(harvester, producer_dir) -> Any:
    with patch(
        "gentl_conformance.drivers.subsystem.hardware.Harvester", return_value=harvester
    ):
        yield HarvestersSubsystem()


# =============================================================================
# HarvestersSubsystem Tests
# =============================================================================


class TestHarvestersSubsystem:
    """Tests for producer loading and enumeration."""

    def test_loads_descriptors_of_search_path(self, subsystem, harvester, producer_dir):
        """Verifies reset() loads every descriptor of the active path.

        Business context:
        The conformance suite only means something if the subsystem loads
        exactly the producer under test and nothing else.

        Arrangement:
        1. Producer directory with acme.cti on the env var.

        Action:
        Construct the subsystem (which resets).

        Assertion Strategy:
        - add_file called with the descriptor path.
        - producer_report names the path and descriptor.
        - Protocol compliance.

        Testing Principle:
        Validates producer loading through harvesters.
        """
        cti = str(producer_dir / "acme.cti")
        harvester.add_file.assert_called_once_with(cti)
        assert subsystem.producer_report() == {
            "search_path": str(producer_dir),
            "descriptors": [cti],
        }
        assert_implements_protocol(subsystem, AcquisitionSubsystem)

    def test_enumerates_and_probes_formats(self, subsystem):
        devices = subsystem.enumerate_devices()
        assert devices == [
            {
                "DeviceName": "Acme Cam (S1)",
                "DeviceID": 1,
                "SupportedFormats": ["Mono8", "Mono12"],
                "DefaultFormat": "Mono8",
            }
        ]

    def test_set_path_mirrors_env_var(self, subsystem, tmp_path):
        subsystem.set_active_producer_path(str(tmp_path))
        assert os.environ["GENICAM_GENTL64_PATH"] == str(tmp_path)
        assert subsystem.active_producer_path == str(tmp_path)

    def test_update_failure_raises_query_error(self, subsystem, harvester):
        harvester.update.side_effect = RuntimeError("GenTL error")
        with pytest.raises(SubsystemQueryError, match="GenTL error"):
            subsystem.enumerate_devices()

    def test_invalid_device_id(self, subsystem):
        with pytest.raises(KeyError):
            subsystem.open_device_session(2)


# =============================================================================
# HarvestersDeviceSession Tests
# =============================================================================


class TestHarvestersDeviceSession:
    """Tests for sessions wrapping an ImageAcquirer."""

    def test_session_identity_and_info(self, subsystem):
        with subsystem.open_device_session(1) as session:
            assert_implements_protocol(session, DeviceSession)
            assert_implements_protocol(session.source, VideoSource)
            assert session.name == "Mono8-gentl-1"
            assert session.video_resolution == (640, 480)
            info = session.hardware_info()
            assert info["VendorDriverDescription"] == "GenTL Adaptor with acme GenTL Producer"
            assert info["NativeDataType"] == "uint8"

    def test_roi_clamped_to_increments(self, subsystem):
        """Verifies ROI values snap to node ranges and increments.

        Arrangement:
        1. Width/Height increment 4, offset increment 2, minimum size 16.

        Action:
        Set ROIPosition [3, 5, 101, 50].

        Assertion Strategy:
        ROI reads back as (2, 4, 100, 48).

        Testing Principle:
        Validates device-side ROI adjustment.
        """
        with subsystem.open_device_session(1) as session:
            session.roi_position = (3, 5, 101, 50)
            assert session.roi_position == (2, 4, 100, 48)
            assert session.get("ROIPosition") == [2, 4, 100, 48]

    def test_snapshot_starts_and_stops_acquirer(self, subsystem):
        with subsystem.open_device_session(1) as session:
            session.roi_position = (0, 0, 64, 32)
            frame = session.read_snapshot()
            acquirer = session._acquirer
        assert frame.shape == (32, 64)
        acquirer.start.assert_called_once()
        acquirer.stop.assert_called_once()
        acquirer.destroy.assert_called_once()

    def test_capture_fills_buffer(self, subsystem):
        with subsystem.open_device_session(1) as session:
            session.set("FramesPerTrigger", 3)
            session.start_capture()
            assert (session.frames_acquired, session.frames_available) == (3, 3)
            with pytest.raises(PermissionError):
                session.set("Name", "renamed")

    def test_source_properties_from_node_map(self, subsystem, node_map):
        with subsystem.open_device_session(1, "Mono12") as session:
            source = session.source
            assert node_map.PixelFormat.value == "Mono12"
            assert {"DeviceUserID", "Gain", "PixelFormat"} <= set(source.property_names())
            assert source.property_info("PixelFormat")["ConstraintValue"] == ["Mono8", "Mono12"]
            assert source.property_info("Gain")["Constraint"] == "bounded"
            source.set("DeviceUserID", "mw090324140508")
            assert node_map.DeviceUserID.value == "mw090324140508"
            with pytest.raises(KeyError):
                source.get("Nonexistent")

    def test_close_forgets_session(self, subsystem):
        session = subsystem.open_device_session(1)
        assert subsystem.open_sessions() == [session]
        session.close()
        session.close()
        assert subsystem.open_sessions() == []
