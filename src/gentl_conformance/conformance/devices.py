"""tDevices: device numbering and cross-producer device identity.

verifyAllDevices checks that every producer sees every device. Device
names and IDs differ between producers, so each physical device is
identified by a marker written to its non-volatile DeviceUserID:

    mw<ddMMyyHHmmss>

A marker is reused only if this run wrote it; empty values and markers
left by earlier runs are overwritten with a fresh one. Devices without a
DeviceUserID cannot be tracked and are left out of the comparison.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from gentl_conformance.conformance.base import ConformanceFile, test_point
from gentl_conformance.errors import NoDevicesFoundError
from gentl_conformance.observability import get_logger
from gentl_conformance.suite.context import TestPointContext
from gentl_conformance.suite.registry import ParameterCategory

if TYPE_CHECKING:
    from gentl_conformance.drivers.subsystem import VideoSource

logger = get_logger(__name__)

__all__ = ["MARKER_FORMAT", "MARKER_PREFIX", "NO_DUID", "DevicesTests", "parse_marker"]

MARKER_PREFIX = "mw"
MARKER_FORMAT = "%d%m%y%H%M%S"
MARKER_LENGTH = len(MARKER_PREFIX) + 12
NO_DUID = "NO_DUID"
DEVICE_USER_ID = "DeviceUserID"


def parse_marker(value: str) -> datetime | None:
    """Creation time of a marker written by this suite, else None."""
    if len(value) != MARKER_LENGTH or not value.startswith(MARKER_PREFIX):
        return None
    try:
        return datetime.strptime(value[len(MARKER_PREFIX) :], MARKER_FORMAT)
    except ValueError:
        logger.info("DeviceUserID looks like a marker but does not parse", value=value)
        return None


class DevicesTests(ConformanceFile):
    """Unparameterized checks spanning every producer on the search path."""

    name = "tDevices"
    honors = ParameterCategory.NONE
    needs_producers = True

    def setup(self) -> None:
        producers = list(self.ctx.producers)
        if not producers:
            raise RuntimeError("No producers available for device checks")
        guard = self.ctx.acquire(producers[0])
        # Enumerate through the full original search path, not one producer
        guard.activate(guard.initial_path)
        self._started = self.ctx.clock.now().replace(microsecond=0)
        self._last_marker: datetime | None = None

    @test_point("verifyDeviceSequence")
    def verify_device_sequence(self, t: TestPointContext) -> None:
        """Hardware IDs are 1..N, ascending, with one record each."""
        infos = self.ctx.require_guard().subsystem.enumerate_devices()
        t.assert_true(infos, "No devices found")
        ids = [int(info["DeviceID"]) for info in infos]
        t.verify_equal(ids, list(range(1, len(ids) + 1)), "Device IDs")
        t.verify_equal(len(set(ids)), len(infos), "Device info records per ID")

    @test_point("verifyAllDevices")
    def verify_all_devices(self, t: TestPointContext) -> None:
        """Every tracked device is visible through every producer."""
        guard = self.ctx.require_guard()
        producers = list(self.ctx.producers)
        seen: dict[str, list[str]] = {}

        for producer in producers:
            guard.switch(producer)
            try:
                devices = self.ctx.enumerator.enumerate(guard)
            except NoDevicesFoundError:
                t.log("No devices found using producer", producer=producer.directory)
                devices = []
            markers: list[str] = []
            for device in devices:
                with guard.open(device.hardware_id) as vid:
                    markers.append(self._marker(vid.source))
            seen[producer.directory] = markers
        guard.activate(guard.initial_path)

        tracked = sorted({m for markers in seen.values() for m in markers if m != NO_DUID})
        matrix = {
            marker: [marker in seen[p.directory] for p in producers] for marker in tracked
        }
        t.log(
            "Device presence by producer",
            producers=[p.directory for p in producers],
            presence={marker: row for marker, row in matrix.items()},
        )
        for marker, row in matrix.items():
            for producer, present in zip(producers, row):
                t.verify_true(
                    present,
                    f"Device {marker} not found using producer {producer.directory}",
                )

    def _marker(self, source: VideoSource) -> str:
        if not source.has_property(DEVICE_USER_ID):
            return NO_DUID
        value = str(source.get(DEVICE_USER_ID) or "")
        created = parse_marker(value)
        if created is not None and created >= self._started:
            return value
        marker = self._new_marker()
        source.set(DEVICE_USER_ID, marker)
        logger.info("DeviceUserID marker written", previous=value, marker=marker)
        return marker

    def _new_marker(self) -> str:
        """A marker newer than any this run wrote before."""
        clock = self.ctx.clock
        clock.sleep(1.0)
        now = clock.now().replace(microsecond=0)
        while self._last_marker is not None and now <= self._last_marker:
            clock.sleep(1.0)
            now = clock.now().replace(microsecond=0)
        self._last_marker = now
        return MARKER_PREFIX + now.strftime(MARKER_FORMAT)
