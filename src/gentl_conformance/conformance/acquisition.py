"""tAcquisition: streaming, snapshots, preview and sensor test patterns."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from gentl_conformance.conformance.base import DeviceConformanceFile, test_point
from gentl_conformance.data.hwspec import EnumList
from gentl_conformance.drivers.subsystem.disklog import DiskLogger
from gentl_conformance.suite.context import TestPointContext
from gentl_conformance.suite.waiting import eventually

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from gentl_conformance.drivers.subsystem import DeviceSession, PreviewWindow, VideoSource

__all__ = ["ROI_OFFSET_DIVISIONS", "TESTABLE_PATTERNS", "AcquisitionTests", "check_pattern"]

#: Number of ROI offsets verifySnapshot steps through per axis.
ROI_OFFSET_DIVISIONS = 5

#: Largest ROI used by verifyPreview, as (width, height).
PREVIEW_ROI_LIMIT = (512, 256)

TESTABLE_PATTERNS = ("Black", "White", "GreyHorizontalRamp", "GreyVerticalRamp")
PATTERN_SELECTOR = "Sensor"


def check_pattern(pattern: str, frame: NDArray[Any]) -> str | None:
    """Check a frame against a sensor test pattern.

    Only the first channel is inspected.

    Returns:
        None if the frame matches, otherwise a description of the mismatch.
    """
    plane = frame[:, :, 0] if frame.ndim == 3 else frame
    plane = plane.astype(np.int64)
    if pattern == "Black":
        if plane.min() != plane.max() or plane.max() > 1:
            return f"Black frame is not uniform <= 1 (min {plane.min()}, max {plane.max()})"
        return None
    if pattern == "White":
        if plane.min() != plane.max() or plane.min() < 254:
            return f"White frame is not uniform >= 254 (min {plane.min()}, max {plane.max()})"
        return None
    if pattern == "GreyHorizontalRamp":
        ramp = plane
    elif pattern == "GreyVerticalRamp":
        ramp = plane.T
    else:
        raise ValueError(f"Unknown test pattern {pattern!r}")
    if not (ramp == ramp[0:1, :]).all():
        return f"{pattern}: lines across the ramp are not identical"
    if (np.diff(ramp[0]) < 0).any():
        return f"{pattern}: values decrease along the ramp"
    return None


class AcquisitionTests(DeviceConformanceFile):
    """Frame delivery checks at the device default format."""

    name = "tAcquisition"

    @test_point("verifyAcquisition")
    def verify_acquisition(self, t: TestPointContext) -> None:
        """Disk and memory logging agree on the number of frames."""
        spec = self.ctx.require_spec()
        path = self.ctx.require_temp_dir() / f"{spec.key}_VideoWriter.avi"
        timeout = self.ctx.streaming_timeout_s
        disk_logger = DiskLogger(path)
        try:
            with self.ctx.open_device() as vid:
                vid.attach_disk_logger(disk_logger, "disk&memory")
                vid.start_capture()
                vid.wait_while_logging(timeout)
                eventually(
                    lambda: vid.frames_acquired,
                    lambda acquired: acquired == disk_logger.frame_count,
                    timeout,
                    self.ctx.clock,
                    description="FramesAcquired to match the disk logger",
                )
                eventually(
                    lambda: vid.disk_logger_frame_count,
                    lambda logged: logged == disk_logger.frame_count,
                    timeout,
                    self.ctx.clock,
                    description="DiskLoggerFrameCount to match the disk logger",
                )
                vid.stop_capture()
                t.verify_true(disk_logger.frame_count > 0, "No frames were logged to disk")

                counters: dict[str, int] = {}

                def record_counters(session: DeviceSession) -> None:
                    counters["DiskLoggerFrameCount"] = session.disk_logger_frame_count
                    counters["FramesAvailable"] = session.frames_available
                    counters["FramesAcquired"] = session.frames_acquired

                vid.start_capture(on_start=record_counters)
                vid.stop_capture()
                t.assert_true(counters, "Start callback was not called")
                for counter, value in counters.items():
                    t.verify_equal(value, 0, f"{counter} at restart")
        finally:
            disk_logger.close()

    @test_point("verifySnapshot")
    def verify_snapshot(self, t: TestPointContext) -> None:
        """Snapshots honor the ROI size and the native data type."""
        with self.ctx.open_device() as vid:
            native = vid.hardware_info()["NativeDataType"]
            max_width, max_height = vid.video_resolution
            x_offsets = _offsets(max_width)
            y_offsets = _offsets(max_height)

            for xo, yo in zip(x_offsets, y_offsets):
                roi = (xo, yo, max_width - xo, max_height - yo)
                try:
                    vid.roi_position = roi
                    frame = vid.read_snapshot()
                except (RuntimeError, ValueError, OSError) as exc:
                    t.log("Snapshot failed, ROI not supported", roi=list(roi), error=str(exc))
                    continue
                self._verify_frame(t, vid, frame, native)

            vid.roi_position = (0, 0, 1, 1)
            self._verify_frame(t, vid, vid.read_snapshot(), native)
            vid.roi_position = (0, 0, max_width, max_height)

    @test_point("verifyPreview")
    def verify_preview(self, t: TestPointContext) -> None:
        """The preview follows ROI changes."""
        timeout = self.ctx.streaming_timeout_s
        with self.ctx.open_device() as vid:
            x, y, width, height = vid.roi_position
            max_w, max_h = PREVIEW_ROI_LIMIT
            vid.roi_position = (x, y, min(width, max_w), min(height, max_h))
            window = vid.preview()
            try:
                self._wait_for_preview(window, vid.roi_position, timeout)
                x, y, width, height = vid.roi_position
                vid.roi_position = (x, y, width // 2, height // 2)
                self._wait_for_preview(window, vid.roi_position, timeout)
            finally:
                window.close()

    @test_point("verifyTestPattern")
    def verify_test_pattern(self, t: TestPointContext) -> None:
        """Sensor test patterns have the expected pixel structure."""
        spec = self.ctx.require_spec()
        t.assume_true(spec.has_property("TestPattern"), "Device has no TestPattern property")
        t.assume_true(
            spec.has_property("TestPatternGeneratorSelector"),
            "Device has no TestPatternGeneratorSelector property",
        )
        selectors = spec.record("TestPatternGeneratorSelector").constraint_value
        t.assume_true(
            isinstance(selectors, EnumList) and PATTERN_SELECTOR in selectors.values,
            f"'{PATTERN_SELECTOR}' is not a TestPatternGeneratorSelector choice",
        )

        with self.ctx.open_device() as vid:
            source = vid.source
            source.set("TestPatternGeneratorSelector", PATTERN_SELECTOR)
            # Pattern choices depend on the selector, so read them live
            available = _choices(source, "TestPattern")
            patterns = [p for p in TESTABLE_PATTERNS if p in available]
            t.assume_true(patterns, f"No testable pattern among {available}")

            try:
                for pattern in patterns:
                    source.set("TestPattern", pattern)
                    problem = check_pattern(pattern, vid.read_snapshot())
                    t.verify_true(problem is None, problem or "")
            finally:
                source.set("TestPattern", "Off")

    def _wait_for_preview(
        self, window: PreviewWindow, roi: tuple[int, int, int, int], timeout: float
    ) -> None:
        eventually(
            lambda: tuple(window.image.shape[:2]),
            (roi[3], roi[2]),
            timeout,
            self.ctx.clock,
            description=f"preview to match ROI {list(roi)}",
        )

    def _verify_frame(
        self, t: TestPointContext, vid: DeviceSession, frame: NDArray[Any], native: str
    ) -> None:
        roi = vid.roi_position
        t.verify_equal(frame.shape[:2], (roi[3], roi[2]), f"Snapshot size at ROI {list(roi)}")
        t.verify_equal(frame.dtype.name, native, f"Snapshot data type at ROI {list(roi)}")


def _offsets(size: int) -> list[int]:
    step = max(size // ROI_OFFSET_DIVISIONS, 1)
    return list(range(0, size, step))[:ROI_OFFSET_DIVISIONS]


def _choices(source: VideoSource, name: str) -> list[str]:
    info = source.property_info(name)
    return [str(choice) for choice in info["ConstraintValue"]]
