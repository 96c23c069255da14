"""tFormats: every supported video format opens a valid session."""

from __future__ import annotations

from gentl_conformance.conformance.base import DeviceConformanceFile, test_point
from gentl_conformance.drivers.subsystem import ADAPTOR_NAME
from gentl_conformance.suite.context import TestPointContext
from gentl_conformance.suite.registry import ParameterCategory

__all__ = ["FormatsTests"]


class FormatsTests(DeviceConformanceFile):
    """Opens the device once per format under test."""

    name = "tFormats"
    honors = ParameterCategory.PRODUCER | ParameterCategory.DEVICE | ParameterCategory.FORMAT

    @test_point("verifyFormat")
    def verify_format(self, t: TestPointContext) -> None:
        configuration = self.ctx.configuration
        assert configuration is not None
        video_format = configuration.format
        t.assume_true(video_format is not None, "No format bound to this configuration")
        spec = self.ctx.require_spec()
        t.assume_true(
            video_format in spec("formats"),
            f"Format {video_format} is not listed in hardware spec {spec.key}",
        )
        device = self.ctx.require_device()

        with self.ctx.open_device(video_format) as vid:
            t.verify_true(vid.is_valid, f"Session for {video_format} is not valid")
            t.verify_equal(vid.video_format, video_format, "VideoFormat")
            t.verify_equal(
                vid.name, f"{video_format}-{ADAPTOR_NAME}-{device.hardware_id}", "Session name"
            )
            t.verify_equal(vid.device_id, device.hardware_id, "DeviceID")
