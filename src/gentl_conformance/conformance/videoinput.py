"""tVideoinput: capture session object conformance."""

from __future__ import annotations

from gentl_conformance.conformance.base import DeviceConformanceFile, test_point
from gentl_conformance.drivers.subsystem import ADAPTOR_NAME
from gentl_conformance.suite.context import TestPointContext

__all__ = ["HARDWARE_INFO_FIELDS", "VideoinputTests"]

#: Fields every session's hardware info must report, and nothing else.
HARDWARE_INFO_FIELDS = (
    "AdaptorName",
    "DeviceName",
    "MaxHeight",
    "MaxWidth",
    "NativeDataType",
    "TotalSources",
    "VendorDriverDescription",
    "VendorDriverVersion",
)


class VideoinputTests(DeviceConformanceFile):
    """Checks the session object a device exposes at its default format."""

    name = "tVideoinput"

    @test_point("verifyVideoinputObj")
    def verify_videoinput_obj(self, t: TestPointContext) -> None:
        """Hardware info is complete and consistent with the live session."""
        with self.ctx.open_device() as vid:
            info = vid.hardware_info()
            t.verify_equal(sorted(info), sorted(HARDWARE_INFO_FIELDS), "Hardware info fields")
            t.verify_equal(info.get("AdaptorName"), ADAPTOR_NAME, "AdaptorName")

            width, height = vid.video_resolution
            t.verify_equal(info.get("MaxWidth"), width, "MaxWidth vs VideoResolution")
            t.verify_equal(info.get("MaxHeight"), height, "MaxHeight vs VideoResolution")

            frame = vid.read_snapshot()
            t.verify_equal(
                info.get("NativeDataType"), frame.dtype.name, "NativeDataType vs snapshot"
            )
            t.verify_equal(info.get("TotalSources"), len(vid.sources), "TotalSources")
            t.verify_not_empty(
                info.get("VendorDriverDescription") or "", "VendorDriverDescription is empty"
            )
            t.verify_not_empty(
                info.get("VendorDriverVersion") or "", "VendorDriverVersion is empty"
            )

    @test_point("verifySelectedSource")
    def verify_selected_source(self, t: TestPointContext) -> None:
        with self.ctx.open_device() as vid:
            available = vid.available_sources
            t.assert_true(available, "Device reports no sources")
            t.verify_equal(vid.selected_source_name, available[0], "Selected source")
            sources = vid.sources
            t.verify_equal(len(sources), len(available), "Number of source objects")
            t.verify_subset(
                [source.source_name for source in sources],
                available,
                "Source names not listed as available",
            )
