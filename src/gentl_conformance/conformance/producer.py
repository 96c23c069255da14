"""tProducer: the subsystem loads the producer it was pointed at."""

from __future__ import annotations

from pathlib import Path

from gentl_conformance.conformance.base import ConformanceFile, test_point
from gentl_conformance.errors import NoDevicesFoundError
from gentl_conformance.suite.context import TestPointContext
from gentl_conformance.suite.registry import ParameterCategory

__all__ = ["ProducerTests"]


class ProducerTests(ConformanceFile):
    """Runs once per producer with that producer active."""

    name = "tProducer"
    honors = ParameterCategory.PRODUCER

    def setup(self) -> None:
        if self.ctx.producer is None:
            raise RuntimeError(f"{self.name} requires a producer")
        self.ctx.acquire(self.ctx.producer)

    @test_point("verifyProducerListed")
    def verify_producer_listed(self, t: TestPointContext) -> None:
        """The support report names the active producer and its descriptors."""
        producer = self.ctx.producer
        assert producer is not None
        report = self.ctx.require_guard().subsystem.producer_report()
        t.log("Producer report", search_path=report["search_path"], descriptors=report["descriptors"])

        t.verify_equal(report["search_path"], producer.directory, "Active producer path")
        t.verify_not_empty(report["descriptors"], "No producer descriptors loaded")
        for descriptor in report["descriptors"]:
            path = Path(descriptor)
            t.verify_true(path.is_file(), f"Descriptor {descriptor} does not exist")
            t.verify_equal(
                path.parent, Path(producer.directory), f"Directory of descriptor {descriptor}"
            )

    @test_point("verifyVendorDriver")
    def verify_vendor_driver(self, t: TestPointContext) -> None:
        """All devices under one producer report the same vendor driver."""
        guard = self.ctx.require_guard()
        try:
            devices = self.ctx.enumerator.enumerate(guard)
        except NoDevicesFoundError:
            devices = []
        t.assume_true(len(devices) >= 2, "At least two devices are needed to compare drivers")

        drivers: list[tuple[str, str]] = []
        for device in devices:
            with guard.open(device.hardware_id) as vid:
                info = vid.hardware_info()
            drivers.append((info["VendorDriverDescription"], info["VendorDriverVersion"]))

        description, version = drivers[0]
        for device, (other_description, other_version) in zip(devices[1:], drivers[1:]):
            t.verify_equal(
                other_description,
                description,
                f"VendorDriverDescription of device {device.hardware_id}",
            )
            t.verify_equal(
                other_version, version, f"VendorDriverVersion of device {device.hardware_id}"
            )
