"""The conformance test files, in registry order.

| file          | points                                                          | honors                   |
|---------------|-----------------------------------------------------------------|--------------------------|
| tAcquisition  | verifyAcquisition, verifySnapshot, verifyPreview, verifyTestPattern | producer, device     |
| tDevices      | verifyDeviceSequence, verifyAllDevices                          | none                     |
| tFormats      | verifyFormat                                                    | producer, device, format |
| tProducer     | verifyProducerListed, verifyVendorDriver                        | producer                 |
| tVideoinput   | verifyVideoinputObj, verifySelectedSource                       | producer, device         |
"""

from gentl_conformance.conformance.acquisition import AcquisitionTests
from gentl_conformance.conformance.base import (
    ConformanceFile,
    DeviceConformanceFile,
    test_point,
)
from gentl_conformance.conformance.devices import DevicesTests
from gentl_conformance.conformance.formats import FormatsTests
from gentl_conformance.conformance.producer import ProducerTests
from gentl_conformance.conformance.videoinput import VideoinputTests
from gentl_conformance.suite.registry import TestRegistry

FILE_CLASSES: tuple[type[ConformanceFile], ...] = (
    AcquisitionTests,
    DevicesTests,
    FormatsTests,
    ProducerTests,
    VideoinputTests,
)


def default_registry() -> TestRegistry:
    """Registry of the built-in test files."""
    return TestRegistry(cls.entry() for cls in FILE_CLASSES)


__all__ = [
    "FILE_CLASSES",
    "AcquisitionTests",
    "ConformanceFile",
    "DeviceConformanceFile",
    "DevicesTests",
    "FormatsTests",
    "ProducerTests",
    "VideoinputTests",
    "default_registry",
    "test_point",
]
