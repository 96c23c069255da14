"""Producer discovery, device enumeration and exclusive subsystem access."""

from gentl_conformance.devices.enumerator import (
    DeviceDescriptor,
    DeviceEnumerator,
    resolve_hardware_id,
    spec_file_key,
)
from gentl_conformance.devices.producers import (
    ProducerDiscovery,
    ProducerRef,
    normalize_directory,
)
from gentl_conformance.devices.session import (
    DeviceHandle,
    ReleaseReport,
    SessionGuard,
    SubsystemSession,
)

__all__ = [
    "DeviceDescriptor",
    "DeviceEnumerator",
    "DeviceHandle",
    "ProducerDiscovery",
    "ProducerRef",
    "ReleaseReport",
    "SessionGuard",
    "SubsystemSession",
    "normalize_directory",
    "resolve_hardware_id",
    "spec_file_key",
]
