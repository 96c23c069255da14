"""Acquisition subsystem interface.

The conformance suite drives every GenTL producer and camera through one
consumer-side acquisition API. This module defines that API as protocols so
the suite can run against real hardware (harvesters) or the digital twin.

Protocols:
    AcquisitionSubsystem: Process-wide subsystem with an active producer
    DeviceSession: An opened capture session on one device
    VideoSource: The source sub-object of a capture session
    PreviewWindow: Live preview of a capture session

TypedDicts:
    DeviceInfo: One enumerated device
    PropertyInfo: Metadata for one session or source property
    HardwareInfo: Adaptor-level information about an open session
    ProducerReport: Which producer descriptors the subsystem has loaded

Implementations:
    DigitalTwinSubsystem: Simulated producers and cameras (twin.py)
    HarvestersSubsystem: Real GenTL producers via harvesters (hardware.py)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from types import TracebackType
from typing import TYPE_CHECKING, Any, Protocol, TypedDict, runtime_checkable

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from gentl_conformance.drivers.subsystem.disklog import DiskLogger

#: Adaptor name every GenTL session reports in its hardware info.
ADAPTOR_NAME = "gentl"

#: Properties present on both the session and its source; they belong to
#: the session when the two property sets are merged.
SHARED_PROPERTY_NAMES = ("Tag", "Type")


class DeviceInfo(TypedDict):
    """One device as enumerated under the active producer.

    Keys:
        DeviceName: Producer-assigned name (may differ between producers).
        DeviceID: Hardware ID, 1-based, valid only under the active producer.
        SupportedFormats: Video formats the device offers.
        DefaultFormat: Format used when a session is opened without one.
    """

    DeviceName: str
    DeviceID: int
    SupportedFormats: list[str]
    DefaultFormat: str


class PropertyInfo(TypedDict):
    """Metadata describing one property of a session or source.

    Keys:
        Type: Value type name ('double', 'integer', 'string', 'callback',
            'struct', 'any').
        Constraint: 'none', 'bounded', 'enum' or 'callback'.
        ConstraintValue: Allowed values for enum constraints, [min, max] for
            bounded ones, empty otherwise.
        DefaultValue: The property's default value.
        ReadOnly: 'always', 'whileRunning' or 'notCurrently'.
        DeviceSpecific: True if the property comes from the device node map.
    """

    Type: str
    Constraint: str
    ConstraintValue: Any
    DefaultValue: Any
    ReadOnly: str
    DeviceSpecific: bool


class HardwareInfo(TypedDict):
    """Adaptor-level information about an open capture session."""

    AdaptorName: str
    DeviceName: str
    MaxHeight: int
    MaxWidth: int
    NativeDataType: str
    TotalSources: int
    VendorDriverDescription: str
    VendorDriverVersion: str


class ProducerReport(TypedDict):
    """Support report for the loaded producers.

    Keys:
        search_path: The producer search path currently in effect.
        descriptors: Full paths of the producer descriptor files loaded.
    """

    search_path: str
    descriptors: list[str]


@runtime_checkable
class PropertyHolder(Protocol):  # pragma: no cover
    """Object exposing named, introspectable properties."""

    def property_names(self) -> list[str]:
        """Return all property names in a stable order."""
        ...

    def has_property(self, name: str) -> bool:
        """Return True if the property exists."""
        ...

    def property_info(self, name: str) -> PropertyInfo:
        """Return metadata for a property.

        Raises:
            KeyError: If the property does not exist.
        """
        ...

    def get(self, name: str) -> Any:
        """Return the current value of a property."""
        ...

    def set(self, name: str, value: Any) -> None:
        """Set a property value.

        Raises:
            KeyError: If the property does not exist.
            ValueError: If the value violates the property constraint.
            PermissionError: If the property is read-only.
        """
        ...


@runtime_checkable
class VideoSource(PropertyHolder, Protocol):  # pragma: no cover
    """Source sub-object of a capture session (device node map)."""

    @property
    def source_name(self) -> str:
        """Name of this source."""
        ...


@runtime_checkable
class PreviewWindow(Protocol):  # pragma: no cover
    """Live preview attached to a capture session."""

    @property
    def image(self) -> NDArray[Any]:
        """Most recent frame shown in the preview."""
        ...

    def close(self) -> None:
        """Close the preview."""
        ...


@runtime_checkable
class DeviceSession(PropertyHolder, Protocol):  # pragma: no cover
    """An opened capture session against one device.

    Sessions are created by AcquisitionSubsystem.open_device_session() and
    stay bound to the producer that was active at the time. They are
    invalidated by close() and by a subsystem reset.
    """

    @property
    def device_id(self) -> int:
        """Hardware ID the session was opened with."""
        ...

    @property
    def name(self) -> str:
        """Session name, '<format>-gentl-<device_id>'."""
        ...

    @property
    def video_format(self) -> str:
        """Video format in use."""
        ...

    @property
    def is_valid(self) -> bool:
        """False once the session is closed or the subsystem was reset."""
        ...

    @property
    def video_resolution(self) -> tuple[int, int]:
        """Full sensor resolution as (width, height)."""
        ...

    @property
    def roi_position(self) -> tuple[int, int, int, int]:
        """Region of interest as (x, y, width, height)."""
        ...

    @roi_position.setter
    def roi_position(self, roi: Sequence[float]) -> None:
        """Set the region of interest; the device may adjust it."""
        ...

    @property
    def available_sources(self) -> list[str]:
        """Names of the selectable sources."""
        ...

    @property
    def selected_source_name(self) -> str:
        """Name of the currently selected source."""
        ...

    @property
    def sources(self) -> list[VideoSource]:
        """All source objects, one per available source."""
        ...

    @property
    def source(self) -> VideoSource:
        """The selected source object."""
        ...

    @property
    def frames_acquired(self) -> int:
        """Frames acquired since the last start()."""
        ...

    @property
    def frames_available(self) -> int:
        """Frames held in the memory buffer."""
        ...

    @property
    def disk_logger_frame_count(self) -> int:
        """Frames handed to the disk logger since the last start()."""
        ...

    def hardware_info(self) -> HardwareInfo:
        """Return adaptor-level information for this session."""
        ...

    def read_snapshot(self) -> NDArray[Any]:
        """Acquire and return a single frame at the current ROI."""
        ...

    def attach_disk_logger(
        self, disk_logger: DiskLogger, logging_mode: str = "disk&memory"
    ) -> None:
        """Log acquired frames to disk (and memory for 'disk&memory')."""
        ...

    def start_capture(
        self, on_start: Callable[[DeviceSession], None] | None = None
    ) -> None:
        """Start acquisition; on_start runs after counters are reset."""
        ...

    def wait_while_logging(self, timeout_s: float | None = None) -> None:
        """Block until the current acquisition has finished logging."""
        ...

    def stop_capture(self) -> None:
        """Stop acquisition."""
        ...

    def preview(self) -> PreviewWindow:
        """Open a live preview."""
        ...

    def close(self) -> None:
        """Close the session and release the device."""
        ...

    def __enter__(self) -> DeviceSession:
        """Enter context manager."""
        ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager and close the session."""
        ...


@runtime_checkable
class AcquisitionSubsystem(Protocol):  # pragma: no cover
    """Process-wide acquisition subsystem.

    Holds the single active producer search path. Switching producers
    requires set_active_producer_path() followed by reset(); callers
    serialize this through SubsystemSession.
    """

    @property
    def active_producer_path(self) -> str:
        """The producer search path currently in effect."""
        ...

    def set_active_producer_path(self, path: str) -> None:
        """Make the producers under path the active ones (takes effect on reset)."""
        ...

    def reset(self) -> None:
        """Close every session and reload the active producers."""
        ...

    def enumerate_devices(self) -> list[DeviceInfo]:
        """Enumerate devices visible through the active producers.

        Raises:
            SubsystemQueryError: If a producer cannot be queried.
        """
        ...

    def open_device_session(
        self, hardware_id: int, video_format: str | None = None
    ) -> DeviceSession:
        """Open a capture session on a device.

        Raises:
            KeyError: If no device has this hardware ID.
            ValueError: If the device does not support the format.
        """
        ...

    def open_sessions(self) -> list[DeviceSession]:
        """Sessions that are still valid."""
        ...

    def producer_report(self) -> ProducerReport:
        """Report which producer descriptors are loaded."""
        ...


__all__ = [
    "ADAPTOR_NAME",
    "SHARED_PROPERTY_NAMES",
    "AcquisitionSubsystem",
    "DeviceInfo",
    "DeviceSession",
    "HardwareInfo",
    "PreviewWindow",
    "ProducerReport",
    "PropertyHolder",
    "PropertyInfo",
    "VideoSource",
]
