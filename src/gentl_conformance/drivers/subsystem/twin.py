"""Digital Twin Acquisition Subsystem - Simulated GenTL Stack for Testing.

Simulates GenTL producers and GenICam cameras so the conformance suite can
run end to end without hardware. Follows the AcquisitionSubsystem protocol
for drop-in replacement of the harvesters backend.

Simulation model:
    Producers: Any directory on the active search path that contains a
        ``*.cti`` file is a loaded producer. Per-directory behavior (vendor,
        which devices it sees, naming, failures) comes from TwinProducer.
    Devices: TwinDevice describes one physical camera. Its persistent state
        (DeviceUserID) is shared by every producer that sees it, like
        non-volatile camera memory.
    Frames: Synthetic numpy frames honoring ROI, format bit depth and the
        sensor test patterns (Black, White, GreyHorizontalRamp,
        GreyVerticalRamp).

Classes:
    TwinDevice: Physical camera description
    TwinProducer: Producer behavior for one directory
    DigitalTwinConfig: Complete simulated setup
    DigitalTwinSubsystem: AcquisitionSubsystem implementation
    TwinDeviceSession: DeviceSession implementation
    TwinVideoSource: VideoSource implementation
    TwinPreviewWindow: PreviewWindow implementation

Example:
    from gentl_conformance.drivers.subsystem.twin import (
        DigitalTwinConfig,
        DigitalTwinSubsystem,
        TwinProducer,
    )

    subsystem = DigitalTwinSubsystem(
        DigitalTwinConfig(producers={"/opt/gentl/vendor": TwinProducer(vendor="Acme")})
    )
    subsystem.set_active_producer_path("/opt/gentl/vendor")
    subsystem.reset()
    for info in subsystem.enumerate_devices():
        print(info["DeviceID"], info["DeviceName"])
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType, TracebackType
from typing import TYPE_CHECKING, Any, final

import numpy as np

from gentl_conformance.drivers.subsystem import (
    ADAPTOR_NAME,
    DeviceInfo,
    HardwareInfo,
    ProducerReport,
    PropertyInfo,
)
from gentl_conformance.errors import SubsystemQueryError
from gentl_conformance.observability import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from gentl_conformance.drivers.subsystem.disklog import DiskLogger

logger = get_logger(__name__)

__all__ = [
    "DEFAULT_DEVICES",
    "DigitalTwinConfig",
    "DigitalTwinSubsystem",
    "TwinDevice",
    "TwinDeviceSession",
    "TwinPreviewWindow",
    "TwinProducer",
    "TwinVideoSource",
    "default_error_callback",
]

# =============================================================================
# Constants
# =============================================================================

DESCRIPTOR_PATTERN = "*.cti"

ALL_TEST_PATTERNS = ("Off", "Black", "White", "GreyHorizontalRamp", "GreyVerticalRamp")

LOGGING_MODES = ("disk", "disk&memory", "memory")

_INT32_MAX = 2_147_483_647


def default_error_callback(session: Any, event: Any = None) -> None:
    """Default ErrorFcn; logs acquisition errors."""
    logger.error("Acquisition error", session=getattr(session, "name", None), event=event)


@dataclass(frozen=True)
class TwinDevice:
    """Simulated physical camera.

    Attributes:
        serial: Stable identity of the physical device.
        model: Model name used to build producer-specific device names.
        max_width: Sensor width in pixels.
        max_height: Sensor height in pixels.
        formats: Supported video formats.
        default_format: Format used when none is requested.
        has_device_user_id: Whether the source exposes DeviceUserID.
        device_user_id: Initial DeviceUserID stored in the camera.
        test_patterns: Sensor test patterns; empty disables TestPattern
            and TestPatternGeneratorSelector entirely.
        min_roi: Smallest (width, height) the sensor accepts.
        source_names: Names of the selectable sources.
        extra_source_properties: Additional source properties by name.
    """

    serial: str
    model: str = "TwinCam"
    max_width: int = 320
    max_height: int = 240
    formats: tuple[str, ...] = ("Mono8", "Mono16")
    default_format: str = "Mono8"
    has_device_user_id: bool = True
    device_user_id: str = ""
    test_patterns: tuple[str, ...] = ALL_TEST_PATTERNS
    min_roi: tuple[int, int] = (16, 16)
    source_names: tuple[str, ...] = ("input1",)
    extra_source_properties: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )


@dataclass(frozen=True)
class TwinProducer:
    """Behavior of one simulated producer directory.

    Attributes:
        vendor: Producer vendor, reported in VendorDriverDescription.
        driver_version: Reported as VendorDriverVersion.
        device_serials: Serials visible through this producer in
            enumeration order. None means every configured device.
        name_template: Format string for device names; receives model,
            serial and vendor.
        broken: If True, enumerating devices fails with SubsystemQueryError.
        load_fails: If True, reset() fails with SubsystemQueryError while
            this directory is on the active path, like a producer library
            that cannot be loaded.
        cached_user_ids: Serials whose DeviceUserID this producer keeps in
            its own cache instead of the camera, so the device shows a
            different identity than under other producers.
    """

    vendor: str = "Digital Twin"
    driver_version: str = "1.0.0"
    device_serials: tuple[str, ...] | None = None
    name_template: str = "{model} ({serial})"
    broken: bool = False
    load_fails: bool = False
    cached_user_ids: tuple[str, ...] = ()


# Camera 0: monochrome machine-vision camera, 8/16 bit
# Camera 1: color camera with a packed RGB default format
DEFAULT_DEVICES: tuple[TwinDevice, ...] = (
    TwinDevice(serial="TW0001", model="TwinCam Mono"),
    TwinDevice(
        serial="TW0002",
        model="TwinCam Color",
        max_width=400,
        max_height=300,
        formats=("Mono8", "RGB8Packed"),
        default_format="RGB8Packed",
    ),
)


@dataclass
class DigitalTwinConfig:
    """Configuration for the simulated GenTL stack.

    Attributes:
        devices: Physical cameras attached to the simulated host.
        producers: Per-directory producer behavior, keyed by directory path.
        default_producer: Behavior for producer directories not listed.
        frames_per_trigger: Frames acquired by one start_capture().
        initial_producer_path: Active search path at construction. None
            reads the producer environment variable.
        producer_env_var: Environment variable holding the search path.
    """

    devices: tuple[TwinDevice, ...] = DEFAULT_DEVICES
    producers: Mapping[str, TwinProducer] = field(default_factory=dict)
    default_producer: TwinProducer = field(default_factory=TwinProducer)
    frames_per_trigger: int = 10
    initial_producer_path: str | None = None
    producer_env_var: str = "GENICAM_GENTL64_PATH"


# =============================================================================
# Property tables
# =============================================================================


@dataclass
class _TwinProperty:
    """One simulated property with metadata and storage."""

    type: str
    constraint: str = "none"
    constraint_value: Any = ()
    default: Any = None
    read_only: str = "notCurrently"
    device_specific: bool = False
    getter: Callable[[], Any] | None = None
    setter: Callable[[Any], None] | None = None
    value: Any = None

    def info(self) -> PropertyInfo:
        constraint_value = self.constraint_value
        if callable(constraint_value):
            constraint_value = constraint_value()
        return PropertyInfo(
            Type=self.type,
            Constraint=self.constraint,
            ConstraintValue=list(constraint_value),
            DefaultValue=self.default,
            ReadOnly=self.read_only,
            DeviceSpecific=self.device_specific,
        )


class _PropertyTable:
    """Name-ordered property storage shared by sessions and sources."""

    def __init__(self) -> None:
        self._props: dict[str, _TwinProperty] = {}

    def _define(self, name: str, prop: _TwinProperty) -> None:
        if prop.getter is None and prop.value is None:
            prop.value = prop.default
        self._props[name] = prop

    def property_names(self) -> list[str]:
        return sorted(self._props)

    def has_property(self, name: str) -> bool:
        return name in self._props

    def property_info(self, name: str) -> PropertyInfo:
        return self._lookup(name).info()

    def get(self, name: str) -> Any:
        prop = self._lookup(name)
        if prop.getter is not None:
            return prop.getter()
        return prop.value

    def set(self, name: str, value: Any) -> None:
        prop = self._lookup(name)
        if prop.read_only == "always":
            raise PermissionError(f"Property '{name}' is read-only")
        if prop.read_only == "whileRunning" and self._is_running():
            raise PermissionError(f"Property '{name}' is read-only while running")
        info = prop.info()
        if info["Constraint"] == "enum" and value not in info["ConstraintValue"]:
            raise ValueError(
                f"Invalid value {value!r} for '{name}'; "
                f"expected one of {info['ConstraintValue']}"
            )
        if info["Constraint"] == "bounded":
            low, high = info["ConstraintValue"]
            if not low <= value <= high:
                raise ValueError(f"Value {value!r} for '{name}' outside [{low}, {high}]")
        if prop.setter is not None:
            prop.setter(value)
        else:
            prop.value = value

    def _lookup(self, name: str) -> _TwinProperty:
        try:
            return self._props[name]
        except KeyError:
            raise KeyError(f"Unknown property '{name}'") from None

    def _is_running(self) -> bool:
        return False


def _infer_property(value: Any) -> _TwinProperty:
    """Build metadata for an extra source property from its default."""
    if isinstance(value, bool):
        return _TwinProperty("logical", default=value, device_specific=True)
    if isinstance(value, int):
        return _TwinProperty("integer", default=value, device_specific=True)
    if isinstance(value, float):
        return _TwinProperty("double", default=value, device_specific=True)
    if isinstance(value, str):
        return _TwinProperty("string", default=value, device_specific=True)
    return _TwinProperty("any", default=value, device_specific=True)


# =============================================================================
# Physical device state
# =============================================================================


class _PhysicalDevice:
    """Mutable state that survives sessions, resets and producer switches."""

    def __init__(self, spec: TwinDevice) -> None:
        self.spec = spec
        self.device_user_id = spec.device_user_id


@dataclass(frozen=True)
class _Enumerated:
    device: _PhysicalDevice
    producer: TwinProducer
    directory: str
    name: str
    hardware_id: int


# =============================================================================
# Video source
# =============================================================================


@final
class TwinVideoSource(_PropertyTable):
    """Simulated source sub-object exposing device node-map properties."""

    def __init__(self, session: TwinDeviceSession, name: str) -> None:
        super().__init__()
        self._session = session
        self._name = name
        device = session._entry.device
        spec = device.spec

        self._define("Parent", _TwinProperty("any", default=session, read_only="always"))
        self._define(
            "Selected",
            _TwinProperty(
                "string",
                "enum",
                ("off", "on"),
                "off",
                read_only="always",
                getter=lambda: "on" if session.selected_source_name == name else "off",
            ),
        )
        self._define("SourceName", _TwinProperty("string", default=name, read_only="always"))
        self._define("Tag", _TwinProperty("string", default=""))
        self._define("Type", _TwinProperty("string", default="videosource", read_only="always"))

        self._define(
            "AcquisitionFrameRate",
            _TwinProperty("double", "bounded", (1.0, 120.0), 30.0, device_specific=True),
        )
        self._define(
            "ExposureTime",
            _TwinProperty(
                "double", "bounded", (10.0, 10_000_000.0), 10_000.0, device_specific=True
            ),
        )
        self._define(
            "Gain",
            _TwinProperty("double", "bounded", (0.0, 24.0), 0.0, device_specific=True),
        )
        self._define(
            "PixelFormat",
            _TwinProperty(
                "string",
                "enum",
                spec.formats,
                session.video_format,
                read_only="always",
                device_specific=True,
            ),
        )
        if spec.has_device_user_id:
            self._define(
                "DeviceUserID",
                _TwinProperty(
                    "string",
                    default=session._subsystem._read_user_id(session._entry),
                    device_specific=True,
                    getter=lambda: session._subsystem._read_user_id(session._entry),
                    setter=self._set_device_user_id,
                ),
            )
        if spec.test_patterns:
            self._define(
                "TestPatternGeneratorSelector",
                _TwinProperty(
                    "string", "enum", ("Sensor", "Region0"), "Sensor", device_specific=True
                ),
            )
            self._define(
                "TestPattern",
                _TwinProperty(
                    "string",
                    "enum",
                    self._test_pattern_choices,
                    "Off",
                    device_specific=True,
                ),
            )
        for prop_name, value in spec.extra_source_properties.items():
            self._define(prop_name, _infer_property(value))

    @property
    def source_name(self) -> str:
        return self._name

    def active_test_pattern(self) -> str:
        """Pattern rendered by the sensor, 'Off' unless Sensor is selected."""
        if not self.has_property("TestPattern"):
            return "Off"
        if self.get("TestPatternGeneratorSelector") != "Sensor":
            return "Off"
        return str(self.get("TestPattern"))

    def _test_pattern_choices(self) -> tuple[str, ...]:
        # Region0 only offers Off; the choices depend on the selector
        if self.get("TestPatternGeneratorSelector") != "Sensor":
            return ("Off",)
        return self._session._entry.device.spec.test_patterns

    def _set_device_user_id(self, value: Any) -> None:
        self._session._subsystem._write_user_id(self._session._entry, str(value))

    def _is_running(self) -> bool:
        return self._session._running

    def __repr__(self) -> str:
        return f"TwinVideoSource(name={self._name!r})"


# =============================================================================
# Preview
# =============================================================================


@final
class TwinPreviewWindow:
    """Preview that always shows a frame at the session's current ROI."""

    def __init__(self, session: TwinDeviceSession) -> None:
        self._session = session
        self._closed = False

    @property
    def image(self) -> NDArray[Any]:
        return self._session._render()

    @property
    def is_open(self) -> bool:
        return not self._closed

    def close(self) -> None:
        self._closed = True
        self._session._previewing = False


# =============================================================================
# Device session
# =============================================================================


@final
class TwinDeviceSession(_PropertyTable):
    """Simulated capture session bound to one enumerated device."""

    def __init__(
        self,
        subsystem: DigitalTwinSubsystem,
        entry: _Enumerated,
        video_format: str,
    ) -> None:
        super().__init__()
        self._subsystem = subsystem
        self._entry = entry
        self._format = video_format
        self._valid = True
        self._running = False
        self._previewing = False
        spec = entry.device.spec
        self._roi = (0, 0, spec.max_width, spec.max_height)
        self._frames_acquired = 0
        self._buffer: list[NDArray[Any]] = []
        self._disk_logger: DiskLogger | None = None
        self._disk_logger_frame_count = 0
        self._logging_mode = "memory"
        self._frame_index = 0
        self._sources = [TwinVideoSource(self, name) for name in spec.source_names]
        self._selected = spec.source_names[0]
        self._build_properties()

    def _build_properties(self) -> None:
        spec = self._entry.device.spec
        width, height = self.video_resolution
        always = "always"
        self._define(
            "DeviceID",
            _TwinProperty("integer", default=self.device_id, read_only=always),
        )
        self._define(
            "DiskLogger",
            _TwinProperty(
                "any",
                default=None,
                read_only="whileRunning",
                getter=lambda: self._disk_logger,
                setter=lambda value: self.attach_disk_logger(value, self._logging_mode),
            ),
        )
        self._define(
            "DiskLoggerFrameCount",
            _TwinProperty(
                "double",
                default=0,
                read_only=always,
                getter=lambda: self._disk_logger_frame_count,
            ),
        )
        self._define(
            "ErrorFcn",
            _TwinProperty("callback", "callback", (), default_error_callback),
        )
        self._define(
            "EventLog",
            _TwinProperty("struct", default={"Type": None, "Data": None}, read_only=always),
        )
        self._define(
            "FrameGrabInterval",
            _TwinProperty("double", "bounded", (1, _INT32_MAX), 1, read_only="whileRunning"),
        )
        self._define(
            "FramesAcquired",
            _TwinProperty(
                "double", default=0, read_only=always, getter=lambda: self._frames_acquired
            ),
        )
        self._define(
            "FramesAvailable",
            _TwinProperty(
                "double", default=0, read_only=always, getter=lambda: len(self._buffer)
            ),
        )
        self._define(
            "FramesPerTrigger",
            _TwinProperty(
                "double",
                "bounded",
                (1, _INT32_MAX),
                self._subsystem.config.frames_per_trigger,
                read_only="whileRunning",
            ),
        )
        self._define(
            "InitialTriggerTime",
            _TwinProperty("double", default=None, read_only=always),
        )
        self._define(
            "Logging",
            _TwinProperty(
                "string",
                "enum",
                ("off", "on"),
                "off",
                read_only=always,
                getter=lambda: "on" if self._running else "off",
            ),
        )
        self._define(
            "LoggingMode",
            _TwinProperty(
                "string",
                "enum",
                LOGGING_MODES,
                "memory",
                read_only="whileRunning",
                getter=lambda: self._logging_mode,
                setter=self._set_logging_mode,
            ),
        )
        self._define("Name", _TwinProperty("string", default=self.name))
        self._define(
            "NumberOfBands",
            _TwinProperty("integer", default=_format_layout(self._format)[1], read_only=always),
        )
        self._define("Parent", _TwinProperty("any", default=None, read_only=always))
        self._define(
            "Previewing",
            _TwinProperty(
                "string",
                "enum",
                ("off", "on"),
                "off",
                read_only=always,
                getter=lambda: "on" if self._previewing else "off",
            ),
        )
        self._define(
            "ROIPosition",
            _TwinProperty(
                "double",
                default=[0, 0, width, height],
                read_only="whileRunning",
                getter=lambda: list(self._roi),
                setter=self._set_roi,
            ),
        )
        self._define(
            "Running",
            _TwinProperty(
                "string",
                "enum",
                ("off", "on"),
                "off",
                read_only=always,
                getter=lambda: "on" if self._running else "off",
            ),
        )
        self._define(
            "SelectedSourceName",
            _TwinProperty(
                "string",
                "enum",
                spec.source_names,
                spec.source_names[0],
                read_only="whileRunning",
                getter=lambda: self._selected,
                setter=self._select_source,
            ),
        )
        self._define(
            "Source",
            _TwinProperty(
                "videosource", default=self._sources, read_only=always, getter=lambda: self._sources
            ),
        )
        self._define("StartFcn", _TwinProperty("callback", "callback", (), None))
        self._define("Tag", _TwinProperty("string", default=""))
        self._define("Timeout", _TwinProperty("double", "bounded", (0.0, 3600.0), 10.0))
        self._define("Type", _TwinProperty("string", default="videoinput", read_only=always))
        self._define("UserData", _TwinProperty("any", default=None))
        self._define(
            "VideoFormat", _TwinProperty("string", default=self._format, read_only=always)
        )
        self._define(
            "VideoResolution",
            _TwinProperty("integer", default=[width, height], read_only=always),
        )

    # -- identity -------------------------------------------------------------

    @property
    def device_id(self) -> int:
        return self._entry.hardware_id

    @property
    def name(self) -> str:
        return f"{self._format}-{ADAPTOR_NAME}-{self.device_id}"

    @property
    def video_format(self) -> str:
        return self._format

    @property
    def is_valid(self) -> bool:
        return self._valid

    @property
    def video_resolution(self) -> tuple[int, int]:
        spec = self._entry.device.spec
        return (spec.max_width, spec.max_height)

    # -- ROI ------------------------------------------------------------------

    @property
    def roi_position(self) -> tuple[int, int, int, int]:
        return self._roi

    @roi_position.setter
    def roi_position(self, roi: Sequence[float]) -> None:
        self._set_roi(roi)

    def _set_roi(self, roi: Sequence[float]) -> None:
        self._check_valid()
        if len(roi) != 4:
            raise ValueError("ROIPosition must be [x, y, width, height]")
        spec = self._entry.device.spec
        min_w, min_h = spec.min_roi
        x, y, w, h = (int(np.floor(v)) for v in roi)
        x = min(max(x, 0), spec.max_width - min_w)
        y = min(max(y, 0), spec.max_height - min_h)
        w = min(max(w, min_w), spec.max_width - x)
        h = min(max(h, min_h), spec.max_height - y)
        adjusted = (x, y, w, h)
        if adjusted != tuple(int(v) for v in roi):
            logger.debug(
                "ROIPosition was modified by the device",
                requested=[float(v) for v in roi],
                actual=list(adjusted),
            )
        self._roi = adjusted

    # -- sources --------------------------------------------------------------

    @property
    def available_sources(self) -> list[str]:
        return list(self._entry.device.spec.source_names)

    @property
    def selected_source_name(self) -> str:
        return self._selected

    @property
    def sources(self) -> list[TwinVideoSource]:
        return list(self._sources)

    @property
    def source(self) -> TwinVideoSource:
        for src in self._sources:
            if src.source_name == self._selected:
                return src
        raise KeyError(self._selected)  # pragma: no cover

    def _select_source(self, name: Any) -> None:
        self._selected = str(name)

    # -- info -----------------------------------------------------------------

    def hardware_info(self) -> HardwareInfo:
        self._check_valid()
        dtype, _ = _format_layout(self._format)
        width, height = self.video_resolution
        producer = self._entry.producer
        return HardwareInfo(
            AdaptorName=ADAPTOR_NAME,
            DeviceName=self._entry.name,
            MaxHeight=height,
            MaxWidth=width,
            NativeDataType=np.dtype(dtype).name,
            TotalSources=len(self._sources),
            VendorDriverDescription=f"GenTL Adaptor with {producer.vendor} GenTL Producer",
            VendorDriverVersion=producer.driver_version,
        )

    # -- acquisition ----------------------------------------------------------

    @property
    def frames_acquired(self) -> int:
        return self._frames_acquired

    @property
    def frames_available(self) -> int:
        return len(self._buffer)

    @property
    def disk_logger_frame_count(self) -> int:
        return self._disk_logger_frame_count

    def attach_disk_logger(
        self, disk_logger: DiskLogger | None, logging_mode: str = "disk&memory"
    ) -> None:
        self._check_valid()
        self._disk_logger = disk_logger
        self._set_logging_mode(logging_mode)

    def _set_logging_mode(self, mode: Any) -> None:
        if mode not in LOGGING_MODES:
            raise ValueError(f"Invalid LoggingMode {mode!r}")
        if "disk" in mode and self._disk_logger is None:
            raise ValueError("A DiskLogger must be set before logging to disk")
        self._logging_mode = str(mode)

    def start_capture(
        self, on_start: Callable[[TwinDeviceSession], None] | None = None
    ) -> None:
        """Acquire FramesPerTrigger frames.

        Counters and the memory buffer are flushed before on_start runs.
        The simulated device delivers all frames before returning.
        """
        self._check_valid()
        self._frames_acquired = 0
        self._buffer.clear()
        self._disk_logger_frame_count = 0
        self._running = True
        try:
            if on_start is not None:
                on_start(self)
            for _ in range(int(self.get("FramesPerTrigger"))):
                frame = self._render()
                self._frames_acquired += 1
                if "memory" in self._logging_mode:
                    self._buffer.append(frame)
                if "disk" in self._logging_mode and self._disk_logger is not None:
                    self._disk_logger.write(frame)
                    self._disk_logger_frame_count += 1
        finally:
            self._running = False

    def wait_while_logging(self, timeout_s: float | None = None) -> None:
        self._check_valid()

    def stop_capture(self) -> None:
        self._running = False

    def read_snapshot(self) -> NDArray[Any]:
        self._check_valid()
        return self._render()

    def get_data(self, count: int | None = None) -> list[NDArray[Any]]:
        """Remove and return frames from the memory buffer."""
        count = len(self._buffer) if count is None else count
        frames, self._buffer = self._buffer[:count], self._buffer[count:]
        return frames

    def preview(self) -> TwinPreviewWindow:
        self._check_valid()
        self._previewing = True
        return TwinPreviewWindow(self)

    # -- lifecycle ------------------------------------------------------------

    def close(self) -> None:
        if not self._valid:
            return
        self._valid = False
        self._running = False
        self._previewing = False
        self._subsystem._forget(self)

    def _invalidate(self) -> None:
        self._valid = False
        self._running = False
        self._previewing = False

    def __enter__(self) -> TwinDeviceSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def _check_valid(self) -> None:
        if not self._valid:
            raise RuntimeError(f"Session {self.name} is no longer valid")

    def _is_running(self) -> bool:
        return self._running

    # -- frame synthesis ------------------------------------------------------

    def _render(self) -> NDArray[Any]:
        """Render one frame at the current ROI and format."""
        self._check_valid()
        spec = self._entry.device.spec
        dtype, bands = _format_layout(self._format)
        full_scale = int(np.iinfo(dtype).max)
        x, y, w, h = self._roi
        pattern = self.source.active_test_pattern()

        cols = np.arange(x, x + w, dtype=np.int64)
        rows = np.arange(y, y + h, dtype=np.int64)
        if pattern == "Black":
            plane = np.zeros((h, w), dtype=np.int64)
        elif pattern == "White":
            plane = np.full((h, w), full_scale, dtype=np.int64)
        elif pattern == "GreyHorizontalRamp":
            ramp = cols * full_scale // max(spec.max_width - 1, 1)
            plane = np.broadcast_to(ramp, (h, w))
        elif pattern == "GreyVerticalRamp":
            ramp = rows * full_scale // max(spec.max_height - 1, 1)
            plane = np.broadcast_to(ramp[:, np.newaxis], (h, w))
        else:
            plane = (rows[:, np.newaxis] + cols[np.newaxis, :] + self._frame_index) % 256
            plane = plane * (full_scale // 255)
        self._frame_index += 1

        frame = np.ascontiguousarray(plane, dtype=dtype)
        if bands == 3:
            frame = np.repeat(frame[:, :, np.newaxis], 3, axis=2)
        return frame

    def __repr__(self) -> str:
        return f"TwinDeviceSession(name={self.name!r}, valid={self._valid})"


def _format_layout(video_format: str) -> tuple[type[np.unsignedinteger[Any]], int]:
    """Return (dtype, bands) for a GenICam pixel format name."""
    upper = video_format.upper()
    bands = 3 if upper.startswith(("RGB", "BGR")) else 1
    wide = any(depth in upper for depth in ("10", "12", "14", "16"))
    return (np.uint16 if wide else np.uint8), bands


# =============================================================================
# Subsystem
# =============================================================================


class DigitalTwinSubsystem:
    """Simulated process-wide acquisition subsystem.

    Changing the active producer path takes effect on the next reset(),
    matching real subsystems that only reload producer libraries on reset.

    Attributes:
        config: The simulated setup.
        open_count: Number of device sessions opened so far.
        reset_count: Number of resets performed.
    """

    def __init__(self, config: DigitalTwinConfig | None = None) -> None:
        self.config = config or DigitalTwinConfig()
        self._devices = {spec.serial: _PhysicalDevice(spec) for spec in self.config.devices}
        initial = self.config.initial_producer_path
        if initial is None:
            initial = os.environ.get(self.config.producer_env_var, "")
        self._path = initial
        self._loaded: list[tuple[str, TwinProducer, list[str]]] = []
        self._enumerated: list[_Enumerated] = []
        self._sessions: list[TwinDeviceSession] = []
        self._cached_user_ids: dict[tuple[str, str], str] = {}
        self.open_count = 0
        self.reset_count = 0
        self._load()

    # -- producer state -------------------------------------------------------

    @property
    def active_producer_path(self) -> str:
        return self._path

    def set_active_producer_path(self, path: str) -> None:
        self._path = path

    def reset(self) -> None:
        for session in self._sessions:
            session._invalidate()
        self._sessions.clear()
        self.reset_count += 1
        self._load()

    def _load(self) -> None:
        self._loaded = []
        for segment in self._path.split(os.pathsep):
            directory = segment.rstrip(os.sep) or segment
            if not directory:
                continue
            descriptors = sorted(str(p) for p in Path(directory).glob(DESCRIPTOR_PATTERN))
            if not descriptors:
                continue
            producer = self.config.producers.get(directory, self.config.default_producer)
            if producer.load_fails:
                raise SubsystemQueryError(f"Failed to load producers: {directory}")
            self._loaded.append((directory, producer, descriptors))
        self._enumerated = []

    # -- enumeration ----------------------------------------------------------

    def enumerate_devices(self) -> list[DeviceInfo]:
        entries: list[_Enumerated] = []
        for directory, producer, _ in self._loaded:
            if producer.broken:
                raise SubsystemQueryError(
                    f"Producer in {directory} failed to enumerate devices"
                )
            serials = producer.device_serials
            if serials is None:
                serials = tuple(spec.serial for spec in self.config.devices)
            for serial in serials:
                device = self._devices[serial]
                name = producer.name_template.format(
                    model=device.spec.model, serial=serial, vendor=producer.vendor
                )
                entries.append(
                    _Enumerated(device, producer, directory, name, len(entries) + 1)
                )
        self._enumerated = entries
        return [
            DeviceInfo(
                DeviceName=entry.name,
                DeviceID=entry.hardware_id,
                SupportedFormats=list(entry.device.spec.formats),
                DefaultFormat=entry.device.spec.default_format,
            )
            for entry in entries
        ]

    def open_device_session(
        self, hardware_id: int, video_format: str | None = None
    ) -> TwinDeviceSession:
        if not self._enumerated:
            self.enumerate_devices()
        entry = next((e for e in self._enumerated if e.hardware_id == hardware_id), None)
        if entry is None:
            raise KeyError(f"Invalid device ID {hardware_id} for the active producers")
        spec = entry.device.spec
        fmt = video_format or spec.default_format
        if fmt not in spec.formats:
            raise ValueError(f"Format {fmt!r} is not supported by device {entry.name}")
        session = TwinDeviceSession(self, entry, fmt)
        self._sessions.append(session)
        self.open_count += 1
        logger.debug("Twin session opened", session=session.name, device=entry.name)
        return session

    def open_sessions(self) -> list[TwinDeviceSession]:
        return [s for s in self._sessions if s.is_valid]

    def producer_report(self) -> ProducerReport:
        return ProducerReport(
            search_path=self._path,
            descriptors=[d for _, _, descriptors in self._loaded for d in descriptors],
        )

    # -- test hooks -----------------------------------------------------------

    def device_user_id(self, serial: str) -> str:
        """Current DeviceUserID stored in a physical device."""
        return self._devices[serial].device_user_id

    def set_device_user_id(self, serial: str, value: str) -> None:
        """Overwrite a physical device's DeviceUserID."""
        self._devices[serial].device_user_id = value

    def _read_user_id(self, entry: _Enumerated) -> str:
        serial = entry.device.spec.serial
        if serial in entry.producer.cached_user_ids:
            return self._cached_user_ids.get((entry.directory, serial), "")
        return entry.device.device_user_id

    def _write_user_id(self, entry: _Enumerated, value: str) -> None:
        serial = entry.device.spec.serial
        if serial in entry.producer.cached_user_ids:
            self._cached_user_ids[(entry.directory, serial)] = value
        else:
            entry.device.device_user_id = value

    def _forget(self, session: TwinDeviceSession) -> None:
        if session in self._sessions:
            self._sessions.remove(session)
