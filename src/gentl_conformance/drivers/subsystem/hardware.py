"""Hardware acquisition subsystem backed by harvesters.

Loads the GenTL producers (``*.cti`` files) of the active search path into a
harvesters.core.Harvester and exposes the cameras they enumerate through the
AcquisitionSubsystem protocol. Device properties come from the remote
device's GenICam node map; session properties are derived from the
acquirer state.

Only imported in hardware mode (see SubsystemFactory), so the digital twin
and the test suite never need a GenTL stack installed.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any, final

import numpy as np
from harvesters.core import Harvester

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
    "HarvestersDeviceSession",
    "HarvestersPreviewWindow",
    "HarvestersSubsystem",
    "HarvestersVideoSource",
]

_FETCH_TIMEOUT_S = 10.0
_SESSION_READ_ONLY = frozenset(
    {"DeviceID", "FramesAcquired", "FramesAvailable", "Name", "Type", "VideoFormat"}
)


def _node_info(node: Any) -> PropertyInfo:
    """Describe a GenICam node in PropertyInfo terms."""
    if hasattr(node, "symbolics"):
        return PropertyInfo(
            Type="string",
            Constraint="enum",
            ConstraintValue=list(node.symbolics),
            DefaultValue=node.value,
            ReadOnly="notCurrently",
            DeviceSpecific=True,
        )
    if hasattr(node, "min") and hasattr(node, "max"):
        value = node.value
        return PropertyInfo(
            Type="double" if isinstance(value, float) else "integer",
            Constraint="bounded",
            ConstraintValue=[node.min, node.max],
            DefaultValue=value,
            ReadOnly="notCurrently",
            DeviceSpecific=True,
        )
    value = getattr(node, "value", None)
    return PropertyInfo(
        Type="string" if isinstance(value, str) else "any",
        Constraint="none",
        ConstraintValue=[],
        DefaultValue=value,
        ReadOnly="notCurrently",
        DeviceSpecific=True,
    )


@final
class HarvestersVideoSource:
    """Source backed by the remote device node map."""

    def __init__(self, session: HarvestersDeviceSession) -> None:
        self._session = session

    @property
    def source_name(self) -> str:
        return "input1"

    @property
    def _node_map(self) -> Any:
        return self._session._acquirer.remote_device.node_map

    def property_names(self) -> list[str]:
        names = []
        for name in sorted(n for n in dir(self._node_map) if not n.startswith("_")):
            if hasattr(getattr(self._node_map, name, None), "value"):
                names.append(name)
        return names

    def has_property(self, name: str) -> bool:
        return hasattr(getattr(self._node_map, name, None), "value")

    def property_info(self, name: str) -> PropertyInfo:
        if not self.has_property(name):
            raise KeyError(f"Unknown property '{name}'")
        return _node_info(getattr(self._node_map, name))

    def get(self, name: str) -> Any:
        if not self.has_property(name):
            raise KeyError(f"Unknown property '{name}'")
        return getattr(self._node_map, name).value

    def set(self, name: str, value: Any) -> None:
        if not self.has_property(name):
            raise KeyError(f"Unknown property '{name}'")
        getattr(self._node_map, name).value = value


@final
class HarvestersPreviewWindow:
    """Preview that grabs a fresh frame each time it is read."""

    def __init__(self, session: HarvestersDeviceSession) -> None:
        self._session = session

    @property
    def image(self) -> NDArray[Any]:
        return self._session.read_snapshot()

    def close(self) -> None:
        self._session._previewing = False


@final
class HarvestersDeviceSession:
    """Capture session wrapping a harvesters ImageAcquirer."""

    def __init__(
        self,
        subsystem: HarvestersSubsystem,
        acquirer: Any,
        hardware_id: int,
        device_name: str,
        video_format: str,
    ) -> None:
        self._subsystem = subsystem
        self._acquirer = acquirer
        self._hardware_id = hardware_id
        self._device_name = device_name
        self._valid = True
        self._previewing = False
        self._frames_acquired = 0
        self._buffer: list[NDArray[Any]] = []
        self._disk_logger: DiskLogger | None = None
        self._disk_logger_frame_count = 0
        self._logging_mode = "memory"
        self._frames_per_trigger = 10
        self._source = HarvestersVideoSource(self)
        node_map = acquirer.remote_device.node_map
        if video_format != node_map.PixelFormat.value:
            node_map.PixelFormat.value = video_format
        self._format = video_format
        self._max = (int(node_map.WidthMax.value), int(node_map.HeightMax.value))

    # -- identity -------------------------------------------------------------

    @property
    def device_id(self) -> int:
        return self._hardware_id

    @property
    def name(self) -> str:
        return f"{self._format}-{ADAPTOR_NAME}-{self._hardware_id}"

    @property
    def video_format(self) -> str:
        return self._format

    @property
    def is_valid(self) -> bool:
        return self._valid

    @property
    def video_resolution(self) -> tuple[int, int]:
        return self._max

    # -- ROI ------------------------------------------------------------------

    @property
    def roi_position(self) -> tuple[int, int, int, int]:
        nm = self._acquirer.remote_device.node_map
        return (
            int(nm.OffsetX.value),
            int(nm.OffsetY.value),
            int(nm.Width.value),
            int(nm.Height.value),
        )

    @roi_position.setter
    def roi_position(self, roi: Sequence[float]) -> None:
        nm = self._acquirer.remote_device.node_map
        x, y, w, h = (int(np.floor(v)) for v in roi)
        # Offsets first to zero so the new size always fits
        nm.OffsetX.value = 0
        nm.OffsetY.value = 0
        nm.Width.value = _clamp(nm.Width, w)
        nm.Height.value = _clamp(nm.Height, h)
        nm.OffsetX.value = _clamp(nm.OffsetX, x)
        nm.OffsetY.value = _clamp(nm.OffsetY, y)

    # -- sources --------------------------------------------------------------

    @property
    def available_sources(self) -> list[str]:
        return [self._source.source_name]

    @property
    def selected_source_name(self) -> str:
        return self._source.source_name

    @property
    def sources(self) -> list[HarvestersVideoSource]:
        return [self._source]

    @property
    def source(self) -> HarvestersVideoSource:
        return self._source

    # -- session-level properties ---------------------------------------------

    def _session_values(self) -> dict[str, Any]:
        width, height = self._max
        return {
            "DeviceID": self._hardware_id,
            "DiskLogger": self._disk_logger,
            "DiskLoggerFrameCount": self._disk_logger_frame_count,
            "FramesAcquired": self._frames_acquired,
            "FramesAvailable": len(self._buffer),
            "FramesPerTrigger": self._frames_per_trigger,
            "LoggingMode": self._logging_mode,
            "Name": self.name,
            "NumberOfBands": 3 if self._format.upper().startswith(("RGB", "BGR")) else 1,
            "Parent": None,
            "ROIPosition": list(self.roi_position),
            "SelectedSourceName": self.selected_source_name,
            "Source": self.sources,
            "Tag": "",
            "Type": "videoinput",
            "VideoFormat": self._format,
            "VideoResolution": [width, height],
        }

    def property_names(self) -> list[str]:
        return sorted(self._session_values())

    def has_property(self, name: str) -> bool:
        return name in self._session_values()

    def property_info(self, name: str) -> PropertyInfo:
        values = self._session_values()
        if name not in values:
            raise KeyError(f"Unknown property '{name}'")
        constraint, constraint_value = "none", []
        if name == "LoggingMode":
            constraint, constraint_value = "enum", ["disk", "disk&memory", "memory"]
        elif name == "SelectedSourceName":
            constraint, constraint_value = "enum", self.available_sources
        value = values[name]
        return PropertyInfo(
            Type="string" if isinstance(value, str) else "any",
            Constraint=constraint,
            ConstraintValue=constraint_value,
            DefaultValue=value,
            ReadOnly="always" if name in _SESSION_READ_ONLY else "whileRunning",
            DeviceSpecific=False,
        )

    def get(self, name: str) -> Any:
        values = self._session_values()
        if name not in values:
            raise KeyError(f"Unknown property '{name}'")
        return values[name]

    def set(self, name: str, value: Any) -> None:
        if name == "ROIPosition":
            self.roi_position = value
        elif name == "FramesPerTrigger":
            self._frames_per_trigger = int(value)
        elif name == "LoggingMode":
            self.attach_disk_logger(self._disk_logger, value)
        elif name in self._session_values():
            raise PermissionError(f"Property '{name}' is read-only")
        else:
            raise KeyError(f"Unknown property '{name}'")

    # -- info -----------------------------------------------------------------

    def hardware_info(self) -> HardwareInfo:
        snapshot_dtype = np.uint16 if any(
            depth in self._format for depth in ("10", "12", "14", "16")
        ) else np.uint8
        width, height = self._max
        vendor, version = self._subsystem._producer_identity()
        return HardwareInfo(
            AdaptorName=ADAPTOR_NAME,
            DeviceName=self._device_name,
            MaxHeight=height,
            MaxWidth=width,
            NativeDataType=np.dtype(snapshot_dtype).name,
            TotalSources=1,
            VendorDriverDescription=f"GenTL Adaptor with {vendor}",
            VendorDriverVersion=version,
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
        if "disk" in logging_mode and disk_logger is None:
            raise ValueError("A DiskLogger must be set before logging to disk")
        self._disk_logger = disk_logger
        self._logging_mode = logging_mode

    def start_capture(
        self, on_start: Callable[[HarvestersDeviceSession], None] | None = None
    ) -> None:
        self._frames_acquired = 0
        self._buffer.clear()
        self._disk_logger_frame_count = 0
        if on_start is not None:
            on_start(self)
        self._acquirer.start()
        try:
            for _ in range(self._frames_per_trigger):
                frame = self._fetch()
                self._frames_acquired += 1
                if "memory" in self._logging_mode:
                    self._buffer.append(frame)
                if "disk" in self._logging_mode and self._disk_logger is not None:
                    self._disk_logger.write(frame)
                    self._disk_logger_frame_count += 1
        finally:
            self._acquirer.stop()

    def wait_while_logging(self, timeout_s: float | None = None) -> None:
        """Frames are fetched synchronously by start_capture()."""

    def stop_capture(self) -> None:
        if self._acquirer.is_acquiring():
            self._acquirer.stop()

    def read_snapshot(self) -> NDArray[Any]:
        self._acquirer.start()
        try:
            return self._fetch()
        finally:
            self._acquirer.stop()

    def _fetch(self) -> NDArray[Any]:
        with self._acquirer.fetch(timeout=_FETCH_TIMEOUT_S) as buffer:
            component = buffer.payload.components[0]
            shape: tuple[int, ...] = (component.height, component.width)
            channels = component.num_components_per_pixel
            if channels > 1:
                shape = (*shape, int(channels))
            return np.array(component.data.reshape(shape), copy=True)

    def preview(self) -> HarvestersPreviewWindow:
        self._previewing = True
        return HarvestersPreviewWindow(self)

    # -- lifecycle ------------------------------------------------------------

    def close(self) -> None:
        if not self._valid:
            return
        self._valid = False
        self._acquirer.destroy()
        self._subsystem._forget(self)

    def __enter__(self) -> HarvestersDeviceSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


def _clamp(node: Any, value: int) -> int:
    """Clamp a value into a GenICam integer node's range and increment."""
    low, high = int(node.min), int(node.max)
    step = max(int(getattr(node, "inc", 1) or 1), 1)
    value = min(max(value, low), high)
    return low + ((value - low) // step) * step


class HarvestersSubsystem:
    """AcquisitionSubsystem over a single harvesters.core.Harvester.

    The Harvester is rebuilt on every reset() from the ``*.cti`` files of
    the active search path. The search path is mirrored into the producer
    environment variable so producers that consult it see the same value.
    """

    def __init__(
        self,
        producer_env_var: str = "GENICAM_GENTL64_PATH",
        descriptor_pattern: str = "*.cti",
    ) -> None:
        self._env_var = producer_env_var
        self._pattern = descriptor_pattern
        self._path = os.environ.get(producer_env_var, "")
        self._harvester = Harvester()
        self._descriptors: list[str] = []
        self._sessions: list[HarvestersDeviceSession] = []
        self._names: list[str] = []
        self.reset()

    @property
    def active_producer_path(self) -> str:
        return self._path

    def set_active_producer_path(self, path: str) -> None:
        self._path = path
        os.environ[self._env_var] = path

    def reset(self) -> None:
        for session in list(self._sessions):
            session.close()
        self._harvester.reset()
        self._descriptors = []
        for segment in self._path.split(os.pathsep):
            directory = segment.rstrip(os.sep)
            if not directory:
                continue
            for cti in sorted(Path(directory).glob(self._pattern)):
                self._harvester.add_file(str(cti))
                self._descriptors.append(str(cti))
        try:
            self._harvester.update()
        except Exception as exc:
            raise SubsystemQueryError(f"Failed to load producers: {exc}") from exc

    def enumerate_devices(self) -> list[DeviceInfo]:
        try:
            self._harvester.update()
            infos = list(self._harvester.device_info_list)
        except Exception as exc:
            raise SubsystemQueryError(f"Failed to enumerate devices: {exc}") from exc
        devices: list[DeviceInfo] = []
        self._names = []
        for index, info in enumerate(infos):
            name = f"{info.vendor} {info.model} ({info.serial_number})"
            self._names.append(name)
            formats, default = self._probe_formats(index)
            devices.append(
                DeviceInfo(
                    DeviceName=name,
                    DeviceID=index + 1,
                    SupportedFormats=formats,
                    DefaultFormat=default,
                )
            )
        return devices

    def _probe_formats(self, index: int) -> tuple[list[str], str]:
        acquirer = self._harvester.create(index)
        try:
            pixel_format = acquirer.remote_device.node_map.PixelFormat
            return list(pixel_format.symbolics), str(pixel_format.value)
        finally:
            acquirer.destroy()

    def open_device_session(
        self, hardware_id: int, video_format: str | None = None
    ) -> HarvestersDeviceSession:
        if not self._names:
            self.enumerate_devices()
        if not 1 <= hardware_id <= len(self._names):
            raise KeyError(f"Invalid device ID {hardware_id} for the active producers")
        acquirer = self._harvester.create(hardware_id - 1)
        fmt = video_format or str(acquirer.remote_device.node_map.PixelFormat.value)
        try:
            session = HarvestersDeviceSession(
                self, acquirer, hardware_id, self._names[hardware_id - 1], fmt
            )
        except Exception:
            acquirer.destroy()
            raise
        self._sessions.append(session)
        return session

    def open_sessions(self) -> list[HarvestersDeviceSession]:
        return [s for s in self._sessions if s.is_valid]

    def producer_report(self) -> ProducerReport:
        return ProducerReport(search_path=self._path, descriptors=list(self._descriptors))

    def _producer_identity(self) -> tuple[str, str]:
        if not self._descriptors:
            return ("unknown producer", "unknown")
        cti = Path(self._descriptors[0])
        return (f"{cti.stem} GenTL Producer", f"{int(cti.stat().st_mtime)}")

    def _forget(self, session: HarvestersDeviceSession) -> None:
        if session in self._sessions:
            self._sessions.remove(session)
