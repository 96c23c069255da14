"""Device enumeration under the active producer.

Hardware IDs are positional: they are only meaningful while the producer
that assigned them is active. Anything that outlives a producer switch
must re-resolve the ID from the device name with resolve_hardware_id().
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from gentl_conformance.errors import (
    InvalidDeviceError,
    NoDevicesFoundError,
    ProducerQueryError,
)
from gentl_conformance.observability import get_logger

if TYPE_CHECKING:
    from gentl_conformance.devices.session import SessionGuard

logger = get_logger(__name__)

__all__ = ["DeviceDescriptor", "DeviceEnumerator", "resolve_hardware_id", "spec_file_key"]


def spec_file_key(device_name: str, default_format: str) -> str:
    """Hardware spec cache key for a device.

    Every character outside ``[A-Za-z0-9_]`` becomes an underscore, so the
    key is a valid file stem on every platform.

    Example:
        >>> spec_file_key("TwinCam Mono (TW0001)", "Mono8")
        'gentl_TwinCam_Mono__TW0001__Mono8'
    """
    return re.sub(r"\W", "_", f"gentl_{device_name}_{default_format}", flags=re.ASCII)


@dataclass(frozen=True)
class DeviceDescriptor:
    """One device as seen through one producer.

    Attributes:
        device_name: Producer-assigned device name.
        hardware_id: ID under the producer that enumerated the device.
        supported_formats: Video formats the device offers.
        default_format: Format used when none is requested.
    """

    device_name: str
    hardware_id: int
    supported_formats: tuple[str, ...]
    default_format: str

    @property
    def spec_file_key(self) -> str:
        return spec_file_key(self.device_name, self.default_format)

    def supports(self, video_format: str) -> bool:
        return video_format in self.supported_formats


class DeviceEnumerator:
    """Lists devices visible through the producer a guard made active."""

    def enumerate(self, guard: SessionGuard) -> list[DeviceDescriptor]:
        """Enumerate devices in subsystem order.

        Args:
            guard: Held guard; its producer is the active one.

        Returns:
            Non-empty list of descriptors.

        Raises:
            ProducerQueryError: If the subsystem fails to answer or returns a
                malformed device record.
            NoDevicesFoundError: If the producer reports no devices.
        """
        producer = guard.producer.directory
        try:
            infos = guard.subsystem.enumerate_devices()
        except Exception as exc:
            raise ProducerQueryError(producer, exc) from exc
        if not infos:
            raise NoDevicesFoundError(producer)

        try:
            devices = [
                DeviceDescriptor(
                    device_name=info["DeviceName"],
                    hardware_id=int(info["DeviceID"]),
                    supported_formats=tuple(info["SupportedFormats"]),
                    default_format=info["DefaultFormat"],
                )
                for info in infos
            ]
        except (KeyError, TypeError, ValueError) as exc:
            # Malformed device info record
            raise ProducerQueryError(producer, exc) from exc
        logger.debug(
            "Devices enumerated",
            producer=producer,
            devices=[d.device_name for d in devices],
        )
        return devices


def resolve_hardware_id(guard: SessionGuard, device_name: str) -> DeviceDescriptor:
    """Find a device by name under the currently active producer.

    The first case-insensitive name match wins.

    Args:
        guard: Held guard for the producer to search.
        device_name: Name recorded when the configuration was built.

    Returns:
        Fresh descriptor carrying the hardware ID valid right now.

    Raises:
        InvalidDeviceError: If no device of that name is visible.
        ProducerQueryError: If the subsystem fails to answer.
    """
    try:
        infos = guard.subsystem.enumerate_devices()
    except Exception as exc:
        raise ProducerQueryError(guard.producer.directory, exc) from exc
    wanted = device_name.casefold()
    for info in infos:
        if info["DeviceName"].casefold() == wanted:
            return DeviceDescriptor(
                device_name=info["DeviceName"],
                hardware_id=int(info["DeviceID"]),
                supported_formats=tuple(info["SupportedFormats"]),
                default_format=info["DefaultFormat"],
            )
    raise InvalidDeviceError(device_name, guard.producer.directory)
