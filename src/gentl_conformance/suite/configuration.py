"""Configuration space: producer × device (× format).

A TestConfiguration is the unit a parameterized test point is bound to.
ConfigurationBuilder walks every producer under exclusive subsystem access,
enumerates its devices and produces the cross product, applying the user's
device-ID and format overrides. The initial active producer is restored
after every producer, so building leaves no trace on the subsystem.
"""

from __future__ import annotations

import hashlib
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from gentl_conformance.devices.enumerator import DeviceDescriptor, DeviceEnumerator
from gentl_conformance.devices.producers import ProducerDiscovery, ProducerRef
from gentl_conformance.errors import (
    ConfigMismatchError,
    NoDevicesFoundError,
    SubsystemQueryError,
)
from gentl_conformance.observability import get_logger

if TYPE_CHECKING:
    from gentl_conformance.devices.session import SubsystemSession

logger = get_logger(__name__)

__all__ = ["ConfigurationBuilder", "TestConfiguration"]

_KEY_LENGTH = 12


@dataclass(frozen=True)
class TestConfiguration:
    """One (producer, device[, format]) combination.

    Attributes:
        producer: Producer the device was enumerated under.
        device: The device, with its hardware ID under that producer.
        format: Video format under test, or None when formats are not
            part of the parameterization.

    Raises:
        ValueError: If format is set but the device does not support it.
    """

    __test__ = False  # not a pytest test class

    producer: ProducerRef
    device: DeviceDescriptor
    format: str | None = None

    def __post_init__(self) -> None:
        if self.format is not None and not self.device.supports(self.format):
            raise ValueError(
                f"Format {self.format!r} is not supported by {self.device.device_name}"
            )

    @property
    def key(self) -> str:
        """Short, stable identifier used to label results."""
        digest = hashlib.sha1()
        for part in (
            self.producer.directory,
            self.device.device_name,
            str(self.device.hardware_id),
            self.format or "",
        ):
            digest.update(part.encode("utf-8"))
            digest.update(b"\0")
        return digest.hexdigest()[:_KEY_LENGTH]

    def with_format(self, video_format: str) -> TestConfiguration:
        return TestConfiguration(self.producer, self.device, video_format)


class ConfigurationBuilder:
    """Builds the configuration space under exclusive subsystem access.

    Args:
        session: Process-wide subsystem session.
        discovery: Producer discovery used when no producer override is given.
        enumerator: Device enumerator; a default instance when omitted.
    """

    def __init__(
        self,
        session: SubsystemSession,
        discovery: ProducerDiscovery | None = None,
        enumerator: DeviceEnumerator | None = None,
    ) -> None:
        self.session = session
        self.discovery = discovery or ProducerDiscovery()
        self.enumerator = enumerator or DeviceEnumerator()

    def producers(
        self, producer_dirs: Iterable[str | os.PathLike[str]] | None = None
    ) -> list[ProducerRef]:
        """Producer list for a run: the override filtered, else discovery.

        Raises:
            NoProducersFoundError: If discovery finds nothing (no override).
        """
        if producer_dirs is None:
            return self.discovery.discover()
        producers = self.discovery.filter(producer_dirs)
        if not producers:
            logger.warning("None of the requested producer directories contain descriptors")
        return producers

    def build(
        self,
        producer_dirs: Iterable[str | os.PathLike[str]] | None = None,
        device_ids: Sequence[int] | None = None,
        formats: Sequence[str] | None = None,
        *,
        format_testing: bool = False,
        producers: Sequence[ProducerRef] | None = None,
    ) -> list[TestConfiguration]:
        """Build configurations for every producer and device.

        Args:
            producer_dirs: Producer override; None discovers producers.
            device_ids: Hardware IDs to keep, in this order; None keeps all.
            formats: Format override, used only with format_testing.
            format_testing: Expand each device into one configuration per
                supported format.
            producers: Already resolved producers; takes precedence over
                producer_dirs.

        Returns:
            Configurations in producer, device, format order. Empty when
            overrides match nothing.

        Raises:
            NoProducersFoundError: If discovery finds no producer.
            NoDevicesFoundError: If no producer reports any device.
        """
        if producers is None:
            producers = self.producers(producer_dirs)

        configurations: list[TestConfiguration] = []
        any_devices = False
        for producer in producers:
            devices = self._enumerate(producer)
            if devices is None:
                continue
            any_devices = True
            for device in self._select_devices(producer, devices, device_ids):
                base = TestConfiguration(producer, device)
                if format_testing:
                    configurations.extend(self._expand_formats(base, formats))
                else:
                    configurations.append(base)

        if producers and not any_devices:
            raise NoDevicesFoundError(os.pathsep.join(p.directory for p in producers))
        logger.info("Configurations built", count=len(configurations))
        if not configurations:
            logger.warning("0 configurations found")
        return configurations

    def _enumerate(self, producer: ProducerRef) -> list[DeviceDescriptor] | None:
        """Devices of one producer, or None when it must be skipped.

        A producer that fails to load (on acquisition) or to enumerate
        only loses its own configurations.
        """
        try:
            with self.session.acquire(producer) as guard:
                return self.enumerator.enumerate(guard)
        except NoDevicesFoundError as exc:
            logger.info(str(exc), producer=producer.directory)
        except SubsystemQueryError as exc:
            logger.warning(
                "Skipping producer that could not be queried",
                producer=producer.directory,
                error=str(exc),
            )
        return None

    def _select_devices(
        self,
        producer: ProducerRef,
        devices: list[DeviceDescriptor],
        device_ids: Sequence[int] | None,
    ) -> list[DeviceDescriptor]:
        if device_ids is None:
            return devices
        by_id = {device.hardware_id: device for device in devices}
        selected: list[DeviceDescriptor] = []
        for device_id in device_ids:
            device = by_id.get(int(device_id))
            if device is None:
                logger.info(
                    str(ConfigMismatchError(device_id, producer.directory)),
                    producer=producer.directory,
                    device_id=device_id,
                )
                continue
            selected.append(device)
        return selected

    def _expand_formats(
        self, base: TestConfiguration, formats: Sequence[str] | None
    ) -> list[TestConfiguration]:
        device = base.device
        if formats is None:
            return [base.with_format(fmt) for fmt in device.supported_formats]
        expanded: list[TestConfiguration] = []
        for fmt in formats:
            if not device.supports(fmt):
                logger.info(
                    "Format not supported by device, skipping",
                    device=device.device_name,
                    format=fmt,
                    producer=base.producer.directory,
                )
                continue
            expanded.append(base.with_format(fmt))
        return expanded
