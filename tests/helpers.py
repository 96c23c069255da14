"""Test helper functions for gentl-conformance.

Provides protocol compliance checks, a controllable clock, a log record
collector and producer directory builders shared by the test modules.

Example:
    from tests.helpers import assert_implements_protocol
    from gentl_conformance.drivers.subsystem import AcquisitionSubsystem

    def test_twin_implements_protocol():
        subsystem = DigitalTwinSubsystem()
        assert_implements_protocol(subsystem, AcquisitionSubsystem)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Protocol

from gentl_conformance.observability.logging import ROOT_LOGGER_NAME


def assert_implements_protocol(instance: object, protocol: type[Protocol]) -> None:
    """Assert that an instance implements a Protocol interface.

    Verifies that the given instance satisfies the Protocol contract using
    isinstance() checks (requires @runtime_checkable on the Protocol).

    Business context: Both acquisition backends (digital twin and
    harvesters) must be drop-in replacements for each other. Catching a
    missing member here is far cheaper than discovering it halfway through
    a qualification run on real cameras.

    Args:
        instance: Object to check for protocol compliance.
        protocol: Protocol class to check against. Must be decorated
            with @runtime_checkable.

    Raises:
        AssertionError: If instance doesn't implement protocol, listing the
            missing members.
        TypeError: If protocol is not @runtime_checkable.

    Example:
        >>> assert_implements_protocol(twin_session, DeviceSession)
    """
    if not isinstance(instance, protocol):
        instance_attrs = set(dir(instance))
        object_attrs = set(dir(object))
        protocol_members = {
            attr for attr in set(dir(protocol)) - object_attrs if not attr.startswith("_")
        }
        missing = sorted(m for m in protocol_members if m not in instance_attrs)
        missing_str = ", ".join(missing) if missing else "unknown"
        raise AssertionError(
            f"{type(instance).__name__} does not implement {protocol.__name__}. "
            f"Missing: {missing_str}"
        )


def assert_all_implement_protocol(instances: list[Any], protocol: type[Protocol]) -> None:
    """Assert that all instances in a list implement a Protocol.

    Raises:
        AssertionError: If any instance doesn't implement protocol.
    """
    for i, instance in enumerate(instances):
        try:
            assert_implements_protocol(instance, protocol)
        except AssertionError as e:
            raise AssertionError(f"Instance at index {i}: {e}") from e


class FakeClock:
    """Clock whose time only advances when something sleeps.

    monotonic() starts at 0; now() is ``start`` plus the elapsed time, so
    markers and timeouts are deterministic and tests never really sleep.

    Attributes:
        sleeps: Every requested sleep, in order.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.start = start or datetime(2024, 3, 9, 14, 5, 7)
        self.elapsed = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.elapsed

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.elapsed += seconds

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)


class RecordCollector(logging.Handler):
    """Handler keeping every record emitted under the package logger.

    The package root logger does not propagate, so pytest's caplog never
    sees its records; tests attach this collector instead.
    """

    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def messages(self, level: int | None = None) -> list[str]:
        return [
            r.getMessage() for r in self.records if level is None or r.levelno == level
        ]

    def with_message(self, fragment: str) -> list[logging.LogRecord]:
        return [r for r in self.records if fragment in r.getMessage()]

    def attach(self) -> None:
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        self._previous_level = logger.level
        logger.setLevel(logging.DEBUG)
        logger.addHandler(self)

    def detach(self) -> None:
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        logger.removeHandler(self)
        logger.setLevel(self._previous_level)


def make_producer_dir(root: Path, name: str, descriptors: tuple[str, ...] = ("producer.cti",)) -> Path:
    """Create a producer directory holding the given descriptor files.

    Descriptor files are empty; only their presence matters to discovery
    and to the digital twin.

    Args:
        root: Parent directory (normally tmp_path).
        name: Directory name.
        descriptors: File names to create; empty for a non-producer dir.

    Returns:
        The created directory.
    """
    directory = root / name
    directory.mkdir(parents=True, exist_ok=True)
    for descriptor in descriptors:
        (directory / descriptor).write_bytes(b"")
    return directory
