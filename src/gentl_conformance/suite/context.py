"""Execution contexts handed to conformance test files.

TestPointContext is what a test point body talks to: soft verifications
that record a failure and continue, hard assertions that stop the point,
and assumptions that turn the point into ``incomplete``.

FileContext carries everything one test file needs for one bound
parameter: the subsystem session and its guard, the re-resolved device,
the cached hardware spec, a temporary directory and the run settings. It
also performs the cleanup checks whose failures are reported as results.
"""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Collection, Sequence, Sized
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gentl_conformance.devices.session import DeviceHandle
from gentl_conformance.errors import AssumptionNotMet, VerificationFailure
from gentl_conformance.observability import get_logger
from gentl_conformance.suite.waiting import Clock, SystemClock

if TYPE_CHECKING:
    from gentl_conformance.data.hwspec import HardwareSpec
    from gentl_conformance.data.spec_cache import HardwareSpecCache
    from gentl_conformance.devices.enumerator import DeviceDescriptor, DeviceEnumerator
    from gentl_conformance.devices.producers import ProducerRef
    from gentl_conformance.devices.session import SessionGuard, SubsystemSession
    from gentl_conformance.drivers.subsystem import DeviceSession
    from gentl_conformance.suite.configuration import TestConfiguration

logger = get_logger(__name__)

__all__ = ["FileContext", "TestPointContext"]


class TestPointContext:
    """Verification state of one test point execution.

    verify_* methods record a failure and let the point continue, so one
    run reports every mismatch. assert_* and assume_* raise and end the
    point immediately.

    Attributes:
        name: Full test point name.
        failures: Diagnostics of failed verifications, in order.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, name: str) -> None:
        self.name = name
        self.failures: list[str] = []

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    def log(self, message: str, **data: Any) -> None:
        logger.info(message, test=self.name, **data)

    # -- soft verifications ---------------------------------------------------

    def verify_fail(self, message: str) -> None:
        logger.warning("Verification failed", test=self.name, detail=message)
        self.failures.append(message)

    def verify_true(self, condition: Any, message: str) -> bool:
        if not condition:
            self.verify_fail(message)
            return False
        return True

    def verify_equal(self, actual: Any, expected: Any, message: str = "") -> bool:
        if actual == expected:
            return True
        detail = f"expected {expected!r}, actual {actual!r}"
        self.verify_fail(f"{message}: {detail}" if message else detail)
        return False

    def verify_not_empty(self, value: Sized, message: str) -> bool:
        return self.verify_true(len(value) > 0, message)

    def verify_subset(
        self, actual: Collection[Any], allowed: Collection[Any], message: str
    ) -> bool:
        extra = [item for item in actual if item not in allowed]
        return self.verify_true(not extra, f"{message}: unexpected {extra!r}")

    # -- hard assertions and assumptions --------------------------------------

    def assert_true(self, condition: Any, message: str) -> None:
        """End the point as failed if condition is false."""
        if not condition:
            raise VerificationFailure(message)

    def assume_true(self, condition: Any, message: str) -> None:
        """End the point as incomplete if condition is false."""
        if not condition:
            raise AssumptionNotMet(message)


@dataclass
class FileContext:
    """Per-parameter state of one test file execution.

    Attributes:
        session: Process-wide subsystem session.
        spec_cache: Hardware spec cache.
        enumerator: Device enumerator.
        producers: Producers of the run (discovered or overridden).
        configuration: Bound device configuration, if any.
        producer: Bound producer, if any.
        clock: Clock for waits and markers.
        streaming_timeout_s: Timeout for waits on streaming conditions.
        guard: Guard held between setup and cleanup.
        device: Device re-resolved under the active producer.
        spec: Hardware spec of the device.
        temp_dir: Temporary directory created by setup.
    """

    session: SubsystemSession
    spec_cache: HardwareSpecCache
    enumerator: DeviceEnumerator
    producers: Sequence[ProducerRef] = ()
    configuration: TestConfiguration | None = None
    producer: ProducerRef | None = None
    clock: Clock = field(default_factory=SystemClock)
    streaming_timeout_s: float = 60.0
    guard: SessionGuard | None = None
    device: DeviceDescriptor | None = None
    spec: HardwareSpec | None = None
    temp_dir: Path | None = None

    # -- setup helpers --------------------------------------------------------

    def acquire(self, producer: ProducerRef) -> SessionGuard:
        self.guard = self.session.acquire(producer)
        return self.guard

    def require_guard(self) -> SessionGuard:
        if self.guard is None:
            raise RuntimeError("Test file setup did not acquire the subsystem")
        return self.guard

    def require_device(self) -> DeviceDescriptor:
        if self.device is None:
            raise RuntimeError("Test file setup did not resolve a device")
        return self.device

    def require_spec(self) -> HardwareSpec:
        if self.spec is None:
            raise RuntimeError("Test file setup did not load a hardware spec")
        return self.spec

    def require_temp_dir(self) -> Path:
        if self.temp_dir is None:
            raise RuntimeError("Test file setup did not create a temporary directory")
        return self.temp_dir

    def load_spec(self) -> HardwareSpec:
        device = self.require_device()
        handle = DeviceHandle(self.require_guard(), device)
        self.spec = self.spec_cache.get_or_create(device.spec_file_key, handle)
        return self.spec

    def make_temp_dir(self, prefix: str) -> Path:
        self.temp_dir = Path(tempfile.mkdtemp(prefix=f"{prefix}_"))
        return self.temp_dir

    def open_device(self, video_format: str | None = None) -> DeviceSession:
        """Open the resolved device through the held guard."""
        device = self.require_device()
        return self.require_guard().open(device.hardware_id, video_format)

    # -- cleanup --------------------------------------------------------------

    def cleanup(self) -> list[str]:
        """Release everything setup acquired.

        Leaked sessions, sessions or resets that raised while releasing, a
        temp directory that cannot be removed, and an active producer that
        was not restored are returned as problems.

        Returns:
            Problem descriptions; empty when cleanup was clean.
        """
        problems: list[str] = []
        if self.guard is not None:
            report = self.guard.release()
            if report.leaked_sessions:
                problems.append(
                    "Device sessions were left open: " + ", ".join(report.leaked_sessions)
                )
            if not report.path_restored:
                problems.append(
                    f"Active producer path was not restored to {report.restored_path!r}"
                )
            problems.extend(report.errors)
            self.guard = None
        if self.temp_dir is not None:
            try:
                shutil.rmtree(self.temp_dir)
            except OSError as exc:
                problems.append(f"Temporary directory {self.temp_dir} was not deleted: {exc}")
            self.temp_dir = None
        for problem in problems:
            logger.error("Cleanup check failed", detail=problem)
        return problems
