"""Parameterized, sequential execution of the conformance suite.

For every selected test file the orchestrator computes a ParameterBinding
(which user-supplied parameter categories the file honors, which it
suppresses, and the concrete parameters to run against), then executes the
file once per parameter:

    setup  →  each selected point  →  cleanup

Execution is strictly sequential because every file holds the exclusive
subsystem session between setup and cleanup.
"""

from __future__ import annotations

import hashlib
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gentl_conformance.data.spec_cache import HardwareSpecCache
from gentl_conformance.devices.enumerator import DeviceEnumerator
from gentl_conformance.devices.producers import ProducerDiscovery, ProducerRef
from gentl_conformance.drivers.config import DEFAULT_STREAMING_TIMEOUT_S
from gentl_conformance.errors import (
    AssumptionNotMet,
    SpecWriteError,
    StreamingTimeoutError,
    VerificationFailure,
)
from gentl_conformance.observability import LogContext, get_logger
from gentl_conformance.suite.configuration import ConfigurationBuilder, TestConfiguration
from gentl_conformance.suite.context import FileContext, TestPointContext
from gentl_conformance.suite.registry import ParameterCategory, TestRegistry
from gentl_conformance.suite.results import (
    Outcome,
    ResultAggregator,
    SuiteReport,
    TestResult,
)
from gentl_conformance.suite.waiting import Clock, SystemClock

if TYPE_CHECKING:
    from gentl_conformance.conformance.base import ConformanceFile
    from gentl_conformance.devices.session import SubsystemSession

logger = get_logger(__name__)

__all__ = [
    "CLEANUP_POINT",
    "BoundParameter",
    "ParameterBinding",
    "RunRequest",
    "SuiteRun",
    "TestOrchestrator",
    "producer_key",
    "request_from",
]

CLEANUP_POINT = "cleanup"


def producer_key(producer: ProducerRef) -> str:
    """Stable short key labelling producer-parameterized results."""
    return hashlib.sha1(producer.directory.encode("utf-8")).hexdigest()[:12]


# =============================================================================
# Parameters
# =============================================================================


@dataclass(frozen=True)
class RunRequest:
    """User-supplied parameter overrides for a run.

    A field left as None means the category was not supplied and every
    file uses its default parameterization for it.
    """

    producer_dirs: tuple[str, ...] | None = None
    device_ids: tuple[int, ...] | None = None
    formats: tuple[str, ...] | None = None

    @property
    def supplied(self) -> ParameterCategory:
        supplied = ParameterCategory.NONE
        if self.producer_dirs is not None:
            supplied |= ParameterCategory.PRODUCER
        if self.device_ids is not None:
            supplied |= ParameterCategory.DEVICE
        if self.formats is not None:
            supplied |= ParameterCategory.FORMAT
        return supplied


@dataclass(frozen=True)
class BoundParameter:
    """One parameter a test file runs against.

    Exactly one of configuration or producer is set, or neither for an
    unparameterized file.
    """

    configuration: TestConfiguration | None = None
    producer: ProducerRef | None = None

    @property
    def key(self) -> str:
        if self.configuration is not None:
            return self.configuration.key
        if self.producer is not None:
            return producer_key(self.producer)
        return ""

    @property
    def suffix(self) -> str:
        """Name decoration, e.g. '[Device=ab12cd34ef56][TestFormat=Mono8]'."""
        if self.configuration is not None:
            device_key = TestConfiguration(
                self.configuration.producer, self.configuration.device
            ).key
            suffix = f"[Device={device_key}]"
            if self.configuration.format is not None:
                suffix += f"[TestFormat={self.configuration.format}]"
            return suffix
        if self.producer is not None:
            return f"[Producer={self.key}]"
        return ""

    @property
    def label(self) -> str:
        """Readable description used by the failure summary."""
        if self.configuration is not None:
            config = self.configuration
            label = (
                f"Device ID={config.device.hardware_id}\n"
                f"Producer Directory=\n{config.producer.directory}"
            )
            if config.format is not None:
                label += f"\n{config.format}"
            return label
        if self.producer is not None:
            return f"Producer Directory=\n{self.producer.directory}"
        return ""


@dataclass(frozen=True)
class ParameterBinding:
    """Parameters bound to one test file.

    Attributes:
        test_file: File name.
        honored: Categories the file accepts.
        suppressed: Supplied categories the file ignores.
        parameters: Parameters to run the file against.
    """

    test_file: str
    honored: ParameterCategory
    suppressed: ParameterCategory
    parameters: tuple[BoundParameter, ...]


@dataclass
class SuiteRun:
    """Outcome of run(): results, their report and the bindings used."""

    results: list[TestResult]
    report: SuiteReport
    bindings: list[ParameterBinding] = field(default_factory=list)
    log_file: Path | None = None

    @property
    def exit_code(self) -> int:
        return self.report.exit_code


# =============================================================================
# Orchestrator
# =============================================================================


class TestOrchestrator:
    """Resolves selections, binds parameters and runs test files.

    Args:
        session: Process-wide subsystem session.
        spec_cache: Hardware spec cache shared by all files.
        files: Test file classes by name; defaults to the built-in suite.
        discovery: Producer discovery.
        enumerator: Device enumerator.
        clock: Clock for waits, durations and markers.
        streaming_timeout_s: Timeout for waits on streaming conditions.
    """

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        session: SubsystemSession,
        spec_cache: HardwareSpecCache,
        files: Mapping[str, type[ConformanceFile]] | None = None,
        discovery: ProducerDiscovery | None = None,
        enumerator: DeviceEnumerator | None = None,
        clock: Clock | None = None,
        streaming_timeout_s: float = DEFAULT_STREAMING_TIMEOUT_S,
    ) -> None:
        if files is None:
            from gentl_conformance.conformance import FILE_CLASSES

            files = {cls.name: cls for cls in FILE_CLASSES}
        self.session = session
        self.spec_cache = spec_cache
        self.files = {cls.name: cls for cls in files.values()}
        self.registry = TestRegistry(cls.entry() for cls in self.files.values())
        self.discovery = discovery or ProducerDiscovery()
        self.enumerator = enumerator or DeviceEnumerator()
        self.builder = ConfigurationBuilder(session, self.discovery, self.enumerator)
        self.clock = clock or SystemClock()
        self.streaming_timeout_s = streaming_timeout_s
        self._producers: list[ProducerRef] | None = None
        self._configurations: dict[tuple[Any, ...], list[TestConfiguration]] = {}

    def resolve(self, selection: str | Sequence[str] | None = None) -> dict[str, list[str]]:
        """Resolve a selection against the registry (see TestRegistry.resolve)."""
        return self.registry.resolve(selection)

    def file_class(self, test_file: str) -> type[ConformanceFile]:
        """Test file class for a name, matched case-insensitively like resolve().

        Raises:
            KeyError: If no registered file has that name.
        """
        entry = self.registry.entry(test_file)
        if entry is None:
            raise KeyError(f"Unknown test file {test_file!r}")
        return self.files[entry.name]

    # -- binding --------------------------------------------------------------

    def bind(self, test_file: str, request: RunRequest | None = None) -> ParameterBinding:
        """Bind parameters for one test file.

        Supplied categories the file does not honor are suppressed with a
        single warning naming all of them.

        Raises:
            NoProducersFoundError: If producers must be discovered and none exist.
            NoDevicesFoundError: If device configurations are needed and no
                producer reports a device.
        """
        request = request or RunRequest()
        entry = self.registry.entry(test_file)
        if entry is None:
            raise KeyError(f"Unknown test file {test_file!r}")
        honored = entry.honors
        suppressed = request.supplied & ~honored
        if suppressed:
            logger.warning(
                f"{entry.name} does not support the parameters {', '.join(suppressed.names)}; "
                "they are ignored for this file",
                test_file=entry.name,
                suppressed=suppressed.names,
            )

        producer_dirs = request.producer_dirs if ParameterCategory.PRODUCER in honored else None
        if ParameterCategory.DEVICE in honored:
            device_ids = request.device_ids
            format_testing = ParameterCategory.FORMAT in honored
            formats = request.formats if format_testing else None
            configurations = self._build(producer_dirs, device_ids, formats, format_testing)
            parameters = tuple(BoundParameter(configuration=c) for c in configurations)
        elif ParameterCategory.PRODUCER in honored:
            parameters = tuple(BoundParameter(producer=p) for p in self._resolve_producers(producer_dirs))
        else:
            parameters = (BoundParameter(),)
        return ParameterBinding(entry.name, honored, suppressed, parameters)

    def _resolve_producers(self, producer_dirs: tuple[str, ...] | None) -> list[ProducerRef]:
        if producer_dirs is not None:
            return self.builder.producers(producer_dirs)
        if self._producers is None:
            self._producers = self.builder.producers()
        return self._producers

    def _build(
        self,
        producer_dirs: tuple[str, ...] | None,
        device_ids: tuple[int, ...] | None,
        formats: tuple[str, ...] | None,
        format_testing: bool,
    ) -> list[TestConfiguration]:
        cache_key = (producer_dirs, device_ids, formats, format_testing)
        if cache_key not in self._configurations:
            self._configurations[cache_key] = self.builder.build(
                device_ids=device_ids,
                formats=formats,
                format_testing=format_testing,
                producers=self._resolve_producers(producer_dirs),
            )
        return self._configurations[cache_key]

    # -- execution ------------------------------------------------------------

    def run(
        self,
        resolved: Mapping[str, Sequence[str]],
        request: RunRequest | None = None,
    ) -> SuiteRun:
        """Run resolved test points sequentially.

        Args:
            resolved: Output of resolve().
            request: Parameter overrides.

        Returns:
            SuiteRun with every result and the rendered report.

        Raises:
            NoProducersFoundError, NoDevicesFoundError: If discovery fails.
            SpecWriteError: If a hardware spec cannot be persisted.
        """
        request = request or RunRequest()
        results: list[TestResult] = []
        bindings: list[ParameterBinding] = []
        labels: dict[str, str] = {}
        for test_file, points in resolved.items():
            binding = self.bind(test_file, request)
            bindings.append(binding)
            if not binding.parameters:
                logger.warning("0 configurations found", test_file=binding.test_file)
            for parameter in binding.parameters:
                if parameter.key:
                    labels[parameter.key] = parameter.label
                results.extend(self._run_file(binding.test_file, points, parameter))

        report = ResultAggregator().summarize(results, labels)
        logger.info(
            "Suite finished",
            passed=len(report.passed),
            failed=len(report.failed),
            incomplete=len(report.incomplete),
        )
        return SuiteRun(results=results, report=report, bindings=bindings)

    def _run_file(
        self, test_file: str, points: Sequence[str], parameter: BoundParameter
    ) -> list[TestResult]:
        file_class = self.file_class(test_file)
        entry = file_class.entry()
        selected: list[str] = []
        for token in points:
            point = entry.point(token)
            if point is None:
                logger.warning("Ignoring unknown test point", test_file=test_file, token=token)
            elif point not in selected:
                selected.append(point)
        ctx = FileContext(
            session=self.session,
            spec_cache=self.spec_cache,
            enumerator=self.enumerator,
            producers=self._resolve_producers(None) if file_class.needs_producers else (),
            configuration=parameter.configuration,
            producer=parameter.producer,
            clock=self.clock,
            streaming_timeout_s=self.streaming_timeout_s,
        )
        prefix = f"{test_file}{parameter.suffix}"
        instance = file_class(ctx)
        results: list[TestResult] = []

        with LogContext(test_file=test_file, parameter=parameter.key or None):
            try:
                setup_error = self._setup(instance)
                for point in selected:
                    name = f"{prefix}/{point}"
                    if setup_error is not None:
                        results.append(
                            self._setup_result(name, test_file, point, parameter.key, setup_error)
                        )
                        continue
                    results.append(self._run_point(instance, name, test_file, point, parameter.key))
            finally:
                problems = self._cleanup(ctx)
            if problems:
                results.append(
                    TestResult(
                        name=f"{prefix}/{CLEANUP_POINT}",
                        test_file=test_file,
                        test_point=CLEANUP_POINT,
                        configuration_key=parameter.key,
                        outcome=Outcome.FAILED,
                        diagnostics=tuple(problems),
                    )
                )
        return results

    def _cleanup(self, ctx: FileContext) -> list[str]:
        try:
            return ctx.cleanup()
        except Exception as exc:
            logger.error("Test file cleanup raised", exc_info=True)
            return [f"Cleanup raised {type(exc).__name__}: {exc}"]

    def _setup(self, instance: ConformanceFile) -> BaseException | None:
        try:
            instance.setup()
        except SpecWriteError:
            raise
        except Exception as exc:
            logger.error("Test file setup failed", error=f"{type(exc).__name__}: {exc}")
            return exc
        return None

    def _setup_result(
        self, name: str, test_file: str, point: str, key: str, error: BaseException
    ) -> TestResult:
        outcome = Outcome.INCOMPLETE if isinstance(error, AssumptionNotMet) else Outcome.FAILED
        return TestResult(
            name=name,
            test_file=test_file,
            test_point=point,
            configuration_key=key,
            outcome=outcome,
            diagnostics=(f"Setup failed: {type(error).__name__}: {error}",),
        )

    def _run_point(
        self,
        instance: ConformanceFile,
        name: str,
        test_file: str,
        point: str,
        key: str,
    ) -> TestResult:
        t = TestPointContext(name)
        method: Callable[[TestPointContext], None] = instance.point_method(point)
        started = self.clock.monotonic()
        outcome: Outcome | None = None
        diagnostics: list[str] = []
        logger.info("Running test point", test=name)
        try:
            method(t)
        except AssumptionNotMet as exc:
            outcome = Outcome.INCOMPLETE
            diagnostics.append(f"Assumption not met: {exc}")
        except (VerificationFailure, StreamingTimeoutError) as exc:
            outcome = Outcome.FAILED
            diagnostics.append(str(exc))
        except SpecWriteError:
            raise
        except Exception as exc:
            logger.error("Test point raised", test=name, exc_info=True)
            outcome = Outcome.FAILED
            diagnostics.append(f"{type(exc).__name__}: {exc}")

        diagnostics = t.failures + diagnostics
        if outcome is None or (outcome is Outcome.INCOMPLETE and t.failed):
            outcome = Outcome.FAILED if t.failed else Outcome.PASSED
        result = TestResult(
            name=name,
            test_file=test_file,
            test_point=point,
            configuration_key=key,
            outcome=outcome,
            diagnostics=tuple(diagnostics),
            duration_s=self.clock.monotonic() - started,
        )
        logger.info("Test point finished", test=name, outcome=outcome.value)
        return result


def request_from(
    producer_dirs: Sequence[str | os.PathLike[str]] | None = None,
    device_ids: Sequence[int] | None = None,
    formats: Sequence[str] | None = None,
) -> RunRequest:
    """Build a RunRequest, normalizing paths and numbers."""
    return RunRequest(
        producer_dirs=None if producer_dirs is None else tuple(os.fspath(p) for p in producer_dirs),
        device_ids=None if device_ids is None else tuple(int(d) for d in device_ids),
        formats=None if formats is None else tuple(formats),
    )
