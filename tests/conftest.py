"""Pytest configuration and fixtures for gentl-conformance tests.

Every fixture builds on the digital twin subsystem, so the whole suite
(discovery, configuration building, spec caching and the conformance
files themselves) runs without GenTL producers or cameras installed.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from gentl_conformance.data import HardwareSpecCache
from gentl_conformance.devices import ProducerDiscovery, SubsystemSession
from gentl_conformance.drivers import config as driver_config
from gentl_conformance.drivers.config import DEFAULT_PRODUCER_ENV_VAR
from gentl_conformance.drivers.subsystem.twin import (
    DigitalTwinConfig,
    DigitalTwinSubsystem,
)
from gentl_conformance.observability import reset_logging
from gentl_conformance.suite import TestOrchestrator
from tests.helpers import FakeClock, RecordCollector, make_producer_dir


@pytest.fixture(autouse=True)
def isolated_globals() -> Iterator[None]:
    """Reset the factory and subsystem singletons around each test.

    Business context:
    The subsystem session is a process-wide singleton, exactly like the
    real consumer-side acquisition API. A test that configures hardware
    mode or a custom spec directory must not leak that choice into the
    next test.

    Yields:
        None. Singletons and logging are reset after the test.
    """
    yield
    driver_config._factory = None
    driver_config._subsystem_session = None
    reset_logging()


@pytest.fixture
def log_records() -> Iterator[RecordCollector]:
    """Collect records emitted under the gentl_conformance logger.

    Yields:
        RecordCollector attached for the duration of the test.
    """
    collector = RecordCollector()
    collector.attach()
    yield collector
    collector.detach()


@pytest.fixture
def clock() -> FakeClock:
    """Deterministic clock; time advances only through sleep()."""
    return FakeClock()


@pytest.fixture
def producer_a(tmp_path: Path) -> Path:
    """Producer directory 'vendorA' with one descriptor."""
    return make_producer_dir(tmp_path, "vendorA", ("vendorA.cti",))


@pytest.fixture
def producer_b(tmp_path: Path) -> Path:
    """Producer directory 'vendorB' with one descriptor."""
    return make_producer_dir(tmp_path, "vendorB", ("vendorB.cti",))


@pytest.fixture
def search_path(
    producer_a: Path, producer_b: Path, monkeypatch: pytest.MonkeyPatch
) -> str:
    """Two-producer search path, also exported as the producer env var."""
    path = os.pathsep.join([str(producer_a), str(producer_b)])
    monkeypatch.setenv(DEFAULT_PRODUCER_ENV_VAR, path)
    return path


@pytest.fixture
def twin(search_path: str) -> DigitalTwinSubsystem:
    """Digital twin with the default two cameras behind both producers."""
    return DigitalTwinSubsystem(DigitalTwinConfig(initial_producer_path=search_path))


@pytest.fixture
def session(twin: DigitalTwinSubsystem) -> SubsystemSession:
    """Subsystem session owning the twin."""
    return SubsystemSession(twin)


@pytest.fixture
def spec_cache(tmp_path: Path) -> HardwareSpecCache:
    """Empty hardware spec cache under the test's tmp_path."""
    return HardwareSpecCache(tmp_path / "hwspec")


@pytest.fixture
def orchestrator(
    session: SubsystemSession, spec_cache: HardwareSpecCache, clock: FakeClock
) -> TestOrchestrator:
    """Orchestrator over the built-in files, the twin and a fake clock."""
    return TestOrchestrator(
        session,
        spec_cache,
        discovery=ProducerDiscovery(),
        clock=clock,
        streaming_timeout_s=5.0,
    )

