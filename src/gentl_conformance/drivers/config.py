"""Suite configuration and subsystem factory.

Supports switching between the real GenTL stack (harvesters) and the digital
twin subsystem so the suite itself can be developed and tested without
cameras attached.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from gentl_conformance.drivers.subsystem.twin import (
    DigitalTwinConfig,
    DigitalTwinSubsystem,
)

if TYPE_CHECKING:
    from gentl_conformance.devices.session import SubsystemSession
    from gentl_conformance.drivers.subsystem import AcquisitionSubsystem

# =============================================================================
# Constants
# =============================================================================

#: Environment variable GenTL consumers read the producer search path from.
DEFAULT_PRODUCER_ENV_VAR = "GENICAM_GENTL64_PATH"

#: Glob pattern identifying producer descriptor libraries.
DEFAULT_DESCRIPTOR_PATTERN = "*.cti"

#: Upper bound for waits on streaming conditions (frame counters settling).
DEFAULT_STREAMING_TIMEOUT_S = 60.0


class SubsystemMode(Enum):
    """Acquisition subsystem selection."""

    HARDWARE = "hardware"  # Real producers via harvesters
    DIGITAL_TWIN = "digital_twin"  # Simulated producers and cameras


def _default_spec_dir() -> Path:
    """Hardware spec cache directory, ./hwspec relative to the working dir."""
    return Path.cwd() / "hwspec"


def _default_log_dir() -> Path:
    """Run log directory, the system temp dir."""
    return Path(tempfile.gettempdir())


@dataclass
class SuiteConfig:
    """Configuration for a conformance run.

    Attributes:
        mode: HARDWARE for real producers, DIGITAL_TWIN for simulation.
        spec_dir: Directory of the hardware specification cache.
        log_dir: Directory receiving the run log file.
        producer_env_var: Environment variable holding the producer path.
        descriptor_pattern: Glob identifying producer descriptor files.
        streaming_timeout_s: Timeout for waits on streaming conditions.
        twin: Digital twin setup used in DIGITAL_TWIN mode (None=defaults).
    """

    mode: SubsystemMode = SubsystemMode.DIGITAL_TWIN

    # Storage
    spec_dir: Path = field(default_factory=_default_spec_dir)
    log_dir: Path = field(default_factory=_default_log_dir)

    # Producer discovery
    producer_env_var: str = DEFAULT_PRODUCER_ENV_VAR
    descriptor_pattern: str = DEFAULT_DESCRIPTOR_PATTERN

    # Execution
    streaming_timeout_s: float = DEFAULT_STREAMING_TIMEOUT_S

    # Digital twin settings
    twin: DigitalTwinConfig | None = None


class SubsystemFactory:
    """Factory for the acquisition subsystem selected by configuration.

    Thread Safety:
        Not thread-safe. Configure once at startup; the suite runs
        sequentially anyway.

    Hardware Mode Limitations:
        create_subsystem() requires the harvesters package and at least
        one GenTL producer on the search path.
    """

    def __init__(self, config: SuiteConfig | None = None):
        """Initialize the factory.

        Args:
            config: SuiteConfig; None uses all defaults (digital twin mode).

        Example:
            >>> factory = SubsystemFactory()
            >>> subsystem = factory.create_subsystem()  # DigitalTwinSubsystem
        """
        self.config = config or SuiteConfig()

    def create_subsystem(self) -> AcquisitionSubsystem:
        """Create the acquisition subsystem for the configured mode.

        Returns:
            HarvestersSubsystem in HARDWARE mode, DigitalTwinSubsystem in
            DIGITAL_TWIN mode.

        Raises:
            ImportError: If harvesters is not installed in HARDWARE mode.

        Example:
            >>> factory = SubsystemFactory(SuiteConfig(mode=SubsystemMode.HARDWARE))
            >>> subsystem = factory.create_subsystem()
        """
        if self.config.mode == SubsystemMode.HARDWARE:
            from gentl_conformance.drivers.subsystem.hardware import (
                HarvestersSubsystem,
            )

            return HarvestersSubsystem(
                producer_env_var=self.config.producer_env_var,
                descriptor_pattern=self.config.descriptor_pattern,
            )
        twin_config = self.config.twin or DigitalTwinConfig(
            producer_env_var=self.config.producer_env_var
        )
        return DigitalTwinSubsystem(twin_config)

    def create_subsystem_session(self) -> SubsystemSession:
        """Wrap a freshly created subsystem in its exclusive session."""
        from gentl_conformance.devices.session import SubsystemSession

        return SubsystemSession(self.create_subsystem())


# =============================================================================
# Global Singletons
# =============================================================================
# Thread Safety: These globals are NOT thread-safe. Configure once at startup
# before any run. The SubsystemSession itself serializes producer access.

_factory: SubsystemFactory | None = None
_subsystem_session: SubsystemSession | None = None


def get_factory() -> SubsystemFactory:
    """Get the global factory singleton (digital twin mode by default).

    Example:
        >>> factory = get_factory()
        >>> use_hardware()
        >>> factory = get_factory()  # hardware mode
    """
    global _factory
    if _factory is None:
        _factory = SubsystemFactory()
    return _factory


def get_subsystem_session() -> SubsystemSession:
    """Get the process-wide SubsystemSession.

    Only one acquisition subsystem may exist per process because the active
    producer is process-wide state. The session is created on first access
    from the current factory configuration.

    Returns:
        The SubsystemSession singleton.

    Raises:
        ImportError: In HARDWARE mode when harvesters is missing.
    """
    global _subsystem_session
    if _subsystem_session is None:
        _subsystem_session = get_factory().create_subsystem_session()
    return _subsystem_session


def configure(config: SuiteConfig) -> None:
    """Replace the global factory and drop the current subsystem session.

    Args:
        config: New SuiteConfig.

    Example:
        >>> configure(SuiteConfig(mode=SubsystemMode.HARDWARE, spec_dir=Path("specs")))
    """
    global _factory, _subsystem_session
    _subsystem_session = None
    _factory = SubsystemFactory(config)


def use_digital_twin(preserve_config: bool = False) -> None:
    """Switch to the simulated subsystem.

    Args:
        preserve_config: Keep the current spec/log directories and other
            settings, changing only the mode.
    """
    if preserve_config:
        configure(replace(get_factory().config, mode=SubsystemMode.DIGITAL_TWIN))
    else:
        configure(SuiteConfig(mode=SubsystemMode.DIGITAL_TWIN))


def use_hardware(preserve_config: bool = False) -> None:
    """Switch to real GenTL producers via harvesters.

    Args:
        preserve_config: Keep the current spec/log directories and other
            settings, changing only the mode.
    """
    if preserve_config:
        configure(replace(get_factory().config, mode=SubsystemMode.HARDWARE))
    else:
        configure(SuiteConfig(mode=SubsystemMode.HARDWARE))
