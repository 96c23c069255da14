"""Acquisition subsystem backends and suite configuration.

Hardware access goes through an AcquisitionSubsystem: harvesters for real
GenTL producers, or the digital twin for development and CI.
"""

from gentl_conformance.drivers.config import (
    DEFAULT_DESCRIPTOR_PATTERN,
    DEFAULT_PRODUCER_ENV_VAR,
    DEFAULT_STREAMING_TIMEOUT_S,
    SubsystemFactory,
    SubsystemMode,
    SuiteConfig,
    configure,
    get_factory,
    get_subsystem_session,
    use_digital_twin,
    use_hardware,
)

__all__ = [
    "DEFAULT_DESCRIPTOR_PATTERN",
    "DEFAULT_PRODUCER_ENV_VAR",
    "DEFAULT_STREAMING_TIMEOUT_S",
    "SubsystemFactory",
    "SubsystemMode",
    "SuiteConfig",
    "configure",
    "get_factory",
    "get_subsystem_session",
    "use_digital_twin",
    "use_hardware",
]
