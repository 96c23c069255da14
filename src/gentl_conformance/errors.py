"""Exception taxonomy for the conformance suite.

Every error raised by the suite derives from ConformanceError so callers
can catch the family in one place. The split mirrors where each error is
handled:

- Discovery errors abort a run before anything executes.
- ConfigMismatchError and ProducerQueryError are logged by the
  configuration builder and only drop the affected configurations.
- SpecWriteError is fatal; a half-written golden file is never tolerated.
- AssumptionNotMet turns a test point into ``incomplete``.
- VerificationFailure and StreamingTimeoutError turn it into ``failed``.
"""

from __future__ import annotations

__all__ = [
    "AssumptionNotMet",
    "ConfigMismatchError",
    "ConformanceError",
    "DiscoveryError",
    "InvalidDeviceError",
    "NoDevicesFoundError",
    "NoProducersFoundError",
    "ProducerQueryError",
    "SpecNotFoundError",
    "SpecWriteError",
    "StreamingTimeoutError",
    "SubsystemBusyError",
    "SubsystemQueryError",
    "VerificationFailure",
]


class ConformanceError(Exception):
    """Base class for all suite errors."""


# =============================================================================
# Discovery
# =============================================================================


class DiscoveryError(ConformanceError):
    """Producer or device discovery could not produce any candidates."""


class NoProducersFoundError(DiscoveryError):
    """No search-path entry contains a producer descriptor file.

    Attributes:
        search_path: The raw search path that was inspected.
    """

    def __init__(self, search_path: str | None, detail: str = "") -> None:
        self.search_path = search_path
        message = "No GenTL producers found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class NoDevicesFoundError(DiscoveryError):
    """The active producer reports zero devices.

    Attributes:
        producer: Directory of the producer that was queried.
    """

    def __init__(self, producer: str) -> None:
        self.producer = producer
        super().__init__(f"No devices found using producer {producer}")


# =============================================================================
# Configuration building
# =============================================================================


class ConfigMismatchError(ConformanceError):
    """A user-requested device ID is not present under a producer."""

    def __init__(self, device_id: int, producer: str) -> None:
        self.device_id = device_id
        self.producer = producer
        super().__init__(
            f"Device ID {device_id} is not available using producer {producer}"
        )


class SubsystemQueryError(ConformanceError):
    """The acquisition subsystem failed while answering a query."""


class ProducerQueryError(SubsystemQueryError):
    """Enumerating devices under a specific producer failed."""

    def __init__(self, producer: str, cause: BaseException | None = None) -> None:
        self.producer = producer
        message = f"Failed to query devices using producer {producer}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class InvalidDeviceError(ConformanceError):
    """A device name no longer resolves to a hardware ID."""

    def __init__(self, device_name: str, producer: str | None = None) -> None:
        self.device_name = device_name
        self.producer = producer
        where = f" using producer {producer}" if producer else ""
        super().__init__(f"Invalid Device ID: '{device_name}' not found{where}")


class SubsystemBusyError(ConformanceError):
    """The exclusive acquisition subsystem is already held by this thread."""


# =============================================================================
# Hardware specification cache
# =============================================================================


class SpecWriteError(ConformanceError):
    """Persisting a hardware specification failed."""

    def __init__(self, key: str, cause: BaseException) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"Failed to write hardware spec '{key}': {cause}")


class SpecNotFoundError(ConformanceError):
    """A hardware specification expected on disk is missing."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Hardware spec '{key}' not found")


# =============================================================================
# Test point outcomes
# =============================================================================


class AssumptionNotMet(ConformanceError):
    """A test point precondition does not hold; the point is incomplete."""


class VerificationFailure(AssertionError):
    """A qualification check failed; the point is reported as failed."""


class StreamingTimeoutError(ConformanceError):
    """A wait on a streaming condition exceeded its timeout.

    Attributes:
        description: What was being waited on.
        timeout_s: The timeout that elapsed.
        last_value: Last observed value of the probe.
    """

    def __init__(
        self, description: str, timeout_s: float, last_value: object = None
    ) -> None:
        self.description = description
        self.timeout_s = timeout_s
        self.last_value = last_value
        super().__init__(
            f"Timed out after {timeout_s:g}s waiting for {description} "
            f"(last value: {last_value!r})"
        )
