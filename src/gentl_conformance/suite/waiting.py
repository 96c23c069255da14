"""Bounded waits on streaming conditions.

Frame counters settle asynchronously after an acquisition starts. Instead
of sleeping for a fixed time, test points poll a probe until it returns the
expected value or a timeout elapses. The clock is injectable so tests can
run the polling loop without real sleeps.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol, TypeVar, runtime_checkable

from gentl_conformance.errors import StreamingTimeoutError

__all__ = ["DEFAULT_POLL_INTERVAL_S", "Clock", "SystemClock", "eventually"]

T = TypeVar("T")

DEFAULT_POLL_INTERVAL_S = 0.1


@runtime_checkable
class Clock(Protocol):  # pragma: no cover
    """Time source used by waits and marker generation."""

    def monotonic(self) -> float:
        """Seconds from an arbitrary, monotonic origin."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block for the given number of seconds."""
        ...

    def now(self) -> datetime:
        """Current local wall-clock time."""
        ...


class SystemClock:
    """Clock backed by the time module."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def now(self) -> datetime:
        return datetime.now()


def eventually(
    probe: Callable[[], T],
    expected: Any,
    timeout_s: float,
    clock: Clock | None = None,
    *,
    description: str | None = None,
    interval_s: float = DEFAULT_POLL_INTERVAL_S,
) -> T:
    """Poll probe until it returns expected.

    The probe is always evaluated at least once, even with a zero timeout.

    Args:
        probe: Zero-argument callable returning the observed value.
        expected: Value to wait for (compared with ==). A callable is used
            as a predicate instead.
        timeout_s: Maximum time to wait.
        clock: Time source; defaults to SystemClock.
        description: Text for the timeout diagnostic.
        interval_s: Delay between polls.

    Returns:
        The last observed value.

    Raises:
        StreamingTimeoutError: If the condition does not hold in time.

    Example:
        >>> eventually(lambda: session.frames_acquired, logger.frame_count, 60.0)
    """
    clock = clock or SystemClock()
    matches: Callable[[Any], bool]
    if callable(expected):
        matches = expected
    else:
        def matches(value: Any) -> bool:
            return bool(value == expected)

    deadline = clock.monotonic() + timeout_s
    while True:
        value = probe()
        if matches(value):
            return value
        if clock.monotonic() >= deadline:
            raise StreamingTimeoutError(
                description or getattr(probe, "__name__", "condition"), timeout_s, value
            )
        clock.sleep(interval_s)
