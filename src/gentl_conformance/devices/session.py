"""Exclusive access to the process-wide acquisition subsystem.

GenTL consumers keep a single, process-wide "active producer": only one
producer search path is loaded at a time and switching requires a reset of
the whole subsystem. SubsystemSession turns that ambient global into an
owned resource:

    session = SubsystemSession(subsystem)
    with session.acquire(producer) as guard:
        devices = guard.subsystem.enumerate_devices()
        with guard.open(devices[0]["DeviceID"]) as device:
            ...
    # initial producer path restored, subsystem reset, lock released

Every enumeration or device open takes a guard, so no two components can
interleave producer switches. Sessions opened through a guard are tracked
and force-closed on release; the release reports them so leaks can be
flagged as failures.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING

from gentl_conformance.errors import SubsystemBusyError
from gentl_conformance.observability import get_logger

if TYPE_CHECKING:
    from gentl_conformance.devices.enumerator import DeviceDescriptor
    from gentl_conformance.devices.producers import ProducerRef
    from gentl_conformance.drivers.subsystem import AcquisitionSubsystem, DeviceSession

logger = get_logger(__name__)

__all__ = ["DeviceHandle", "ReleaseReport", "SessionGuard", "SubsystemSession"]


@dataclass(frozen=True)
class ReleaseReport:
    """What a guard found when it was released.

    Attributes:
        leaked_sessions: Names of sessions still open at release time.
        restored_path: Producer path restored on the subsystem.
        path_restored: Whether the subsystem reports the restored path.
        errors: Failures raised while closing sessions or resetting.
    """

    leaked_sessions: tuple[str, ...]
    restored_path: str
    path_restored: bool
    errors: tuple[str, ...] = ()

    @property
    def clean(self) -> bool:
        return not self.leaked_sessions and self.path_restored and not self.errors


class SubsystemSession:
    """Mutex-guarded owner of the acquisition subsystem.

    Only one SessionGuard can be held at a time. Other threads block in
    acquire(); the owning thread acquiring again is a programming error and
    raises SubsystemBusyError instead of deadlocking.

    Attributes:
        subsystem: The wrapped AcquisitionSubsystem.
    """

    def __init__(self, subsystem: AcquisitionSubsystem) -> None:
        self.subsystem = subsystem
        self._lock = threading.Lock()
        self._owner: int | None = None
        self._guard: SessionGuard | None = None

    @property
    def held(self) -> bool:
        """True while a guard is held."""
        return self._guard is not None

    @property
    def active_guard(self) -> SessionGuard | None:
        return self._guard

    def acquire(self, producer: ProducerRef) -> SessionGuard:
        """Take exclusive access and make producer the active one.

        The current producer path is remembered, the new one is set and the
        subsystem is reset so no state of the previous producer survives.

        Args:
            producer: Producer to activate.

        Returns:
            A SessionGuard; release it (or use it as a context manager) to
            restore the previous producer.

        Raises:
            SubsystemBusyError: If the calling thread already holds a guard.
            SubsystemQueryError: If the subsystem fails to load the producer;
                the previous path is restored before the lock is released.
        """
        if self._owner == threading.get_ident():
            raise SubsystemBusyError(
                "Acquisition subsystem is already held by this thread "
                f"(active producer {self.subsystem.active_producer_path!r})"
            )
        self._lock.acquire()
        self._owner = threading.get_ident()
        previous = self.subsystem.active_producer_path
        try:
            guard = SessionGuard(self, producer, previous)
            guard.activate(producer.directory)
        except BaseException:
            try:
                self._restore(previous)
            finally:
                self._owner = None
                self._lock.release()
            raise
        self._guard = guard
        return guard

    def _restore(self, path: str) -> None:
        self.subsystem.set_active_producer_path(path)
        try:
            self.subsystem.reset()
        except Exception as exc:
            logger.error(
                "Subsystem reset failed while restoring producer path",
                producer=path,
                error=f"{type(exc).__name__}: {exc}",
            )

    def _release(self, guard: SessionGuard) -> None:
        if self._guard is guard:
            self._guard = None
            self._owner = None
            self._lock.release()


class SessionGuard:
    """Scoped, exclusive hold on the subsystem with one active producer.

    Attributes:
        producer: Producer the guard was acquired for.
        initial_path: Producer path active before acquisition.
    """

    def __init__(
        self, owner: SubsystemSession, producer: ProducerRef, initial_path: str
    ) -> None:
        self._owner = owner
        self.producer = producer
        self.initial_path = initial_path
        self._opened: list[DeviceSession] = []
        self._released = False
        self.report: ReleaseReport | None = None

    @property
    def subsystem(self) -> AcquisitionSubsystem:
        self._check_held()
        return self._owner.subsystem

    @property
    def active_path(self) -> str:
        return self._owner.subsystem.active_producer_path

    @property
    def released(self) -> bool:
        return self._released

    def activate(self, path: str) -> None:
        """Switch the active producer path and reset the subsystem.

        Used on acquisition and by tests that walk several producers (or
        the original search path) while keeping exclusive access.
        """
        self._check_held()
        subsystem = self._owner.subsystem
        subsystem.set_active_producer_path(path)
        subsystem.reset()
        logger.debug("Active producer set", producer=path)

    def switch(self, producer: ProducerRef) -> None:
        """Make another producer active without giving up the guard."""
        self.activate(producer.directory)

    def open(self, hardware_id: int, video_format: str | None = None) -> DeviceSession:
        """Open a device session tracked by this guard."""
        session = self.subsystem.open_device_session(hardware_id, video_format)
        self._opened.append(session)
        return session

    def leaked_sessions(self) -> list[DeviceSession]:
        """Sessions opened through the guard (or anywhere) still valid."""
        leaked = [s for s in self._opened if s.is_valid]
        for session in self._owner.subsystem.open_sessions():
            if session not in leaked:
                leaked.append(session)
        return leaked

    def release(self) -> ReleaseReport:
        """Close leftover sessions, restore the initial path, reset, unlock.

        Failures while closing a session or resetting the subsystem do not
        stop the release; they are collected in the report. The lock is
        always given back. Idempotent: a second call returns the first
        call's report.

        Returns:
            ReleaseReport describing leaked sessions, path restoration and
            any errors raised on the way.
        """
        if self.report is not None:
            return self.report
        subsystem = self._owner.subsystem
        leaked: list[str] = []
        errors: list[str] = []
        path_restored = False
        try:
            try:
                sessions = self.leaked_sessions()
            except Exception as exc:
                sessions = []
                errors.append(f"Listing open sessions failed: {type(exc).__name__}: {exc}")
            for session in sessions:
                name = session.name
                leaked.append(name)
                logger.warning("Closing leaked device session", session=name)
                try:
                    session.close()
                except Exception as exc:
                    errors.append(f"Closing {name} failed: {type(exc).__name__}: {exc}")
            try:
                subsystem.set_active_producer_path(self.initial_path)
                subsystem.reset()
            except Exception as exc:
                errors.append(
                    f"Resetting the subsystem on {self.initial_path!r} failed: "
                    f"{type(exc).__name__}: {exc}"
                )
            path_restored = subsystem.active_producer_path == self.initial_path
        finally:
            self.report = ReleaseReport(
                leaked_sessions=tuple(leaked),
                restored_path=self.initial_path,
                path_restored=path_restored,
                errors=tuple(errors),
            )
            self._released = True
            self._opened.clear()
            self._owner._release(self)
        for error in errors:
            logger.error("Session guard release failed", detail=error)
        return self.report

    def __enter__(self) -> SessionGuard:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()

    def _check_held(self) -> None:
        if self._released:
            raise RuntimeError("Session guard has already been released")


class DeviceHandle:
    """Opens one enumerated device under a held guard.

    Handed to the hardware spec cache so a cache miss can open the device
    without knowing about producers or guards.

    Attributes:
        guard: Guard whose producer enumerated the device.
        descriptor: The device to open.
    """

    def __init__(self, guard: SessionGuard, descriptor: DeviceDescriptor) -> None:
        self.guard = guard
        self.descriptor = descriptor

    @property
    def spec_file_key(self) -> str:
        return self.descriptor.spec_file_key

    def open(self, video_format: str | None = None) -> DeviceSession:
        """Open a session at the device default format unless one is given."""
        return self.guard.open(
            self.descriptor.hardware_id, video_format or self.descriptor.default_format
        )
