"""Base class for conformance test files.

A conformance file groups related test points that share one setup and
cleanup. Points are methods marked with @test_point; their registered
names (camelCase, as shown in reports and accepted in selections) are
collected in definition order when the class is created.

Example:
    class tExample(ConformanceFile):
        name = "tExample"
        honors = ParameterCategory.PRODUCER | ParameterCategory.DEVICE

        @test_point("verifySomething")
        def verify_something(self, t: TestPointContext) -> None:
            with self.ctx.open_device() as vid:
                t.verify_true(vid.is_valid, "Session is not valid")
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, ClassVar, TypeVar

from gentl_conformance.devices.enumerator import resolve_hardware_id
from gentl_conformance.observability import get_logger
from gentl_conformance.suite.context import FileContext, TestPointContext
from gentl_conformance.suite.registry import ParameterCategory, TestFileEntry

logger = get_logger(__name__)

__all__ = ["ConformanceFile", "DeviceConformanceFile", "test_point"]

F = TypeVar("F", bound=Callable[..., Any])

_POINT_ATTR = "__test_point__"


def test_point(name: str) -> Callable[[F], F]:
    """Register a method as a test point under the given name."""

    def decorate(func: F) -> F:
        setattr(func, _POINT_ATTR, name)
        return func

    return decorate


test_point.__test__ = False  # type: ignore[attr-defined]


class ConformanceFile:
    """One conformance test file bound to one parameter.

    Subclasses set name and honors, define points with @test_point and
    override setup() when they need more than the default.

    Attributes:
        ctx: File context for the bound parameter.
    """

    name: ClassVar[str] = ""
    honors: ClassVar[ParameterCategory] = ParameterCategory.NONE
    needs_producers: ClassVar[bool] = False
    points: ClassVar[tuple[str, ...]] = ()
    _methods: ClassVar[dict[str, str]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        methods: dict[str, str] = {}
        for base in reversed(cls.__mro__[1:]):
            methods.update(getattr(base, "_methods", {}))
        for attr, value in vars(cls).items():
            point = getattr(value, _POINT_ATTR, None)
            if point is not None:
                methods[point] = attr
        cls._methods = methods
        cls.points = tuple(methods)

    def __init__(self, ctx: FileContext) -> None:
        self.ctx = ctx

    @classmethod
    def entry(cls) -> TestFileEntry:
        return TestFileEntry(cls.name, cls.points, cls.honors)

    def point_method(self, point: str) -> Callable[[TestPointContext], None]:
        """Bound method implementing a registered point.

        Raises:
            KeyError: If the point is not registered on this file.
        """
        return getattr(self, self._methods[point])

    def setup(self) -> None:
        """Prepare shared state for every point of this parameter."""


class DeviceConformanceFile(ConformanceFile):
    """File parameterized by device configurations.

    Setup acquires the configuration's producer, re-resolves the device's
    hardware ID by name (IDs are only valid under the producer that
    assigned them), loads or captures the hardware spec and creates a
    temporary directory.
    """

    honors = ParameterCategory.PRODUCER | ParameterCategory.DEVICE

    def setup(self) -> None:
        configuration = self.ctx.configuration
        if configuration is None:
            raise RuntimeError(f"{self.name} requires a device configuration")
        guard = self.ctx.acquire(configuration.producer)
        self.ctx.device = resolve_hardware_id(guard, configuration.device.device_name)
        if self.ctx.device.hardware_id != configuration.device.hardware_id:
            logger.info(
                "Hardware ID changed since enumeration",
                device=configuration.device.device_name,
                enumerated=configuration.device.hardware_id,
                resolved=self.ctx.device.hardware_id,
            )
        self.ctx.load_spec()
        self.ctx.make_temp_dir(self.name)
