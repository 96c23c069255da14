"""Configuration space, orchestration and reporting."""

from gentl_conformance.suite.configuration import ConfigurationBuilder, TestConfiguration
from gentl_conformance.suite.context import FileContext, TestPointContext
from gentl_conformance.suite.orchestrator import (
    BoundParameter,
    ParameterBinding,
    RunRequest,
    SuiteRun,
    TestOrchestrator,
    request_from,
)
from gentl_conformance.suite.registry import ParameterCategory, TestFileEntry, TestRegistry
from gentl_conformance.suite.results import (
    Outcome,
    ResultAggregator,
    SuiteReport,
    TestResult,
)
from gentl_conformance.suite.waiting import Clock, SystemClock, eventually

__all__ = [
    "BoundParameter",
    "Clock",
    "ConfigurationBuilder",
    "FileContext",
    "Outcome",
    "ParameterBinding",
    "ParameterCategory",
    "ResultAggregator",
    "RunRequest",
    "SuiteReport",
    "SuiteRun",
    "SystemClock",
    "TestConfiguration",
    "TestFileEntry",
    "TestOrchestrator",
    "TestPointContext",
    "TestRegistry",
    "TestResult",
    "eventually",
    "request_from",
]
