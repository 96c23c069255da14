"""Test results and the failure summary report.

Results are keyed by configuration key; the aggregator joins them back to
human-readable parameter labels and renders only what needs attention: an
all-pass run prints a single line, anything else prints a fixed-width
Failure Summary table.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

__all__ = [
    "REPORT_WIDTH",
    "Outcome",
    "ResultAggregator",
    "SuiteReport",
    "TestResult",
]

REPORT_WIDTH = 82
_FAILED_COLUMN = 68
_INCOMPLETE_COLUMN = 78
_MAX_LINE = 61
_TRUNCATED_LINE = 57
_NO_FAILURES = "No failures."


class Outcome(Enum):
    """Outcome of one test point execution."""

    PASSED = "passed"
    FAILED = "failed"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class TestResult:
    """Result of one test point bound to one parameter.

    Attributes:
        name: Full point name, e.g. 'tProducer[Producer=ab12]/verifyVendorDriver'.
        test_file: File name, e.g. 'tProducer'.
        test_point: Point name, e.g. 'verifyVendorDriver'.
        configuration_key: Key of the bound parameter ('' if unparameterized).
        outcome: The single outcome.
        diagnostics: Failure or assumption messages.
        duration_s: Wall time of the point.
    """

    __test__ = False  # not a pytest test class

    name: str
    test_file: str
    test_point: str
    configuration_key: str
    outcome: Outcome
    diagnostics: tuple[str, ...] = ()
    duration_s: float = 0.0

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASSED

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED

    @property
    def incomplete(self) -> bool:
        return self.outcome is Outcome.INCOMPLETE


@dataclass(frozen=True)
class SuiteReport:
    """Partitioned results and their rendered summary."""

    passed: tuple[TestResult, ...]
    failed: tuple[TestResult, ...]
    incomplete: tuple[TestResult, ...]
    text: str
    labels: Mapping[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.passed) + len(self.failed) + len(self.incomplete)

    @property
    def exit_code(self) -> int:
        """1 if anything failed; incomplete points alone do not fail a run."""
        return 1 if self.failed else 0

    def __str__(self) -> str:
        return self.text


class ResultAggregator:
    """Builds the SuiteReport for a run."""

    def summarize(
        self, results: Iterable[TestResult], labels: Mapping[str, str]
    ) -> SuiteReport:
        """Partition results and render the summary.

        Args:
            results: Results in execution order.
            labels: Configuration key to readable label (may span lines).

        Returns:
            SuiteReport; its text is 'No failures.' for a clean run.
        """
        results = list(results)
        passed = tuple(r for r in results if r.passed)
        failed = tuple(r for r in results if r.failed)
        incomplete = tuple(r for r in results if r.incomplete)
        attention = [r for r in results if not r.passed]
        text = _NO_FAILURES if not attention else render_table(attention, labels)
        return SuiteReport(passed, failed, incomplete, text, dict(labels))


def render_table(results: Iterable[TestResult], labels: Mapping[str, str]) -> str:
    """Render the Failure Summary table.

    Layout, 82 columns wide::

        Failure Summary

        Name                                                            Failed  Incomplete
        ==================================================================================
        tFormats[Device=..][TestFormat=Mono8]/verifyFormat                X
        Device ID=1
        Producer Directory=
        /opt/gentl/vendor
        ----------------------------------------------------------------------------------

    Label lines longer than 61 columns are cut to 57 characters plus '...'.
    Long names are cut in their parameter part so the test point survives.
    """
    lines = [
        "Failure Summary",
        "",
        "Name" + " " * 60 + "Failed  Incomplete",
        "=" * REPORT_WIDTH,
    ]
    for result in results:
        lines.append(_mark_row(result))
        label = labels.get(result.configuration_key, "")
        for label_line in label.splitlines():
            lines.append(_truncate(label_line))
        lines.append("-" * REPORT_WIDTH)
    return "\n".join(lines)


def _mark_row(result: TestResult) -> str:
    column = _FAILED_COLUMN if result.failed else _INCOMPLETE_COLUMN
    name = _shorten_name(result.name)
    return name.ljust(column - 1) + "X"


def _shorten_name(name: str) -> str:
    """Cut a long result name inside its parameter part.

    The test point after the last '/' is kept so the row still says what
    failed; the elided middle is marked with '...'.
    """
    if len(name) <= _MAX_LINE:
        return name
    head, sep, point = name.rpartition("/")
    tail = sep + point
    room = _TRUNCATED_LINE - len(tail)
    if not head or room < 1:
        return _truncate(name)
    return head[:room] + "..." + tail


def _truncate(line: str) -> str:
    if len(line) > _MAX_LINE:
        return line[:_TRUNCATED_LINE] + "..."
    return line
