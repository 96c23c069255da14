"""Tests for result aggregation and the failure summary."""

from gentl_conformance.suite import Outcome, ResultAggregator, TestResult
from gentl_conformance.suite.results import REPORT_WIDTH, render_table


def _result(name: str, outcome: Outcome, key: str = "k1") -> TestResult:
    test_file, _, point = name.partition("/")
    return TestResult(
        name=name,
        test_file=test_file.split("[")[0],
        test_point=point,
        configuration_key=key,
        outcome=outcome,
    )


class TestResultAggregator:
    """Test suite for ResultAggregator.summarize().

    Categories:
    1. Clean runs (1 test)
    2. Partitioning and exit code (2 tests)

    Total: 3 tests.
    """

    def test_all_passed_prints_single_line(self):
        report = ResultAggregator().summarize(
            [_result("tProducer/verifyProducerListed", Outcome.PASSED)], {}
        )
        assert str(report) == "No failures."
        assert report.exit_code == 0
        assert report.total == 1

    def test_partitions_by_outcome(self):
        """Verifies each result lands in exactly one partition.

        Arrangement:
        1. One passed, two failed and one incomplete result.

        Action:
        summarize(results, labels).

        Assertion Strategy:
        - Partition sizes 1/2/1 and total 4.
        - Exit code is 1.
        - Passed results do not appear in the table.

        Testing Principle:
        Validates the single-outcome rule end to end.
        """
        results = [
            _result("tA/verifyPass", Outcome.PASSED),
            _result("tA/verifyFailOne", Outcome.FAILED),
            _result("tA/verifyFailTwo", Outcome.FAILED),
            _result("tA/verifyMaybe", Outcome.INCOMPLETE),
        ]
        report = ResultAggregator().summarize(results, {"k1": "Device ID=1"})

        assert (len(report.passed), len(report.failed), len(report.incomplete)) == (1, 2, 1)
        assert report.total == 4
        assert report.exit_code == 1
        assert "verifyPass" not in report.text
        assert report.text.count("Device ID=1") == 3

    def test_incomplete_only_does_not_fail_run(self):
        report = ResultAggregator().summarize(
            [_result("tProducer/verifyVendorDriver", Outcome.INCOMPLETE)], {}
        )
        assert report.exit_code == 0
        assert report.text.startswith("Failure Summary")


class TestRenderTable:
    """Tests for the fixed-width table layout."""

    def test_layout(self):
        """Verifies header, marks, labels and separators.

        Business context:
        The summary is read by people scanning long runs and diffed
        between runs; columns must never move.

        Arrangement:
        1. One failed and one incomplete result with a two-line label.

        Action:
        render_table(results, labels).

        Assertion Strategy:
        - Header and rules are 82 columns.
        - Failed mark at column 68, incomplete mark at column 78.
        - Each label line follows its result row.

        Testing Principle:
        Validates the exact report format.
        """
        results = [
            _result("tFormats/verifyFormat", Outcome.FAILED),
            _result("tFormats/verifyOther", Outcome.INCOMPLETE),
        ]
        labels = {"k1": "Device ID=1\nProducer Directory=\n/opt/gentl/vendor"}
        lines = render_table(results, labels).splitlines()

        assert lines[0] == "Failure Summary"
        assert lines[1] == ""
        assert lines[2] == "Name" + " " * 60 + "Failed  Incomplete"
        assert lines[3] == "=" * REPORT_WIDTH
        assert REPORT_WIDTH == 82

        failed_row = lines[4]
        assert failed_row.startswith("tFormats/verifyFormat ")
        assert len(failed_row) == 68
        assert failed_row[67] == "X"
        assert lines[5:8] == ["Device ID=1", "Producer Directory=", "/opt/gentl/vendor"]
        assert lines[8] == "-" * 82

        incomplete_row = lines[9]
        assert len(incomplete_row) == 78
        assert incomplete_row[77] == "X"
        assert incomplete_row.count("X") == 1

    def test_long_lines_are_truncated(self):
        directory = "/opt/" + "d" * 70
        lines = render_table(
            [_result("tProducer/verifyProducerListed", Outcome.FAILED)],
            {"k1": f"Producer Directory=\n{directory}"},
        ).splitlines()

        assert lines[6] == directory[:57] + "..."
        assert len(lines[6]) == 60

    def test_sixty_one_columns_are_kept(self):
        line = "x" * 61
        lines = render_table([_result("tA/verifyB", Outcome.FAILED)], {"k1": line}).splitlines()
        assert lines[5] == line

    def test_missing_label_prints_only_the_row(self):
        lines = render_table(
            [_result("tDevices/verifyAllDevices", Outcome.FAILED, key="")], {}
        ).splitlines()
        assert lines[4].startswith("tDevices/verifyAllDevices")
        assert lines[5] == "-" * 82

    def test_long_names_keep_the_test_point(self):
        """Verifies long result names are cut in their parameter part.

        Business context:
        Parameterized names carry device and format keys; when a row is
        too long the reader still needs to see which point failed.

        Arrangement:
        1. Failed result whose name is 80 characters, ending in
           '/verifyFormat'.

        Action:
        render_table with no labels.

        Assertion Strategy:
        - The row keeps the file prefix and ends its name with
          '.../verifyFormat'.
        - The shortened name is 60 characters and the mark stays at
          column 68.

        Testing Principle:
        Validates truncation never drops the test point.
        """
        name = "tFormats[Device=0123456789ab][TestFormat=" + "Mono" * 6 + "]/verifyFormat"
        name = name.replace("/verifyFormat", "x" * (80 - len(name)) + "/verifyFormat")
        assert len(name) == 80

        row = render_table([_result(name, Outcome.FAILED)], {}).splitlines()[4]

        shortened = row[:67].rstrip()
        assert shortened.startswith("tFormats[Device=")
        assert shortened.endswith(".../verifyFormat")
        assert len(shortened) == 60
        assert len(row) == 68
        assert row[67] == "X"

    def test_long_name_without_point_is_cut_at_the_end(self):
        name = "x" * 70
        row = render_table([_result(name, Outcome.INCOMPLETE)], {}).splitlines()[4]
        assert row.startswith("x" * 57 + "...")
        assert row[77] == "X"
