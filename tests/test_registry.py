"""Tests for the test file registry and selection resolution."""

import pytest

from gentl_conformance.conformance import default_registry
from gentl_conformance.suite import ParameterCategory, TestFileEntry, TestRegistry

ALL_POINTS = {
    "tAcquisition": [
        "verifyAcquisition",
        "verifySnapshot",
        "verifyPreview",
        "verifyTestPattern",
    ],
    "tDevices": ["verifyDeviceSequence", "verifyAllDevices"],
    "tFormats": ["verifyFormat"],
    "tProducer": ["verifyProducerListed", "verifyVendorDriver"],
    "tVideoinput": ["verifyVideoinputObj", "verifySelectedSource"],
}


@pytest.fixture
def registry() -> TestRegistry:
    return default_registry()


class TestDefaultRegistry:
    """Tests for the built-in suite registration."""

    def test_files_and_points_in_order(self, registry):
        """Verifies the fixed file order and each file's default points.

        Business context:
        Reports and logs are compared between runs and between sites;
        the suite must always execute in the same order.

        Assertion Strategy:
        File names and point lists equal the fixed suite layout.

        Testing Principle:
        Validates the registry is static and complete.
        """
        assert registry.names() == list(ALL_POINTS)
        assert {entry.name: list(entry.points) for entry in registry} == ALL_POINTS
        assert len(registry) == 5

    def test_honored_categories(self, registry):
        honors = {entry.name: entry.honors for entry in registry}
        assert honors["tDevices"] is ParameterCategory.NONE
        assert honors["tProducer"] == ParameterCategory.PRODUCER
        assert honors["tVideoinput"] == ParameterCategory.PRODUCER | ParameterCategory.DEVICE
        assert honors["tFormats"].names == ["PRODUCER", "DEVICE", "FORMAT"]


class TestResolve:
    """Test suite for TestRegistry.resolve().

    Categories:
    1. Whole-suite selections (1 parametrized test)
    2. File and point tokens (3 tests)
    3. Unknown tokens (2 tests)

    Total: 6 tests.
    """

    @pytest.mark.parametrize("selection", [None, "all", ".", ["tFormats", "ALL"]])
    def test_everything(self, registry, selection):
        assert registry.resolve(selection) == ALL_POINTS

    def test_file_token_selects_all_its_points(self, registry):
        assert registry.resolve("tProducer") == {"tProducer": ALL_POINTS["tProducer"]}

    def test_point_token_and_case_insensitivity(self, registry):
        """Verifies 'file/point' tokens match case-insensitively.

        Arrangement:
        1. Tokens with mixed case for both file and point.

        Action:
        resolve(["TACQUISITION/verifysnapshot"]).

        Assertion Strategy:
        Result uses canonical spellings.

        Testing Principle:
        Validates forgiving input with canonical output.
        """
        assert registry.resolve(["TACQUISITION/verifysnapshot"]) == {
            "tAcquisition": ["verifySnapshot"]
        }

    def test_tokens_merge_in_registry_order(self, registry):
        """Verifies tokens for the same file merge and files keep registry order.

        Arrangement:
        1. Selection naming tVideoinput before two tAcquisition points,
           listed in reverse point order.

        Action:
        resolve(selection).

        Assertion Strategy:
        - tAcquisition comes first (registry order).
        - Its points are in definition order, not token order.

        Testing Principle:
        Validates deterministic execution order regardless of input order.
        """
        resolved = registry.resolve(
            ["tVideoinput", "tAcquisition/verifyTestPattern", "tAcquisition/verifySnapshot"]
        )
        assert list(resolved) == ["tAcquisition", "tVideoinput"]
        assert resolved["tAcquisition"] == ["verifySnapshot", "verifyTestPattern"]

    def test_unknown_tokens_are_dropped_with_warning(self, registry, log_records):
        """Verifies a typo only removes its own token.

        Arrangement:
        1. One valid file, one unknown file, one unknown point.

        Action:
        resolve(selection).

        Assertion Strategy:
        - Only the valid file is selected.
        - Two warnings, one per unknown token.

        Testing Principle:
        Validates that selection errors never abort a run.
        """
        resolved = registry.resolve(["tFormats", "tNoSuchFile", "tProducer/verifyNothing"])

        assert resolved == {"tFormats": ["verifyFormat"]}
        warnings = log_records.with_message("ignoring")
        assert [r.structured_data["token"] for r in warnings] == [
            "tNoSuchFile",
            "tProducer/verifyNothing",
        ]

    def test_nothing_matched(self, registry):
        assert registry.resolve(["bogus"]) == {}


class TestTestFileEntry:
    def test_point_lookup(self):
        entry = TestFileEntry("tExample", ("verifyOne", "verifyTwo"), ParameterCategory.NONE)
        assert entry.point("VERIFYTWO") == "verifyTwo"
        assert entry.point("verifyThree") is None
