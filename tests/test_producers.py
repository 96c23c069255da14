"""Tests for producer discovery."""

import os

import pytest

from gentl_conformance.devices import ProducerDiscovery, ProducerRef, normalize_directory
from gentl_conformance.errors import DiscoveryError, NoProducersFoundError
from tests.helpers import make_producer_dir


class TestProducerDiscovery:
    """Test suite for ProducerDiscovery.discover().

    Categories:
    1. Ordering and de-duplication (2 tests)
    2. Filtering of non-producer segments (2 tests)
    3. Failure on empty results (2 tests)

    Total: 6 tests.
    """

    def test_preserves_search_path_order(self, tmp_path):
        """Verifies producers are returned in search-path order.

        Business context:
        The producer list is the ground truth every other component (and
        every report) iterates in. It must follow the order the integrator
        configured, not filesystem or alphabetical order.

        Arrangement:
        1. Producer directories 'zeta' and 'alpha'.
        2. Search path lists zeta first.

        Action:
        discover(path).

        Assertion Strategy:
        Result equals [zeta, alpha] as ProducerRefs.

        Testing Principle:
        Validates deterministic, order-preserving discovery.
        """
        zeta = make_producer_dir(tmp_path, "zeta")
        alpha = make_producer_dir(tmp_path, "alpha")
        path = os.pathsep.join([str(zeta), str(alpha)])

        assert ProducerDiscovery().discover(path) == [
            ProducerRef(str(zeta)),
            ProducerRef(str(alpha)),
        ]

    def test_normalizes_and_deduplicates(self, tmp_path):
        """Verifies trailing separators are stripped and duplicates dropped.

        Arrangement:
        1. One producer directory listed three times: plain, with a
           trailing separator, and plain again, plus empty segments.

        Action:
        discover(path).

        Assertion Strategy:
        Exactly one ProducerRef, without trailing separator.

        Testing Principle:
        Validates the first-occurrence-wins de-duplication contract.
        """
        vendor = make_producer_dir(tmp_path, "vendor")
        path = os.pathsep.join(["", str(vendor), str(vendor) + os.sep, "", str(vendor)])

        assert ProducerDiscovery().discover(path) == [ProducerRef(str(vendor))]

    def test_skips_directories_without_descriptor(self, tmp_path, log_records):
        """Verifies directories without a .cti file are logged and skipped.

        Arrangement:
        1. 'empty' directory with no descriptors, 'vendor' with one.
        2. A path segment that does not exist at all.

        Action:
        discover(path).

        Assertion Strategy:
        - Only 'vendor' is returned.
        - An INFO record names the skipped 'empty' directory.

        Testing Principle:
        Validates that misconfigured entries degrade to a log line rather
        than aborting the run.
        """
        empty = make_producer_dir(tmp_path, "empty", descriptors=())
        vendor = make_producer_dir(tmp_path, "vendor")
        missing = tmp_path / "missing"
        path = os.pathsep.join([str(empty), str(missing), str(vendor)])

        assert ProducerDiscovery().discover(path) == [ProducerRef(str(vendor))]
        skipped = log_records.with_message("will not be included in testing")
        assert [r.structured_data["producer"] for r in skipped] == [str(empty), str(missing)]

    def test_reads_environment_variable(self, tmp_path, monkeypatch):
        vendor = make_producer_dir(tmp_path, "vendor")
        monkeypatch.setenv("GENTL_TEST_PATH", str(vendor))

        discovery = ProducerDiscovery(env_var="GENTL_TEST_PATH")
        assert discovery.discover() == [ProducerRef(str(vendor))]

    @pytest.mark.parametrize("value", ["", os.pathsep, os.pathsep * 3])
    def test_empty_search_path_raises(self, value):
        """Verifies an empty search path raises NoProducersFoundError."""
        with pytest.raises(NoProducersFoundError) as excinfo:
            ProducerDiscovery().discover(value)
        assert isinstance(excinfo.value, DiscoveryError)

    def test_no_qualifying_directory_raises(self, tmp_path):
        empty = make_producer_dir(tmp_path, "empty", descriptors=())
        with pytest.raises(NoProducersFoundError, match=r"\*\.cti"):
            ProducerDiscovery().discover(str(empty))


class TestProducerFilter:
    """Tests for ProducerDiscovery.filter() on explicit producer lists."""

    def test_filter_keeps_qualifying_in_input_order(self, tmp_path):
        a = make_producer_dir(tmp_path, "a")
        b = make_producer_dir(tmp_path, "b")
        empty = make_producer_dir(tmp_path, "empty", descriptors=())

        result = ProducerDiscovery().filter([b, empty, str(a), str(b)])
        assert result == [ProducerRef(str(b)), ProducerRef(str(a))]

    def test_filter_may_return_empty(self, tmp_path):
        empty = make_producer_dir(tmp_path, "empty", descriptors=())
        assert ProducerDiscovery().filter([empty]) == []


class TestProducerRef:
    """Tests for ProducerRef and normalize_directory."""

    def test_descriptors_sorted(self, tmp_path):
        vendor = make_producer_dir(tmp_path, "vendor", ("b.cti", "a.cti"))
        (vendor / "readme.txt").write_text("not a descriptor")
        ref = ProducerRef(str(vendor))
        assert [p.name for p in ref.descriptors()] == ["a.cti", "b.cti"]
        assert str(ref) == str(vendor)

    def test_normalize_keeps_root(self):
        assert normalize_directory(os.sep) == os.sep
        assert normalize_directory(f"{os.sep}opt{os.sep}gentl{os.sep}") == f"{os.sep}opt{os.sep}gentl"
