"""Tests for test point verification state, file contexts and waits."""

import pytest

from gentl_conformance.devices import DeviceEnumerator, ProducerRef
from gentl_conformance.errors import (
    AssumptionNotMet,
    StreamingTimeoutError,
    VerificationFailure,
)
from gentl_conformance.suite import FileContext, TestPointContext, eventually


class TestTestPointContext:
    """Test suite for TestPointContext.

    Categories:
    1. Soft verifications (2 tests)
    2. Hard assertions and assumptions (1 test)

    Total: 3 tests.
    """

    def test_failed_verifications_accumulate(self):
        """Verifies soft checks record every failure and keep going.

        Business context:
        One qualification run should report every mismatch on a camera,
        not just the first, so hardware teams can fix them together.

        Arrangement:
        1. Fresh context.

        Action:
        Several verify_* calls, some failing.

        Assertion Strategy:
        - Failing calls return False, passing calls True.
        - failures holds messages in call order.

        Testing Principle:
        Validates soft-failure semantics.
        """
        t = TestPointContext("tExample/verifyThings")

        assert t.verify_true(True, "unused")
        assert not t.verify_equal(3, 4, "Width")
        assert not t.verify_not_empty([], "Nothing there")
        assert not t.verify_subset(["a", "z"], ["a", "b"], "Names")

        assert t.failed
        assert t.failures == [
            "Width: expected 4, actual 3",
            "Nothing there",
            "Names: unexpected ['z']",
        ]

    def test_clean_context_has_no_failures(self):
        t = TestPointContext("tExample/verifyNothing")
        assert t.verify_equal("Mono8", "Mono8")
        assert not t.failed

    def test_assert_and_assume_raise(self):
        t = TestPointContext("tExample/verifyHard")
        with pytest.raises(VerificationFailure, match="broken"):
            t.assert_true(False, "broken")
        with pytest.raises(AssumptionNotMet, match="missing"):
            t.assume_true(0, "missing")
        t.assert_true(1, "fine")
        t.assume_true("yes", "fine")


class TestFileContextCleanup:
    """Tests for FileContext.cleanup()."""

    def test_reports_leaked_session_and_removes_temp_dir(self, session, spec_cache, producer_a):
        """Verifies cleanup releases the guard and reports a leak.

        Arrangement:
        1. Context that acquired producer A, opened device 1 without
           closing it, and created a temp directory.

        Action:
        cleanup().

        Assertion Strategy:
        - One problem naming the leaked session.
        - Temp directory is gone.
        - Subsystem session is free again.

        Testing Principle:
        Validates the checks behind the synthetic cleanup result.
        """
        ctx = FileContext(session=session, spec_cache=spec_cache, enumerator=DeviceEnumerator())
        guard = ctx.acquire(ProducerRef(str(producer_a)))
        ctx.device = DeviceEnumerator().enumerate(guard)[0]
        ctx.open_device()
        temp_dir = ctx.make_temp_dir("tExample")

        problems = ctx.cleanup()

        assert problems == ["Device sessions were left open: Mono8-gentl-1"]
        assert not temp_dir.exists()
        assert not session.held
        assert ctx.guard is None

    def test_clean_cleanup(self, session, spec_cache, producer_a):
        ctx = FileContext(session=session, spec_cache=spec_cache, enumerator=DeviceEnumerator())
        ctx.acquire(ProducerRef(str(producer_a)))
        assert ctx.cleanup() == []
        assert ctx.cleanup() == []

    def test_require_helpers_fail_before_setup(self, session, spec_cache):
        ctx = FileContext(session=session, spec_cache=spec_cache, enumerator=DeviceEnumerator())
        with pytest.raises(RuntimeError, match="did not acquire"):
            ctx.require_guard()
        with pytest.raises(RuntimeError, match="did not resolve"):
            ctx.require_device()
        with pytest.raises(RuntimeError, match="hardware spec"):
            ctx.require_spec()
        with pytest.raises(RuntimeError, match="temporary directory"):
            ctx.require_temp_dir()


class TestEventually:
    """Test suite for eventually().

    Categories:
    1. Success (2 tests)
    2. Timeout (2 tests)

    Total: 4 tests.
    """

    def test_returns_when_value_matches(self, clock):
        values = iter([0, 3, 10])
        result = eventually(lambda: next(values), 10, 5.0, clock, interval_s=0.5)
        assert result == 10
        assert clock.sleeps == [0.5, 0.5]

    def test_predicate_expected(self, clock):
        counter = {"n": 0}

        def probe() -> int:
            counter["n"] += 1
            return counter["n"]

        assert eventually(probe, lambda n: n >= 3, 5.0, clock) == 3

    def test_times_out_with_last_value(self, clock):
        """Verifies a condition that never holds raises after the timeout.

        Arrangement:
        1. Probe always returning 7; expected 8; timeout 1s; poll 0.25s.

        Action:
        eventually(...).

        Assertion Strategy:
        - StreamingTimeoutError naming the description and last value.
        - Fake time advanced by exactly the timeout.

        Testing Principle:
        Validates bounded waiting without real sleeps.
        """
        with pytest.raises(StreamingTimeoutError) as excinfo:
            eventually(
                lambda: 7, 8, 1.0, clock, description="frame count", interval_s=0.25
            )
        assert "frame count" in str(excinfo.value)
        assert "7" in str(excinfo.value)
        assert clock.monotonic() == pytest.approx(1.0)

    def test_zero_timeout_probes_once(self, clock):
        calls = []
        with pytest.raises(StreamingTimeoutError):
            eventually(lambda: calls.append(1) or len(calls), 5, 0.0, clock)
        assert calls == [1]
        assert clock.sleeps == []
