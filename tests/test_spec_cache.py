"""Tests for the persistent hardware specification cache."""

from dataclasses import replace

import asdf
import pytest

from gentl_conformance.data import HardwareSpec, HardwareSpecCache, NumericScalar, PropertyRecord, Text
from gentl_conformance.data.spec_cache import SPEC_TREE_ROOT
from gentl_conformance.devices import DeviceEnumerator, DeviceHandle, ProducerRef
from gentl_conformance.errors import SpecNotFoundError, SpecWriteError


def _small_spec(key: str = "gentl_Cam_Mono8") -> HardwareSpec:
    record = PropertyRecord(
        name="Gain",
        type="double",
        constraint="bounded",
        constraint_value=NumericScalar(1.0000000000000002),
        default_value=NumericScalar(1.0000000000000002),
        read_only="notCurrently",
        device_specific=True,
        runtime_defined=False,
        index=1,
    )
    name = PropertyRecord(
        name="Name",
        type="string",
        constraint="none",
        constraint_value=Text(""),
        default_value=Text("Mono8-gentl-1"),
        read_only="notCurrently",
        device_specific=False,
        runtime_defined=True,
        index=2,
    )
    return HardwareSpec(
        key=key,
        device_name="Cam",
        default_format="Mono8",
        formats=("Mono8",),
        properties=(record, name),
        source_offset=2,
    )


class TestHardwareSpecCache:
    """Test suite for HardwareSpecCache.

    Categories:
    1. Persistence (3 tests)
    2. get_or_create hit and miss (2 tests)
    3. Invalidation (2 tests)
    4. Write failures (1 test)

    Total: 8 tests.
    """

    def test_store_and_lookup_preserve_values_exactly(self, spec_cache):
        """Verifies a stored spec reads back identical, including float bits.

        Business context:
        Specs are golden references. A default of 1.0000000000000002 that
        comes back as 1.0 would make a later exact comparison fail against
        the very device it was captured from.

        Arrangement:
        1. Spec with a NumericScalar 1.0000000000000002.

        Action:
        store() then lookup().

        Assertion Strategy:
        - Loaded spec equals the stored one.
        - The float is bit-identical.
        - The file is an ASDF file with the 'hwspec' tree root.

        Testing Principle:
        Validates lossless persistence.
        """
        spec = _small_spec()
        path = spec_cache.store(spec)

        loaded = spec_cache.lookup(spec.key)
        assert loaded == spec
        assert loaded.record("Gain").default_value.value == 1.0000000000000002
        with asdf.open(path) as af:
            assert af.tree[SPEC_TREE_ROOT]["key"] == spec.key

    def test_lookup_miss_returns_none(self, spec_cache):
        assert spec_cache.lookup("gentl_Missing_Mono8") is None
        assert not spec_cache.contains("gentl_Missing_Mono8")
        with pytest.raises(SpecNotFoundError):
            spec_cache.load("gentl_Missing_Mono8")

    def test_keys_lists_stored_specs(self, spec_cache):
        assert spec_cache.keys() == []
        spec_cache.store(_small_spec("gentl_B_Mono8"))
        spec_cache.store(_small_spec("gentl_A_Mono8"))
        assert spec_cache.keys() == ["gentl_A_Mono8", "gentl_B_Mono8"]
        assert not any(p.name.startswith(".") for p in spec_cache.spec_dir.iterdir())

    def test_miss_captures_from_device_then_hit_does_not_open(self, session, twin, spec_cache, producer_a):
        """Verifies hardware is only touched on a miss.

        Business context:
        Capturing a spec opens a session on the camera; on real hardware
        that is slow and may disturb a device under test. After the first
        run the cache must answer alone.

        Arrangement:
        1. Empty cache; twin device 1 under producer A.

        Action:
        get_or_create twice with the same key.

        Assertion Strategy:
        - First call opens exactly one session, closes it, and writes
          the file.
        - Second call opens nothing and returns an equal spec.

        Testing Principle:
        Validates cache-hit idempotence without side effects.
        """
        with session.acquire(ProducerRef(str(producer_a))) as guard:
            device = DeviceEnumerator().enumerate(guard)[0]
            handle = DeviceHandle(guard, device)

            opened = twin.open_count
            first = spec_cache.get_or_create(device.spec_file_key, handle)
            assert twin.open_count == opened + 1
            assert guard.leaked_sessions() == []
            assert spec_cache.contains(device.spec_file_key)

            second = spec_cache.get_or_create(device.spec_file_key, handle)
            assert twin.open_count == opened + 1
            assert second == first

        assert first.device_name == "TwinCam Mono (TW0001)"
        assert first.formats == ("Mono8", "Mono16")

    def test_cached_file_wins_over_device(self, session, spec_cache, producer_a):
        with session.acquire(ProducerRef(str(producer_a))) as guard:
            device = DeviceEnumerator().enumerate(guard)[0]
            stale = replace(_small_spec(device.spec_file_key), device_name="Stale")
            spec_cache.store(stale)
            assert spec_cache.get_or_create(device.spec_file_key, DeviceHandle(guard, device)) == stale

    def test_invalidate(self, spec_cache):
        spec_cache.store(_small_spec())
        assert spec_cache.invalidate("gentl_Cam_Mono8")
        assert not spec_cache.contains("gentl_Cam_Mono8")
        assert not spec_cache.invalidate("gentl_Cam_Mono8")

    def test_regenerate_recaptures(self, session, twin, spec_cache, producer_a):
        with session.acquire(ProducerRef(str(producer_a))) as guard:
            device = DeviceEnumerator().enumerate(guard)[0]
            spec_cache.store(replace(_small_spec(device.spec_file_key), device_name="Stale"))
            opened = twin.open_count
            fresh = spec_cache.regenerate(device.spec_file_key, DeviceHandle(guard, device))
        assert twin.open_count == opened + 1
        assert fresh.device_name == "TwinCam Mono (TW0001)"

    def test_write_failure_raises_spec_write_error(self, tmp_path):
        """Verifies a failed write raises SpecWriteError and leaves no file.

        Arrangement:
        1. Cache whose spec_dir is an existing regular file, so the
           directory cannot be created.

        Action:
        store(spec).

        Assertion Strategy:
        - SpecWriteError carrying the key and the cause.
        - No spec file exists afterwards.

        Testing Principle:
        Validates fail-fast handling of golden file writes.
        """
        blocker = tmp_path / "hwspec"
        blocker.write_text("not a directory")
        cache = HardwareSpecCache(blocker)

        with pytest.raises(SpecWriteError) as excinfo:
            cache.store(_small_spec())
        assert excinfo.value.key == "gentl_Cam_Mono8"
        assert excinfo.value.cause is not None
        assert not cache.contains("gentl_Cam_Mono8")
