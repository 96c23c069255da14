"""Tests for device enumeration and hardware ID resolution."""

import pytest

from gentl_conformance.devices import (
    DeviceDescriptor,
    DeviceEnumerator,
    ProducerRef,
    SubsystemSession,
    resolve_hardware_id,
    spec_file_key,
)
from gentl_conformance.drivers.subsystem.twin import (
    DigitalTwinConfig,
    DigitalTwinSubsystem,
    TwinProducer,
)
from gentl_conformance.errors import (
    InvalidDeviceError,
    NoDevicesFoundError,
    ProducerQueryError,
)


class TestSpecFileKey:
    """Tests for spec_file_key()."""

    def test_replaces_non_word_characters(self):
        """Verifies every character outside [A-Za-z0-9_] becomes '_'.

        Business context:
        Device names come from vendor firmware and contain spaces,
        parentheses and sometimes non-ASCII characters. The key is used as
        a file stem on every platform.

        Arrangement:
        1. Device name with spaces, parentheses and an umlaut.

        Action:
        spec_file_key(name, format).

        Assertion Strategy:
        Exact key with underscores for each replaced character.

        Testing Principle:
        Validates portable, deterministic cache keys.
        """
        assert spec_file_key("TwinCam Mono (TW0001)", "Mono8") == "gentl_TwinCam_Mono__TW0001__Mono8"
        assert spec_file_key("Kamera-ü", "RGB8Packed") == "gentl_Kamera___RGB8Packed"

    def test_descriptor_key_uses_default_format(self):
        device = DeviceDescriptor("Cam", 1, ("Mono8", "Mono16"), "Mono16")
        assert device.spec_file_key == "gentl_Cam_Mono16"
        assert device.supports("Mono8")
        assert not device.supports("RGB8Packed")


class TestDeviceEnumerator:
    """Test suite for DeviceEnumerator.enumerate()."""

    def test_lists_devices_of_active_producer(self, session, producer_a):
        """Verifies descriptors come back in subsystem order with IDs 1..N.

        Arrangement:
        1. Twin with the two default cameras behind every producer.
        2. Guard acquired for producer A only.

        Action:
        enumerate(guard).

        Assertion Strategy:
        - Two descriptors with hardware IDs 1 and 2.
        - Names, formats and default format match the twin devices.

        Testing Principle:
        Validates mapping from DeviceInfo records to descriptors.
        """
        with session.acquire(ProducerRef(str(producer_a))) as guard:
            devices = DeviceEnumerator().enumerate(guard)

        assert [d.hardware_id for d in devices] == [1, 2]
        assert devices[0].device_name == "TwinCam Mono (TW0001)"
        assert devices[0].supported_formats == ("Mono8", "Mono16")
        assert devices[1].default_format == "RGB8Packed"

    def test_no_devices_raises(self, search_path, producer_a):
        twin = DigitalTwinSubsystem(
            DigitalTwinConfig(
                default_producer=TwinProducer(device_serials=()),
                initial_producer_path=search_path,
            )
        )
        with SubsystemSession(twin).acquire(ProducerRef(str(producer_a))) as guard:
            with pytest.raises(NoDevicesFoundError) as excinfo:
                DeviceEnumerator().enumerate(guard)
        assert excinfo.value.producer == str(producer_a)

    def test_subsystem_failure_wraps_in_producer_query_error(self, search_path, producer_a):
        """Verifies a failing producer surfaces as ProducerQueryError.

        Arrangement:
        1. Twin whose producer A is marked broken.

        Action:
        enumerate(guard) under producer A.

        Assertion Strategy:
        - ProducerQueryError naming producer A.
        - Original exception chained as __cause__.

        Testing Principle:
        Validates error translation at the subsystem boundary.
        """
        twin = DigitalTwinSubsystem(
            DigitalTwinConfig(
                producers={str(producer_a): TwinProducer(broken=True)},
                initial_producer_path=search_path,
            )
        )
        with SubsystemSession(twin).acquire(ProducerRef(str(producer_a))) as guard:
            with pytest.raises(ProducerQueryError) as excinfo:
                DeviceEnumerator().enumerate(guard)
        assert excinfo.value.producer == str(producer_a)
        assert excinfo.value.__cause__ is not None

    def test_malformed_device_record_wraps_in_producer_query_error(
        self, session, twin, producer_a, monkeypatch
    ):
        monkeypatch.setattr(twin, "enumerate_devices", lambda: [{"DeviceName": "Cam"}])
        with session.acquire(ProducerRef(str(producer_a))) as guard:
            with pytest.raises(ProducerQueryError) as excinfo:
                DeviceEnumerator().enumerate(guard)
        assert excinfo.value.producer == str(producer_a)
        assert isinstance(excinfo.value.__cause__, KeyError)


class TestResolveHardwareId:
    """Tests for resolve_hardware_id()."""

    def test_resolves_case_insensitively(self, session, producer_a):
        with session.acquire(ProducerRef(str(producer_a))) as guard:
            device = resolve_hardware_id(guard, "twincam color (tw0002)")
        assert device.hardware_id == 2
        assert device.device_name == "TwinCam Color (TW0002)"

    def test_id_changes_with_producer_order(self, search_path, producer_a, producer_b):
        """Verifies the ID is re-resolved under the currently active producer.

        Business context:
        Hardware IDs are positional. A device that is ID 2 under one
        producer can be ID 1 under another; configurations built earlier
        must never reuse a stale ID.

        Arrangement:
        1. Producer A sees [TW0001, TW0002]; producer B sees only [TW0002].

        Action:
        Resolve 'TwinCam Color (TW0002)' under each producer.

        Assertion Strategy:
        ID 2 under A, ID 1 under B.

        Testing Principle:
        Validates producer-scoped identity.
        """
        twin = DigitalTwinSubsystem(
            DigitalTwinConfig(
                producers={str(producer_b): TwinProducer(device_serials=("TW0002",))},
                initial_producer_path=search_path,
            )
        )
        session = SubsystemSession(twin)
        name = "TwinCam Color (TW0002)"
        with session.acquire(ProducerRef(str(producer_a))) as guard:
            assert resolve_hardware_id(guard, name).hardware_id == 2
        with session.acquire(ProducerRef(str(producer_b))) as guard:
            assert resolve_hardware_id(guard, name).hardware_id == 1

    def test_unknown_name_raises(self, session, producer_a):
        with session.acquire(ProducerRef(str(producer_a))) as guard:
            with pytest.raises(InvalidDeviceError, match="Invalid Device ID"):
                resolve_hardware_id(guard, "No Such Camera")
