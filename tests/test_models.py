"""Tests for data models."""

from models import (
    NETWORK_STATE_MAP,
    ConfigurationError,
    NetworkSegment,
    NetworkState,
    NetworkWaitError,
    OperatorError,
    Phase,
    PollTimeoutError,
    PollValidationError,
    UnexpectedStateError,
)


class TestNetworkSegment:
    """Tests for NetworkSegment dataclass."""

    def test_to_api(self):
        segment = NetworkSegment("physnet1", "vlan", 100)

        assert segment.to_api() == {
            "provider:physical_network": "physnet1",
            "provider:network_type": "vlan",
            "provider:segmentation_id": 100,
        }

    def test_from_spec(self):
        segment = NetworkSegment.from_spec(
            {"physicalNetwork": "physnet1", "networkType": "vlan", "segmentationId": "42"}
        )

        assert segment == NetworkSegment("physnet1", "vlan", 42)

    def test_from_spec_defaults(self):
        segment = NetworkSegment.from_spec({"networkType": "vxlan"})

        assert segment.physical_network == ""
        assert segment.segmentation_id == 0

    def test_to_api_leaves_out_unset_fields(self):
        segment = NetworkSegment.from_spec({"networkType": "vlan", "physicalNetwork": "physnet1"})

        assert segment.to_api() == {
            "provider:physical_network": "physnet1",
            "provider:network_type": "vlan",
        }

    def test_to_api_empty_segment(self):
        assert NetworkSegment().to_api() == {}


class TestNetworkStateMap:
    def test_every_raw_state_maps_to_a_known_state(self):
        assert set(NETWORK_STATE_MAP.values()) <= set(NetworkState)

    def test_down_is_usable(self):
        assert NETWORK_STATE_MAP["DOWN"] is NetworkState.ACTIVE


class TestPhase:
    def test_values(self):
        assert Phase("Ready") is Phase.READY
        assert Phase.PENDING.value == "Pending"


class TestExceptions:
    """Tests for the error taxonomy."""

    def test_poll_timeout_message(self):
        err = PollTimeoutError("net-1", frozenset({"ACTIVE"}), 30.0, "BUILD")

        assert str(err) == "net-1 did not reach ['ACTIVE'] within 30 seconds (last state: BUILD)"
        assert err.last_state == "BUILD"
        assert isinstance(err, OperatorError)

    def test_poll_timeout_without_state(self):
        err = PollTimeoutError("net-1", frozenset({"ACTIVE"}), 0.5)

        assert "within 0.5 seconds" in str(err)
        assert "last state: unknown" in str(err)

    def test_unexpected_state(self):
        err = UnexpectedStateError("net-1", "ERROR")

        assert err.state == "ERROR"
        assert "ERROR" in str(err)

    def test_validation_is_configuration_error(self):
        assert issubclass(PollValidationError, ConfigurationError)

    def test_network_wait_error_keeps_id(self):
        err = NetworkWaitError("net-1", RuntimeError("stuck"))

        assert err.network_id == "net-1"
        assert "stuck" in str(err)
