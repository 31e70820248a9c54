"""Domain models for the OpenStack resource operator.

This module defines typed data structures for all operator concepts,
making illegal states unrepresentable at the type level.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, NotRequired, TypedDict


# =============================================================================
# Enums for constrained values
# =============================================================================


class Phase(Enum):
    """Resource lifecycle phase."""

    PENDING = "Pending"
    PROVISIONING = "Provisioning"
    READY = "Ready"
    ERROR = "Error"
    DELETING = "Deleting"


class NetworkState(Enum):
    """Logical states a network moves through while being polled."""

    BUILD = "BUILD"
    ACTIVE = "ACTIVE"
    DOWN = "DOWN"
    ERROR = "ERROR"
    DELETED = "DELETED"


# Neutron reports DOWN for networks without ports; both count as usable.
NETWORK_STATE_MAP: dict[str, NetworkState] = {
    "BUILD": NetworkState.BUILD,
    "ACTIVE": NetworkState.ACTIVE,
    "DOWN": NetworkState.ACTIVE,
    "ERROR": NetworkState.ERROR,
}


def map_network_state(raw_status: str | None) -> str:
    """Map a raw Neutron status to the logical state used for polling.

    Unknown values pass through unchanged so the poller can keep waiting.
    """
    if not raw_status:
        return ""
    mapped = NETWORK_STATE_MAP.get(raw_status.upper())
    return mapped.value if mapped else raw_status


# =============================================================================
# TypedDicts for CRD spec (external data from Kubernetes)
# =============================================================================


class SegmentSpec(TypedDict, total=False):
    """Provider segment specification from CRD."""

    physicalNetwork: str
    networkType: str
    segmentationId: int


class TimeoutsSpec(TypedDict, total=False):
    """Per-resource wait timeouts in seconds."""

    create: int
    delete: int


class OpenstackNetworkSpec(TypedDict):
    """Full OpenstackNetwork CRD spec."""

    name: NotRequired[str]
    description: NotRequired[str]
    adminStateUp: NotRequired[bool | str]
    shared: NotRequired[bool | str]
    external: NotRequired[bool]
    projectId: NotRequired[str]
    segments: NotRequired[list[SegmentSpec]]
    valueSpecs: NotRequired[dict[str, Any]]
    tags: NotRequired[list[str]]
    availabilityZoneHints: NotRequired[list[str]]
    timeouts: NotRequired[TimeoutsSpec]


class OpenstackClusterProfileSpec(TypedDict):
    """Full OpenstackClusterProfile CRD spec."""

    name: str
    spec: dict[str, Any]
    metadata: NotRequired[dict[str, Any]]
    type: NotRequired[str]
    version: NotRequired[str]


# =============================================================================
# Dataclasses for internal state and status
# =============================================================================


@dataclass(frozen=True)
class NetworkSegment:
    """A provider network segment."""

    physical_network: str = ""
    network_type: str = ""
    segmentation_id: int = 0

    def to_api(self) -> dict[str, Any]:
        """Convert to the provider extension body.

        Unset fields are left out so Neutron picks them, e.g. a VLAN ID.
        """
        body: dict[str, Any] = {}
        if self.physical_network:
            body["provider:physical_network"] = self.physical_network
        if self.network_type:
            body["provider:network_type"] = self.network_type
        if self.segmentation_id:
            body["provider:segmentation_id"] = self.segmentation_id
        return body

    @classmethod
    def from_spec(cls, data: SegmentSpec) -> "NetworkSegment":
        """Create from a CRD segment entry."""
        return cls(
            physical_network=data.get("physicalNetwork", "") or "",
            network_type=data.get("networkType", "") or "",
            segmentation_id=int(data.get("segmentationId", 0) or 0),
        )


# =============================================================================
# Exceptions
# =============================================================================


class OperatorError(Exception):
    """Base exception for operator errors."""

    pass


class ResourceNotFoundError(OperatorError):
    """A required OpenStack resource was not found."""

    pass


class ConfigurationError(OperatorError):
    """Invalid or missing configuration."""

    pass


class PollValidationError(ConfigurationError):
    """A poll request was malformed."""

    pass


class OpenStackAPIError(OperatorError):
    """Error communicating with OpenStack API."""

    pass


class PollTimeoutError(OperatorError):
    """A resource did not reach a target state in time."""

    def __init__(
        self,
        resource_id: str,
        target: frozenset[str],
        timeout: float,
        last_state: str = "",
    ) -> None:
        self.resource_id = resource_id
        self.target = target
        self.timeout = timeout
        self.last_state = last_state
        super().__init__(
            f"{resource_id} did not reach {sorted(target)} within "
            f"{timeout:g} seconds (last state: {last_state or 'unknown'})"
        )


class UnexpectedStateError(OperatorError):
    """A resource entered a state from which it will not recover."""

    def __init__(self, resource_id: str, state: str) -> None:
        self.resource_id = resource_id
        self.state = state
        super().__init__(f"{resource_id} entered unexpected state {state}")


class NetworkWaitError(OperatorError):
    """A network was created but never became active."""

    def __init__(self, network_id: str, cause: Exception) -> None:
        self.network_id = network_id
        super().__init__(f"Network {network_id} was created but is not usable: {cause}")
