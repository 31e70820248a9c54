"""Network management: option assembly, state refresh, and lifecycle calls."""

import logging
from typing import Any

from constants import (
    MANAGED_BY_TAG,
    NETWORK_CREATE_TIMEOUT,
    NETWORK_DELETE_TIMEOUT,
    NETWORK_POLL_DELAY,
    NETWORK_POLL_INTERVAL,
)
from models import (
    NetworkSegment,
    NetworkState,
    NetworkWaitError,
    OpenstackNetworkSpec,
    map_network_state,
)
from openstack_client import OpenStackClient
from poller import PollOutcome, PollRequest, RefreshFunc, wait_for_state
from utils import env_seconds, parse_bool

logger = logging.getLogger(__name__)

# Spec fields that can be changed on an existing network
MUTABLE_FIELDS = frozenset(
    {"name", "description", "adminStateUp", "shared", "external", "tags"}
)

# Spec fields that require the network to be recreated
IMMUTABLE_FIELDS = frozenset(
    {"projectId", "segments", "valueSpecs", "availabilityZoneHints"}
)


def build_segments(spec: OpenstackNetworkSpec) -> list[NetworkSegment]:
    """Build provider segments from the CR spec."""
    return [NetworkSegment.from_spec(s) for s in spec.get("segments") or []]


def build_network_create_args(spec: OpenstackNetworkSpec) -> dict[str, Any]:
    """Assemble SDK create attributes for a network.

    The plain options are always present. The provider extension
    (``segments``) is only added when segments are given, and the external
    network extension (``router:external``) only when ``external`` is true.

    Raises:
        ConfigurationError: if adminStateUp or shared is not a boolean
    """
    args: dict[str, Any] = {
        "name": spec.get("name", ""),
        "description": spec.get("description", ""),
    }
    if spec.get("projectId"):
        args["project_id"] = spec["projectId"]
    if spec.get("availabilityZoneHints"):
        args["availability_zone_hints"] = list(spec["availabilityZoneHints"])

    admin_state_up = parse_bool("adminStateUp", spec.get("adminStateUp"))
    if admin_state_up is not None:
        args["is_admin_state_up"] = admin_state_up

    shared = parse_bool("shared", spec.get("shared"))
    if shared is not None:
        args["is_shared"] = shared

    # Value specs are passed through verbatim and win over the options above
    args.update(spec.get("valueSpecs") or {})

    segments = build_segments(spec)
    if segments:
        args["segments"] = [s.to_api() for s in segments]

    if spec.get("external", False):
        args["is_router_external"] = True

    return args


def create_variant(args: dict[str, Any]) -> str:
    """Name the API variant a set of create attributes uses."""
    parts = []
    if "segments" in args:
        parts.append("provider")
    if args.get("is_router_external"):
        parts.append("external")
    return "+".join(parts) or "plain"


def network_tags(spec: OpenstackNetworkSpec) -> list[str]:
    """Tags to apply to a network, always including the managed-by tag."""
    return sorted(set(spec.get("tags") or []) | {MANAGED_BY_TAG})


def create_timeout(spec: OpenstackNetworkSpec) -> float:
    """Seconds to wait for a new network to become active."""
    timeouts = spec.get("timeouts") or {}
    if timeouts.get("create"):
        return float(timeouts["create"])
    return env_seconds("NETWORK_CREATE_TIMEOUT_SECONDS", NETWORK_CREATE_TIMEOUT)


def delete_timeout(spec: OpenstackNetworkSpec) -> float:
    """Seconds to wait for a deleted network to disappear."""
    timeouts = spec.get("timeouts") or {}
    if timeouts.get("delete"):
        return float(timeouts["delete"])
    return env_seconds("NETWORK_DELETE_TIMEOUT_SECONDS", NETWORK_DELETE_TIMEOUT)


def refresh_network_status(client: OpenStackClient) -> RefreshFunc:
    """Build a refresh function reporting the logical state of a network."""

    def refresh(network_id: str) -> str:
        network = client.poll_network(network_id)
        logger.debug("Network %s status: %s", network_id, network.status)
        return map_network_state(network.status)

    return refresh


def refresh_network_delete(client: OpenStackClient) -> RefreshFunc:
    """Build a refresh function that (re)issues the delete on every call.

    A missing network surfaces as ResourceNotFound and a network that still
    has ports as ConflictException; the poller decides what both mean.
    Calls are not retried, so other errors end the poll on first sight.
    """

    def refresh(network_id: str) -> str:
        client.poll_network(network_id)
        client.poll_network_delete(network_id)
        logger.debug("Network %s still present after delete request", network_id)
        return NetworkState.ACTIVE.value

    return refresh


def wait_for_network_active(
    client: OpenStackClient,
    network_id: str,
    spec: OpenstackNetworkSpec,
    **poll_kwargs: Any,
) -> PollOutcome:
    """Wait for a network to leave BUILD.

    Raises:
        PollTimeoutError: still building when time ran out
        UnexpectedStateError: the network went to ERROR
    """
    request = PollRequest(
        resource_id=network_id,
        target=frozenset({NetworkState.ACTIVE.value}),
        pending=frozenset({NetworkState.BUILD.value}),
        failure=frozenset({NetworkState.ERROR.value}),
        refresh=refresh_network_status(client),
        delay=NETWORK_POLL_DELAY,
        interval=NETWORK_POLL_INTERVAL,
        timeout=create_timeout(spec),
        kind="network",
    )
    return wait_for_state(request, **poll_kwargs)


def create_network(
    client: OpenStackClient,
    spec: OpenstackNetworkSpec,
    **poll_kwargs: Any,
) -> dict[str, str]:
    """Create a network and wait for it to become active.

    Args:
        client: OpenStack client
        spec: Network specification from CR
        poll_kwargs: Passed through to the poller (sleep/clock)

    Returns:
        Dict with networkId and status

    Raises:
        NetworkWaitError: the network exists but never became active
    """
    args = build_network_create_args(spec)
    logger.info(
        "Creating network %s using the %s API variant",
        args.get("name", ""),
        create_variant(args),
    )
    network = client.create_network(**args)
    logger.info(f"Created network {network.name} with ID {network.id}")

    try:
        client.set_network_tags(network.id, network_tags(spec))
        outcome = wait_for_network_active(client, network.id, spec, **poll_kwargs)
    except Exception as e:
        raise NetworkWaitError(network.id, e) from e

    return {"networkId": network.id, "status": outcome.final_state}


def get_network_info(
    client: OpenStackClient,
    network_id: str,
) -> dict[str, Any] | None:
    """Get current network attributes.

    Returns:
        Dict in CR status naming, or None if the network does not exist
    """
    network = client.find_network(network_id)
    if network is None:
        return None

    return {
        "networkId": network.id,
        "name": network.name,
        "description": network.description or "",
        "adminStateUp": bool(network.is_admin_state_up),
        "shared": bool(network.is_shared),
        "external": bool(network.is_router_external),
        "projectId": network.project_id,
        "tags": list(network.tags or []),
        "availabilityZoneHints": list(network.availability_zone_hints or []),
        "status": network.status,
    }


def network_needs_recreate(changed: set[str]) -> bool:
    """Check if any changed field cannot be updated in place."""
    return bool(set(changed) & IMMUTABLE_FIELDS)


def update_network(
    client: OpenStackClient,
    network_id: str,
    spec: OpenstackNetworkSpec,
    changed: set[str],
) -> dict[str, Any]:
    """Apply changed mutable fields to an existing network.

    Returns:
        The SDK attributes that were sent (tags excluded)
    """
    attrs: dict[str, Any] = {}

    if "name" in changed:
        attrs["name"] = spec.get("name", "")
    if "description" in changed:
        attrs["description"] = spec.get("description", "")
    if "adminStateUp" in changed:
        admin_state_up = parse_bool("adminStateUp", spec.get("adminStateUp"))
        if admin_state_up is not None:
            attrs["is_admin_state_up"] = admin_state_up
    if "shared" in changed:
        shared = parse_bool("shared", spec.get("shared"))
        if shared is not None:
            attrs["is_shared"] = shared
    if "external" in changed:
        attrs["is_router_external"] = bool(spec.get("external", False))

    if attrs:
        client.update_network(network_id, **attrs)
    if "tags" in changed:
        client.set_network_tags(network_id, network_tags(spec))

    return attrs


def delete_network(
    client: OpenStackClient,
    network_id: str,
    spec: OpenstackNetworkSpec | None = None,
    **poll_kwargs: Any,
) -> PollOutcome:
    """Delete a network and wait until it is gone.

    Raises:
        PollTimeoutError: the network was still in use when time ran out
        HttpException: any other API failure
    """
    request = PollRequest(
        resource_id=network_id,
        target=frozenset({NetworkState.DELETED.value}),
        pending=frozenset({NetworkState.ACTIVE.value}),
        refresh=refresh_network_delete(client),
        delay=NETWORK_POLL_DELAY,
        interval=NETWORK_POLL_INTERVAL,
        timeout=delete_timeout(spec or {}),
        delete_mode=True,
        kind="network",
    )
    return wait_for_state(request, **poll_kwargs)
