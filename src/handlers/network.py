"""Kopf handlers for OpenstackNetwork CRD."""

import logging
import time
from typing import Any

import kopf

from constants import API_GROUP, API_VERSION
from models import NetworkState, NetworkWaitError, Phase, map_network_state
from resources.network import (
    MUTABLE_FIELDS,
    create_network,
    delete_network,
    get_network_info,
    network_needs_recreate,
    update_network,
    wait_for_network_active,
)
from state import get_openstack_client
from utils import changed_spec_fields, now_iso, set_condition
from metrics import (
    RECONCILE_TOTAL,
    RECONCILE_DURATION,
    RECONCILE_IN_PROGRESS,
)

logger = logging.getLogger(__name__)

RESOURCE = "OpenstackNetwork"
PLURAL = "openstacknetworks"


def _record_success(operation: str, start_time: float) -> None:
    RECONCILE_TOTAL.labels(resource=RESOURCE, operation=operation, status="success").inc()
    RECONCILE_DURATION.labels(resource=RESOURCE, operation=operation).observe(
        time.monotonic() - start_time
    )


def _apply_info(patch: kopf.Patch, info: dict[str, Any]) -> None:
    """Copy observed network attributes into the status patch."""
    patch.status["networkId"] = info["networkId"]
    patch.status["networkStatus"] = info["status"]
    patch.status["projectId"] = info["projectId"]
    patch.status["external"] = info["external"]
    patch.status["shared"] = info["shared"]
    patch.status["adminStateUp"] = info["adminStateUp"]
    patch.status["tags"] = info["tags"]
    patch.status["availabilityZoneHints"] = info["availabilityZoneHints"]


def _provision(client: Any, spec: dict[str, Any], status: dict[str, Any]) -> str:
    """Create the network, or resume waiting for one created earlier."""
    network_id = status.get("networkId")
    if network_id and get_network_info(client, network_id) is not None:
        logger.info(f"Network {network_id} already exists, waiting for it to become active")
        try:
            wait_for_network_active(client, network_id, spec)
        except Exception as e:
            raise NetworkWaitError(network_id, e) from e
        return network_id

    result = create_network(client, spec)
    return result["networkId"]


@kopf.on.create(API_GROUP, API_VERSION, PLURAL)
def create_network_handler(
    spec: dict[str, Any],
    patch: kopf.Patch,
    name: str,
    body: kopf.Body,
    status: dict[str, Any] | None = None,
    **_: Any,
) -> None:
    """Handle OpenstackNetwork creation."""
    logger.info(f"Creating OpenstackNetwork: {name}")
    start_time = time.monotonic()
    RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).inc()

    patch.status["phase"] = Phase.PROVISIONING.value
    patch.status["conditions"] = []

    client = get_openstack_client()

    try:
        set_condition(patch.status, "NetworkReady", "False", "Creating", "")

        network_id = _provision(client, spec, status or {})
        patch.status["networkId"] = network_id
        patch.status["region"] = client.region

        info = get_network_info(client, network_id)
        if info is not None:
            _apply_info(patch, info)

        set_condition(patch.status, "NetworkReady", "True", "Created", "")
        patch.status["phase"] = Phase.READY.value
        patch.status["lastSyncTime"] = now_iso()

        _record_success("create", start_time)
        logger.info(f"Successfully created OpenstackNetwork: {name} (id={network_id})")

    except Exception as e:
        if isinstance(e, NetworkWaitError):
            # Keep the ID so a retry or delete can find the network
            patch.status["networkId"] = e.network_id
        logger.error(f"Failed to create OpenstackNetwork {name}: {e}")
        patch.status["phase"] = Phase.ERROR.value
        set_condition(patch.status, "NetworkReady", "False", "Error", str(e)[:200])
        RECONCILE_TOTAL.labels(resource=RESOURCE, operation="create", status="error").inc()
        kopf.warn(body, reason="CreateFailed", message=str(e)[:200])
        raise kopf.TemporaryError(f"Creation failed: {e}", delay=60)
    finally:
        RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).dec()


@kopf.on.update(API_GROUP, API_VERSION, PLURAL)
def update_network_handler(
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    name: str,
    diff: kopf.Diff,
    body: kopf.Body,
    **_: Any,
) -> None:
    """Handle OpenstackNetwork updates.

    Name, description, tags, adminStateUp, shared and external are changed
    in place. Changing the project, segments, value specs or availability
    zone hints recreates the network.
    """
    logger.info(f"Updating OpenstackNetwork: {name}")
    start_time = time.monotonic()

    network_id = status.get("networkId")
    if not network_id:
        # No network ID, treat as create
        create_network_handler(spec=spec, patch=patch, name=name, body=body, status=status)
        return

    RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).inc()
    client = get_openstack_client()
    patch.status["phase"] = Phase.PROVISIONING.value

    # Preserve existing status fields
    for key in ("networkId", "region"):
        if key in status and key not in patch.status:
            patch.status[key] = status[key]
    patch.status["conditions"] = [dict(c) for c in status.get("conditions") or []]

    try:
        changed = changed_spec_fields(diff)

        if network_needs_recreate(changed):
            logger.info(f"Network {name} requires recreate due to {sorted(changed)}")
            delete_network(client, network_id, spec)
            patch.status["networkId"] = None

            result = create_network(client, spec)
            network_id = result["networkId"]
            patch.status["networkId"] = network_id
            reason = "Recreated"
        elif changed & MUTABLE_FIELDS:
            update_network(client, network_id, spec, changed)
            reason = "Updated"
        else:
            logger.debug(f"No network fields changed for {name}")
            reason = "Unchanged"

        info = get_network_info(client, network_id)
        if info is None:
            raise kopf.TemporaryError(f"Network {network_id} disappeared during update", delay=60)
        _apply_info(patch, info)

        set_condition(patch.status, "NetworkReady", "True", reason, "")
        patch.status["phase"] = Phase.READY.value
        patch.status["lastSyncTime"] = now_iso()

        _record_success("update", start_time)
        logger.info(f"Successfully updated OpenstackNetwork: {name}")

    except Exception as e:
        if isinstance(e, NetworkWaitError):
            patch.status["networkId"] = e.network_id
        logger.error(f"Failed to update OpenstackNetwork {name}: {e}")
        patch.status["phase"] = Phase.ERROR.value
        set_condition(patch.status, "NetworkReady", "False", "Error", str(e)[:200])
        RECONCILE_TOTAL.labels(resource=RESOURCE, operation="update", status="error").inc()
        kopf.warn(body, reason="UpdateFailed", message=str(e)[:200])
        raise kopf.TemporaryError(f"Update failed: {e}", delay=60)
    finally:
        RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).dec()


@kopf.on.delete(API_GROUP, API_VERSION, PLURAL)
def delete_network_handler(
    spec: dict[str, Any],
    status: dict[str, Any],
    name: str,
    body: kopf.Body,
    **_: Any,
) -> None:
    """Handle OpenstackNetwork deletion.

    Waits until Neutron no longer knows the network. A network that still
    has ports keeps the CR around until the wait times out and kopf retries.
    """
    logger.info(f"Deleting OpenstackNetwork: {name}")

    network_id = status.get("networkId")
    if not network_id:
        logger.warning(f"No networkId in status for {name}, nothing to delete")
        return

    start_time = time.monotonic()
    RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).inc()
    client = get_openstack_client()

    try:
        outcome = delete_network(client, network_id, spec)

        _record_success("delete", start_time)
        logger.info(
            f"Successfully deleted OpenstackNetwork: {name} "
            f"(state={outcome.final_state}, attempts={outcome.attempts})"
        )

    except Exception as e:
        logger.error(f"Failed to delete OpenstackNetwork {name}: {e}")
        RECONCILE_TOTAL.labels(resource=RESOURCE, operation="delete", status="error").inc()
        kopf.warn(body, reason="DeleteFailed", message=str(e)[:200])
        raise kopf.TemporaryError(f"Deletion failed: {e}", delay=60)
    finally:
        RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).dec()


@kopf.timer(API_GROUP, API_VERSION, PLURAL, interval=300)
def reconcile_network(
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    name: str,
    body: kopf.Body,
    **_: Any,
) -> None:
    """Periodic reconciliation to detect and repair drift."""
    phase = status.get("phase")

    if phase == Phase.PENDING.value and not status.get("networkId"):
        logger.info(f"Network for {name} is missing, recreating")
        create_network_handler(spec=spec, patch=patch, name=name, body=body, status=status)
        return

    if phase != Phase.READY.value:
        return

    logger.debug(f"Reconciling OpenstackNetwork: {name}")

    patch.status["conditions"] = [dict(c) for c in status.get("conditions") or []]
    client = get_openstack_client()
    network_id = status.get("networkId")

    try:
        info = get_network_info(client, network_id) if network_id else None
        if info is None:
            logger.warning(f"Network {network_id} for {name} not found, triggering recreate")
            patch.status["phase"] = Phase.PENDING.value
            patch.status["networkId"] = None
            set_condition(patch.status, "NetworkReady", "False", "NotFound", "")
            return

        _apply_info(patch, info)
        if map_network_state(info["status"]) == NetworkState.ERROR.value:
            set_condition(
                patch.status, "NetworkReady", "False", "Error",
                f"Network {network_id} is in ERROR state",
            )
        else:
            set_condition(patch.status, "NetworkReady", "True", "InSync", "")
        patch.status["lastSyncTime"] = now_iso()

    except Exception:
        logger.exception(f"Reconciliation failed for {name}")
