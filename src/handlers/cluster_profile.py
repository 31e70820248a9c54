"""Kopf handlers for OpenstackClusterProfile CRD (Senlin profiles)."""

import logging
import time
from typing import Any

import kopf

from constants import API_GROUP, API_VERSION
from models import Phase
from resources.cluster_profile import (
    MUTABLE_FIELDS,
    create_profile,
    delete_profile,
    get_profile_info,
    profile_needs_recreate,
    update_profile,
)
from state import get_openstack_client
from utils import changed_spec_fields, now_iso, set_condition
from metrics import (
    RECONCILE_TOTAL,
    RECONCILE_DURATION,
    RECONCILE_IN_PROGRESS,
)

logger = logging.getLogger(__name__)

RESOURCE = "OpenstackClusterProfile"
PLURAL = "openstackclusterprofiles"


def _apply_info(patch: kopf.Patch, info: dict[str, Any]) -> None:
    patch.status["profileId"] = info["profileId"]
    patch.status["type"] = info["type"]
    patch.status["projectId"] = info["projectId"]
    patch.status["createdAt"] = info["createdAt"]
    patch.status["updatedAt"] = info["updatedAt"]


@kopf.on.create(API_GROUP, API_VERSION, PLURAL)
def create_profile_handler(
    spec: dict[str, Any],
    patch: kopf.Patch,
    name: str,
    body: kopf.Body,
    status: dict[str, Any] | None = None,
    **_: Any,
) -> None:
    """Handle OpenstackClusterProfile creation."""
    logger.info(f"Creating OpenstackClusterProfile: {name}")
    start_time = time.monotonic()
    RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).inc()

    patch.status["phase"] = Phase.PROVISIONING.value
    patch.status["conditions"] = []

    client = get_openstack_client()

    try:
        set_condition(patch.status, "ProfileReady", "False", "Creating", "")

        profile_id = (status or {}).get("profileId")
        info = get_profile_info(client, profile_id) if profile_id else None
        if info is None:
            profile_id = create_profile(client, spec)
            info = get_profile_info(client, profile_id)
        else:
            logger.info(f"Clustering profile {profile_id} already exists")

        patch.status["profileId"] = profile_id
        patch.status["region"] = client.region
        if info is not None:
            _apply_info(patch, info)

        set_condition(patch.status, "ProfileReady", "True", "Created", "")
        patch.status["phase"] = Phase.READY.value
        patch.status["lastSyncTime"] = now_iso()

        duration = time.monotonic() - start_time
        RECONCILE_TOTAL.labels(
            resource=RESOURCE, operation="create", status="success"
        ).inc()
        RECONCILE_DURATION.labels(
            resource=RESOURCE, operation="create"
        ).observe(duration)
        logger.info(f"Successfully created OpenstackClusterProfile: {name} (id={profile_id})")

    except Exception as e:
        logger.error(f"Failed to create OpenstackClusterProfile {name}: {e}")
        patch.status["phase"] = Phase.ERROR.value
        set_condition(patch.status, "ProfileReady", "False", "Error", str(e)[:200])
        RECONCILE_TOTAL.labels(
            resource=RESOURCE, operation="create", status="error"
        ).inc()
        kopf.warn(body, reason="CreateFailed", message=str(e)[:200])
        raise kopf.TemporaryError(f"Creation failed: {e}", delay=60)
    finally:
        RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).dec()


@kopf.on.update(API_GROUP, API_VERSION, PLURAL)
def update_profile_handler(
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    name: str,
    diff: kopf.Diff,
    body: kopf.Body,
    **_: Any,
) -> None:
    """Handle OpenstackClusterProfile updates.

    Note: Senlin profiles only allow the name and metadata to change. A new
    spec, type or version means deleting and recreating the profile.
    """
    logger.info(f"Updating OpenstackClusterProfile: {name}")
    start_time = time.monotonic()

    profile_id = status.get("profileId")
    if not profile_id:
        # No profile ID, treat as create
        create_profile_handler(spec=spec, patch=patch, name=name, body=body, status=status)
        return

    RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).inc()
    client = get_openstack_client()
    patch.status["phase"] = Phase.PROVISIONING.value
    patch.status["conditions"] = [dict(c) for c in status.get("conditions") or []]

    try:
        changed = changed_spec_fields(diff)

        if profile_needs_recreate(changed):
            logger.info(f"Profile {name} requires recreate due to immutable property change")
            delete_profile(client, profile_id)
            profile_id = create_profile(client, spec)
            reason = "Recreated"
        elif changed & MUTABLE_FIELDS:
            update_profile(client, profile_id, spec, changed)
            reason = "Updated"
        else:
            reason = "Unchanged"

        patch.status["profileId"] = profile_id
        info = get_profile_info(client, profile_id)
        if info is not None:
            _apply_info(patch, info)

        set_condition(patch.status, "ProfileReady", "True", reason, "")
        patch.status["phase"] = Phase.READY.value
        patch.status["lastSyncTime"] = now_iso()

        duration = time.monotonic() - start_time
        RECONCILE_TOTAL.labels(
            resource=RESOURCE, operation="update", status="success"
        ).inc()
        RECONCILE_DURATION.labels(
            resource=RESOURCE, operation="update"
        ).observe(duration)
        logger.info(f"Successfully updated OpenstackClusterProfile: {name}")

    except Exception as e:
        logger.error(f"Failed to update OpenstackClusterProfile {name}: {e}")
        patch.status["phase"] = Phase.ERROR.value
        set_condition(patch.status, "ProfileReady", "False", "Error", str(e)[:200])
        RECONCILE_TOTAL.labels(
            resource=RESOURCE, operation="update", status="error"
        ).inc()
        kopf.warn(body, reason="UpdateFailed", message=str(e)[:200])
        raise kopf.TemporaryError(f"Update failed: {e}", delay=60)
    finally:
        RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).dec()


@kopf.on.delete(API_GROUP, API_VERSION, PLURAL)
def delete_profile_handler(
    status: dict[str, Any],
    name: str,
    body: kopf.Body,
    **_: Any,
) -> None:
    """Handle OpenstackClusterProfile deletion."""
    logger.info(f"Deleting OpenstackClusterProfile: {name}")

    profile_id = status.get("profileId")
    if not profile_id:
        logger.warning(f"No profileId in status for {name}, nothing to delete")
        return

    start_time = time.monotonic()
    RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).inc()
    client = get_openstack_client()

    try:
        delete_profile(client, profile_id)

        duration = time.monotonic() - start_time
        RECONCILE_TOTAL.labels(
            resource=RESOURCE, operation="delete", status="success"
        ).inc()
        RECONCILE_DURATION.labels(
            resource=RESOURCE, operation="delete"
        ).observe(duration)
        logger.info(f"Successfully deleted OpenstackClusterProfile: {name}")

    except Exception as e:
        logger.error(f"Failed to delete OpenstackClusterProfile {name}: {e}")
        RECONCILE_TOTAL.labels(
            resource=RESOURCE, operation="delete", status="error"
        ).inc()
        kopf.warn(body, reason="DeleteFailed", message=str(e)[:200])
        raise kopf.TemporaryError(f"Deletion failed: {e}", delay=60)
    finally:
        RECONCILE_IN_PROGRESS.labels(resource=RESOURCE).dec()


@kopf.timer(API_GROUP, API_VERSION, PLURAL, interval=300)
def reconcile_profile(
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    name: str,
    body: kopf.Body,
    **_: Any,
) -> None:
    """Periodic reconciliation to detect profiles deleted outside the operator."""
    phase = status.get("phase")

    if phase == Phase.PENDING.value and not status.get("profileId"):
        logger.info(f"Clustering profile for {name} is missing, recreating")
        create_profile_handler(spec=spec, patch=patch, name=name, body=body, status=status)
        return

    if phase != Phase.READY.value:
        return

    logger.debug(f"Reconciling OpenstackClusterProfile: {name}")

    client = get_openstack_client()
    profile_id = status.get("profileId")

    try:
        info = get_profile_info(client, profile_id) if profile_id else None
        if info is None:
            logger.warning(f"Clustering profile {profile_id} not found, triggering recreate")
            patch.status["phase"] = Phase.PENDING.value
            patch.status["profileId"] = None
            return

        _apply_info(patch, info)
        patch.status["lastSyncTime"] = now_iso()

    except Exception:
        logger.exception(f"Reconciliation failed for {name}")
