"""Clustering (Senlin) profile management for OpenStack operator."""

import logging
from typing import Any

from constants import DEFAULT_PROFILE_TYPE, DEFAULT_PROFILE_VERSION
from models import ConfigurationError, OpenstackClusterProfileSpec
from openstack_client import OpenStackClient

logger = logging.getLogger(__name__)

# Senlin allows renaming and re-labelling a profile; everything else is fixed
MUTABLE_FIELDS = frozenset({"name", "metadata"})
IMMUTABLE_FIELDS = frozenset({"spec", "type", "version"})


def build_profile_spec(spec: OpenstackClusterProfileSpec) -> dict[str, Any]:
    """Build the Senlin profile spec body from the CR spec.

    Example: {"spec": {"flavor": "m1.small"}} ->
        {"type": "os.nova.server", "version": "1.0",
         "properties": {"flavor": "m1.small"}}
    """
    properties = spec.get("spec")
    if not isinstance(properties, dict) or not properties:
        raise ConfigurationError("spec.spec must be a non-empty mapping of profile properties")

    return {
        "type": spec.get("type") or DEFAULT_PROFILE_TYPE,
        "version": str(spec.get("version") or DEFAULT_PROFILE_VERSION),
        "properties": dict(properties),
    }


def create_profile(client: OpenStackClient, spec: OpenstackClusterProfileSpec) -> str:
    """Create a clustering profile.

    Returns:
        The new profile ID
    """
    name = spec["name"]
    profile = client.create_profile(
        name=name,
        spec=build_profile_spec(spec),
        metadata=spec.get("metadata") or None,
    )
    logger.info(f"Created clustering profile {name} (id={profile.id})")
    return profile.id


def get_profile_info(
    client: OpenStackClient,
    profile_id: str,
) -> dict[str, Any] | None:
    """Get clustering profile information.

    Returns:
        Dict in CR status naming, or None if the profile does not exist
    """
    profile = client.find_profile(profile_id)
    if profile is None:
        return None

    return {
        "profileId": profile.id,
        "name": profile.name,
        "type": getattr(profile, "type", None),
        "metadata": dict(getattr(profile, "metadata", None) or {}),
        "projectId": getattr(profile, "project_id", None),
        "domainId": getattr(profile, "domain_id", None),
        "userId": getattr(profile, "user_id", None),
        "createdAt": getattr(profile, "created_at", None),
        "updatedAt": getattr(profile, "updated_at", None),
    }


def profile_needs_recreate(changed: set[str]) -> bool:
    """Check if any changed field cannot be updated in place."""
    return bool(set(changed) & IMMUTABLE_FIELDS)


def update_profile(
    client: OpenStackClient,
    profile_id: str,
    spec: OpenstackClusterProfileSpec,
    changed: set[str],
) -> None:
    """Apply name and metadata changes to an existing profile."""
    name = spec["name"] if "name" in changed else None
    metadata = (spec.get("metadata") or {}) if "metadata" in changed else None
    client.update_profile(profile_id, name=name, metadata=metadata)


def delete_profile(client: OpenStackClient, profile_id: str) -> None:
    """Delete a clustering profile; a missing profile counts as deleted."""
    client.delete_profile(profile_id)
