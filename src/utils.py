"""Utility functions for the OpenStack resource operator."""

import datetime
import logging
import os
from collections.abc import MutableMapping
from typing import Any

from models import ConfigurationError

logger = logging.getLogger(__name__)


def now_iso() -> str:
    """Return current UTC time in ISO format."""
    return datetime.datetime.now(datetime.UTC).isoformat()


def parse_bool(field_name: str, value: bool | str | None) -> bool | None:
    """Parse an optional boolean field that may be given as a string.

    Returns None when the field is unset so callers can leave the API
    default in place.

    Example: parse_bool("shared", "true") -> True
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    raise ConfigurationError(
        f"{field_name}, if provided, must be either 'true' or 'false'"
    )


def env_seconds(name: str, default: float) -> float:
    """Read a duration in seconds from the environment."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r, using %s", name, raw, default)
        return default
    return value


def set_condition(
    status: MutableMapping[str, Any],
    condition_type: str,
    condition_status: str,
    reason: str = "",
    message: str = "",
) -> None:
    """Set or update a condition in the status conditions list."""
    if "conditions" not in status or status["conditions"] is None:
        status["conditions"] = []
    conditions: list[dict[str, str]] = status["conditions"]

    for condition in conditions:
        if condition["type"] == condition_type:
            if condition["status"] != condition_status:
                condition["status"] = condition_status
                condition["lastTransitionTime"] = now_iso()
            condition["reason"] = reason
            condition["message"] = message
            return

    conditions.append(
        {
            "type": condition_type,
            "status": condition_status,
            "reason": reason,
            "message": message,
            "lastTransitionTime": now_iso(),
        }
    )


def changed_spec_fields(diff: Any) -> set[str]:
    """Return the top-level spec fields touched by a kopf diff.

    Example: (("change", ("spec", "name"), "a", "b"),) -> {"name"}
    """
    changed: set[str] = set()
    for change in diff or ():
        path = tuple(change[1])
        if len(path) >= 2 and path[0] == "spec":
            changed.add(str(path[1]))
        elif len(path) == 1 and path[0] == "spec":
            # Whole spec added or replaced
            old = change[2] or {}
            new = change[3] or {}
            changed.update(k for k in set(old) | set(new) if old.get(k) != new.get(k))
    return changed
