"""OpenStack SDK wrapper with retry logic and connection management."""

import logging
import os
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

import openstack
from openstack.connection import Connection
from openstack.exceptions import ConflictException, HttpException, ResourceNotFound
from openstack.network.v2.network import Network

from metrics import OPENSTACK_API_RETRIES
from models import OpenStackAPIError
from ratelimit import get_rate_limiter

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def is_transient(exc: Exception) -> bool:
    """Check whether an HTTP error is worth retrying.

    Connection failures carry no status code. Client errors other than 429
    (including 404 and 409, which callers classify themselves) are final.
    """
    if isinstance(exc, (ResourceNotFound, ConflictException)):
        return False
    status_code = getattr(exc, "status_code", None)
    if status_code is None:
        return True
    return status_code == 429 or status_code >= 500


def rate_limited(func: Callable[P, T]) -> Callable[P, T]:
    """Decorator to run a call under the shared rate limiter, without retries."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        with get_rate_limiter().acquire():
            return func(*args, **kwargs)

    return wrapper


def retry_on_error(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (HttpException,),
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator to rate limit a call and retry it on transient errors."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            last_exception: Exception | None = None
            current_delay = delay

            for attempt in range(max_retries + 1):
                try:
                    with get_rate_limiter().acquire():
                        return func(*args, **kwargs)
                except exceptions as e:
                    if not is_transient(e):
                        raise
                    last_exception = e
                    if attempt < max_retries:
                        logger.warning(
                            "Attempt %d/%d failed for %s: %s. Retrying in %.1fs...",
                            attempt + 1,
                            max_retries + 1,
                            func.__name__,
                            e,
                            current_delay,
                        )
                        OPENSTACK_API_RETRIES.labels(operation=func.__name__).inc()
                        time.sleep(current_delay)
                        current_delay *= backoff
                    else:
                        logger.error(
                            "All %d attempts failed for %s",
                            max_retries + 1,
                            func.__name__,
                        )

            if last_exception is not None:
                raise OpenStackAPIError(
                    f"Operation {func.__name__} failed after {max_retries + 1} attempts"
                ) from last_exception
            raise OpenStackAPIError(f"Operation {func.__name__} failed unexpectedly")

        return wrapper

    return decorator


class OpenStackClient:
    """Wrapper around OpenStack SDK with convenience methods.

    Lookup methods named ``get_*`` raise ResourceNotFound when the object is
    missing so that polling can tell "gone" apart from other failures;
    ``find_*`` methods return None instead.
    """

    def __init__(
        self,
        cloud: str | None = None,
        clouds_config: str | None = None,
        region: str | None = None,
        conn: Connection | None = None,
    ) -> None:
        """Initialize OpenStack connection.

        Args:
            cloud: Cloud name from clouds.yaml (default: from OS_CLOUD env)
            clouds_config: Path to clouds.yaml (default: OS_CLIENT_CONFIG_FILE env)
            region: Region name (default: from OS_REGION_NAME env)
            conn: Pre-built connection, mainly for tests
        """
        self.cloud_name = cloud or os.environ.get("OS_CLOUD", "openstack")
        self.region_name = region or os.environ.get("OS_REGION_NAME") or None
        if clouds_config:
            os.environ["OS_CLIENT_CONFIG_FILE"] = clouds_config

        self._conn: Connection | None = conn

    @property
    def conn(self) -> Connection:
        """Get or create OpenStack connection."""
        if self._conn is None:
            logger.info(
                "Connecting to OpenStack cloud: %s (region=%s)",
                self.cloud_name,
                self.region_name or "default",
            )
            kwargs: dict[str, Any] = {"cloud": self.cloud_name}
            if self.region_name:
                kwargs["region_name"] = self.region_name
            self._conn = openstack.connect(**kwargs)
        return self._conn

    @property
    def region(self) -> str:
        """Region the connection talks to."""
        if self.region_name:
            return self.region_name
        return getattr(self.conn.config, "region_name", None) or ""

    def close(self) -> None:
        """Close the OpenStack connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -------------------------------------------------------------------------
    # Network operations
    # -------------------------------------------------------------------------

    @retry_on_error()
    def get_network(self, network_id: str) -> Network:
        """Get a network by ID."""
        return self.conn.network.get_network(network_id)

    def find_network(self, network_id: str) -> Network | None:
        """Get a network by ID, or None if it does not exist."""
        try:
            return self.get_network(network_id)
        except ResourceNotFound:
            return None

    @rate_limited
    def poll_network(self, network_id: str) -> Network:
        """Get a network once; errors reach the caller unchanged."""
        return self.conn.network.get_network(network_id)

    @rate_limited
    def poll_network_delete(self, network_id: str) -> None:
        """Issue a single DELETE for a network, without retries."""
        self.conn.network.delete_network(network_id, ignore_missing=False)

    @retry_on_error()
    def create_network(self, **attrs: Any) -> Network:
        """Create a network from SDK attributes."""
        logger.info("Creating network: %s", attrs.get("name", ""))
        logger.debug("Network create options: %s", attrs)
        return self.conn.network.create_network(**attrs)

    @retry_on_error()
    def update_network(self, network_id: str, **attrs: Any) -> Network:
        """Update an existing network."""
        logger.info("Updating network %s: %s", network_id, attrs)
        return self.conn.network.update_network(network_id, **attrs)

    @retry_on_error()
    def set_network_tags(self, network_id: str, tags: list[str]) -> Network:
        """Replace all tags on a network."""
        network = self.conn.network.get_network(network_id)
        logger.debug("Setting tags %s on network %s", tags, network_id)
        return self.conn.network.set_tags(network, tags)

    # -------------------------------------------------------------------------
    # Clustering profile operations
    # -------------------------------------------------------------------------

    @retry_on_error()
    def get_profile(self, profile_id: str) -> Any:
        """Get a clustering profile by ID."""
        return self.conn.clustering.get_profile(profile_id)

    def find_profile(self, profile_id: str) -> Any | None:
        """Get a clustering profile by ID, or None if it does not exist."""
        try:
            return self.get_profile(profile_id)
        except ResourceNotFound:
            return None

    @retry_on_error()
    def create_profile(
        self,
        name: str,
        spec: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Any:
        """Create a clustering profile."""
        logger.info("Creating clustering profile: %s (type=%s)", name, spec.get("type"))
        kwargs: dict[str, Any] = {"name": name, "spec": spec}
        if metadata:
            kwargs["metadata"] = metadata
        return self.conn.clustering.create_profile(**kwargs)

    @retry_on_error()
    def update_profile(
        self,
        profile_id: str,
        name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Any:
        """Update the mutable fields of a clustering profile."""
        updates: dict[str, Any] = {}
        if name is not None:
            updates["name"] = name
        if metadata is not None:
            updates["metadata"] = metadata

        if updates:
            logger.info("Updating clustering profile %s: %s", profile_id, updates)
            return self.conn.clustering.update_profile(profile_id, **updates)
        return self.conn.clustering.get_profile(profile_id)

    @retry_on_error()
    def delete_profile(self, profile_id: str) -> None:
        """Delete a clustering profile."""
        logger.info("Deleting clustering profile: %s", profile_id)
        try:
            self.conn.clustering.delete_profile(profile_id, ignore_missing=False)
        except ResourceNotFound:
            logger.debug("Clustering profile %s already deleted", profile_id)
