"""Shared operator state - thread-safe singleton for the OpenStack client."""

import threading
from dataclasses import dataclass, field

from openstack_client import OpenStackClient


@dataclass
class OperatorState:
    """Thread-safe operator state container.

    Kopf runs synchronous handlers in a thread pool, so every handler
    shares the one client held here rather than creating its own.
    """

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _os_client: OpenStackClient | None = field(default=None, repr=False)

    def get_openstack_client(self) -> OpenStackClient:
        """Get or create the OpenStack client (thread-safe)."""
        with self._lock:
            if self._os_client is None:
                self._os_client = OpenStackClient()
            return self._os_client

    def set_openstack_client(self, client: OpenStackClient | None) -> None:
        """Replace the shared client, closing the previous one."""
        with self._lock:
            if self._os_client is not None and self._os_client is not client:
                self._os_client.close()
            self._os_client = client

    def close(self) -> None:
        """Close all connections."""
        self.set_openstack_client(None)


# Global operator state singleton
state = OperatorState()


def get_openstack_client() -> OpenStackClient:
    """Get the shared OpenStack client."""
    return state.get_openstack_client()
