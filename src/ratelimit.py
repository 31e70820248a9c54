"""Rate limiting for OpenStack API calls."""

import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Generator

from metrics import RATE_LIMIT_WAIT_SECONDS

logger = logging.getLogger(__name__)


class RateLimiter:
    """Thread-safe rate limiter using a semaphore and a minimum call interval.

    Polling loops for several resources share one connection, so this
    bounds both the number of in-flight requests and the request rate.
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        requests_per_second: float = 20.0,
    ) -> None:
        """Initialize rate limiter.

        Args:
            max_concurrent: Maximum number of concurrent API calls
            requests_per_second: Maximum requests per second (averaged),
                0 disables the interval check
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._semaphore = threading.Semaphore(max_concurrent)
        self._min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self._next_slot = 0.0
        self._lock = threading.Lock()
        self._max_concurrent = max_concurrent
        self._requests_per_second = requests_per_second
        self._calls = 0

        logger.info(
            "Rate limiter initialized: max_concurrent=%d, requests_per_second=%.1f",
            max_concurrent,
            requests_per_second,
        )

    @classmethod
    def from_env(cls) -> "RateLimiter":
        """Build a limiter from the environment.

        OPENSTACK_MAX_CONCURRENT_CALLS: Max concurrent API calls (default: 10)
        OPENSTACK_REQUESTS_PER_SECOND: Max requests/second (default: 20)
        """
        return cls(
            max_concurrent=int(os.environ.get("OPENSTACK_MAX_CONCURRENT_CALLS", "10")),
            requests_per_second=float(
                os.environ.get("OPENSTACK_REQUESTS_PER_SECOND", "20")
            ),
        )

    @property
    def calls(self) -> int:
        """Number of slots handed out so far."""
        return self._calls

    @contextmanager
    def acquire(self) -> Generator[None, None, None]:
        """Acquire rate limit slot (context manager).

        Usage:
            with rate_limiter.acquire():
                # make API call
        """
        wait_start = time.monotonic()
        self._semaphore.acquire()
        try:
            # Reserve the next free slot, then sleep outside the lock
            with self._lock:
                now = time.monotonic()
                slot = max(now, self._next_slot)
                self._next_slot = slot + self._min_interval
                self._calls += 1

            delay = slot - time.monotonic()
            if delay > 0:
                time.sleep(delay)

            total_wait = time.monotonic() - wait_start
            if total_wait > 0.001:
                RATE_LIMIT_WAIT_SECONDS.observe(total_wait)

            yield
        finally:
            self._semaphore.release()

    def __repr__(self) -> str:
        return (
            f"RateLimiter(max_concurrent={self._max_concurrent}, "
            f"requests_per_second={self._requests_per_second})"
        )


# Global rate limiter instance (initialized lazily)
_rate_limiter: RateLimiter | None = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Get or create the global rate limiter."""
    global _rate_limiter

    if _rate_limiter is None:
        with _rate_limiter_lock:
            # Double-check after acquiring lock
            if _rate_limiter is None:
                _rate_limiter = RateLimiter.from_env()

    return _rate_limiter
