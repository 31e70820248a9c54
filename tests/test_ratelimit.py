"""Tests for rate limiting of OpenStack API calls."""

import threading
import time

import pytest

import ratelimit
from ratelimit import RateLimiter, get_rate_limiter


class TestRateLimiter:
    """Tests for RateLimiter class."""

    def test_counts_calls(self):
        limiter = RateLimiter(max_concurrent=4, requests_per_second=0)

        for _ in range(3):
            with limiter.acquire():
                pass

        assert limiter.calls == 3

    def test_bounds_in_flight_calls(self):
        limiter = RateLimiter(max_concurrent=2, requests_per_second=0)
        in_flight = 0
        peak = 0
        lock = threading.Lock()

        def poll_once():
            nonlocal in_flight, peak
            with limiter.acquire():
                with lock:
                    in_flight += 1
                    peak = max(peak, in_flight)
                time.sleep(0.02)
                with lock:
                    in_flight -= 1

        threads = [threading.Thread(target=poll_once) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert peak <= 2
        assert limiter.calls == 6

    def test_spaces_out_calls(self):
        # 20 requests per second means 50ms between slots
        limiter = RateLimiter(max_concurrent=5, requests_per_second=20)

        start = time.monotonic()
        for _ in range(3):
            with limiter.acquire():
                pass

        assert time.monotonic() - start >= 0.09

    def test_releases_slot_on_error(self):
        limiter = RateLimiter(max_concurrent=1, requests_per_second=0)

        with pytest.raises(RuntimeError):
            with limiter.acquire():
                raise RuntimeError("boom")

        # Would block forever if the slot leaked
        with limiter.acquire():
            pass

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            RateLimiter(max_concurrent=0)

    def test_repr(self):
        limiter = RateLimiter(max_concurrent=3, requests_per_second=7.5)

        assert repr(limiter) == "RateLimiter(max_concurrent=3, requests_per_second=7.5)"


class TestFromEnv:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("OPENSTACK_MAX_CONCURRENT_CALLS", raising=False)
        monkeypatch.delenv("OPENSTACK_REQUESTS_PER_SECOND", raising=False)

        assert "max_concurrent=10" in repr(RateLimiter.from_env())

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("OPENSTACK_MAX_CONCURRENT_CALLS", "4")
        monkeypatch.setenv("OPENSTACK_REQUESTS_PER_SECOND", "2.5")

        limiter = RateLimiter.from_env()

        assert repr(limiter) == "RateLimiter(max_concurrent=4, requests_per_second=2.5)"

    def test_global_limiter_is_shared(self, monkeypatch):
        monkeypatch.setattr(ratelimit, "_rate_limiter", None)

        assert get_rate_limiter() is get_rate_limiter()
