"""Tests for the OpenStack client wrapper."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from openstack.exceptions import ConflictException, HttpException, ResourceNotFound

import openstack_client
from models import OpenStackAPIError
from openstack_client import OpenStackClient, is_transient, retry_on_error
from ratelimit import RateLimiter


@pytest.fixture(autouse=True)
def no_waiting(monkeypatch):
    """Record retry sleeps instead of sleeping, and disable rate limiting."""
    sleeps: list[float] = []
    monkeypatch.setattr(openstack_client.time, "sleep", sleeps.append)
    limiter = RateLimiter(max_concurrent=10, requests_per_second=0)
    monkeypatch.setattr(openstack_client, "get_rate_limiter", lambda: limiter)
    return sleeps


@pytest.fixture
def conn():
    return MagicMock()


@pytest.fixture
def client(conn):
    return OpenStackClient(cloud="test", region="RegionOne", conn=conn)


class TestIsTransient:
    def test_server_errors(self):
        assert is_transient(HttpException(message="boom", http_status=500))
        assert is_transient(HttpException(message="busy", http_status=503))

    def test_throttled(self):
        assert is_transient(HttpException(message="slow down", http_status=429))

    def test_no_status_code(self):
        assert is_transient(HttpException(message="connection reset"))

    def test_client_errors_are_final(self):
        assert not is_transient(HttpException(message="denied", http_status=403))
        assert not is_transient(HttpException(message="missing", http_status=404))

    def test_not_found_and_conflict_are_final(self):
        assert not is_transient(ResourceNotFound(message="gone"))
        assert not is_transient(ConflictException(message="in use"))


class TestRetryOnError:
    """Tests for the retry decorator."""

    def test_retries_transient_errors(self, no_waiting):
        calls = []

        @retry_on_error(max_retries=3, delay=1.0, backoff=2.0)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise HttpException(message="unavailable", http_status=503)
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3
        assert no_waiting == [1.0, 2.0]

    def test_gives_up_after_max_retries(self, no_waiting):
        @retry_on_error(max_retries=2, delay=0.5)
        def broken():
            raise HttpException(message="unavailable", http_status=503)

        with pytest.raises(OpenStackAPIError, match="after 3 attempts") as exc_info:
            broken()

        assert isinstance(exc_info.value.__cause__, HttpException)
        assert len(no_waiting) == 2

    def test_does_not_retry_not_found(self, no_waiting):
        calls = []

        @retry_on_error()
        def lookup():
            calls.append(1)
            raise ResourceNotFound(message="gone")

        with pytest.raises(ResourceNotFound):
            lookup()

        assert len(calls) == 1
        assert no_waiting == []

    def test_does_not_retry_conflict(self):
        calls = []

        @retry_on_error()
        def remove():
            calls.append(1)
            raise ConflictException(message="ports in use")

        with pytest.raises(ConflictException):
            remove()

        assert len(calls) == 1


class TestNetworkCalls:
    """Network methods on OpenStackClient."""

    def test_find_network_missing(self, client, conn):
        conn.network.get_network.side_effect = ResourceNotFound(message="gone")

        assert client.find_network("net-1") is None

    def test_get_network_raises_not_found(self, client, conn):
        conn.network.get_network.side_effect = ResourceNotFound(message="gone")

        with pytest.raises(ResourceNotFound):
            client.get_network("net-1")

    def test_create_network_passes_attributes(self, client, conn):
        conn.network.create_network.return_value = SimpleNamespace(id="net-1")

        network = client.create_network(name="net", is_router_external=True)

        assert network.id == "net-1"
        conn.network.create_network.assert_called_once_with(
            name="net", is_router_external=True
        )

    def test_poll_network_delete_does_not_ignore_missing(self, client, conn):
        client.poll_network_delete("net-1")

        conn.network.delete_network.assert_called_once_with("net-1", ignore_missing=False)

    def test_poll_network_does_not_retry(self, client, conn, no_waiting):
        unavailable = HttpException(message="unavailable", http_status=503)
        conn.network.get_network.side_effect = unavailable

        with pytest.raises(HttpException) as exc_info:
            client.poll_network("net-1")

        assert exc_info.value is unavailable
        assert conn.network.get_network.call_count == 1
        assert no_waiting == []

    def test_set_network_tags(self, client, conn):
        network = SimpleNamespace(id="net-1")
        conn.network.get_network.return_value = network

        client.set_network_tags("net-1", ["a", "b"])

        conn.network.set_tags.assert_called_once_with(network, ["a", "b"])


class TestProfileCalls:
    """Clustering profile methods on OpenStackClient."""

    def test_create_profile_without_metadata(self, client, conn):
        spec = {"type": "os.nova.server", "version": "1.0", "properties": {}}

        client.create_profile("web", spec)

        conn.clustering.create_profile.assert_called_once_with(name="web", spec=spec)

    def test_update_profile_sends_only_given_fields(self, client, conn):
        client.update_profile("prof-1", name="renamed")

        conn.clustering.update_profile.assert_called_once_with("prof-1", name="renamed")

    def test_update_profile_without_changes(self, client, conn):
        client.update_profile("prof-1")

        conn.clustering.update_profile.assert_not_called()
        conn.clustering.get_profile.assert_called_once_with("prof-1")

    def test_delete_missing_profile(self, client, conn):
        conn.clustering.delete_profile.side_effect = ResourceNotFound(message="gone")

        client.delete_profile("prof-1")


class TestConnection:
    def test_region_from_argument(self, client):
        assert client.region == "RegionOne"

    def test_region_from_connection(self, conn):
        conn.config.region_name = "RegionTwo"
        client = OpenStackClient(cloud="test", conn=conn)
        client.region_name = None

        assert client.region == "RegionTwo"

    def test_lazy_connect(self, monkeypatch):
        connect = MagicMock()
        monkeypatch.setattr(openstack_client.openstack, "connect", connect)
        client = OpenStackClient(cloud="mycloud", region="RegionOne")

        client.conn
        client.conn

        connect.assert_called_once_with(cloud="mycloud", region_name="RegionOne")

    def test_close(self, client, conn):
        client.close()

        conn.close.assert_called_once()
        assert client._conn is None
