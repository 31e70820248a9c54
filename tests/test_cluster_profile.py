"""Tests for clustering profile management."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from constants import DEFAULT_PROFILE_TYPE, DEFAULT_PROFILE_VERSION
from models import ConfigurationError
from resources.cluster_profile import (
    build_profile_spec,
    create_profile,
    delete_profile,
    get_profile_info,
    profile_needs_recreate,
    update_profile,
)


class TestBuildProfileSpec:
    """Tests for build_profile_spec function."""

    def test_defaults(self):
        body = build_profile_spec({"name": "web", "spec": {"flavor": "m1.small"}})

        assert body == {
            "type": DEFAULT_PROFILE_TYPE,
            "version": DEFAULT_PROFILE_VERSION,
            "properties": {"flavor": "m1.small"},
        }

    def test_explicit_type_and_numeric_version(self):
        body = build_profile_spec(
            {"name": "stack", "type": "os.heat.stack", "version": 1.0, "spec": {"template": "t"}}
        )

        assert body["type"] == "os.heat.stack"
        assert body["version"] == "1.0"

    @pytest.mark.parametrize("properties", [None, {}, "flavor: m1.small"])
    def test_requires_properties(self, properties):
        with pytest.raises(ConfigurationError):
            build_profile_spec({"name": "web", "spec": properties})


class TestCreateProfile:
    def test_returns_id(self):
        client = MagicMock()
        client.create_profile.return_value = SimpleNamespace(id="prof-1")

        profile_id = create_profile(
            client, {"name": "web", "spec": {"flavor": "m1.small"}, "metadata": {"tier": "web"}}
        )

        assert profile_id == "prof-1"
        kwargs = client.create_profile.call_args.kwargs
        assert kwargs["name"] == "web"
        assert kwargs["metadata"] == {"tier": "web"}
        assert kwargs["spec"]["properties"] == {"flavor": "m1.small"}

    def test_empty_metadata_is_omitted(self):
        client = MagicMock()
        client.create_profile.return_value = SimpleNamespace(id="prof-1")

        create_profile(client, {"name": "web", "spec": {"flavor": "m1.small"}, "metadata": {}})

        assert client.create_profile.call_args.kwargs["metadata"] is None


class TestGetProfileInfo:
    def test_missing(self):
        client = MagicMock()
        client.find_profile.return_value = None

        assert get_profile_info(client, "prof-1") is None

    def test_tolerates_missing_attributes(self):
        client = MagicMock()
        client.find_profile.return_value = SimpleNamespace(id="prof-1", name="web")

        info = get_profile_info(client, "prof-1")

        assert info["profileId"] == "prof-1"
        assert info["metadata"] == {}
        assert info["type"] is None


class TestUpdateProfile:
    def test_name_only(self):
        client = MagicMock()

        update_profile(client, "prof-1", {"name": "new", "spec": {"a": 1}}, {"name"})

        client.update_profile.assert_called_once_with("prof-1", name="new", metadata=None)

    def test_metadata_cleared(self):
        client = MagicMock()

        update_profile(client, "prof-1", {"name": "web", "spec": {"a": 1}}, {"metadata"})

        client.update_profile.assert_called_once_with("prof-1", name=None, metadata={})


class TestRecreate:
    def test_spec_change_needs_recreate(self):
        assert profile_needs_recreate({"spec"})
        assert profile_needs_recreate({"version", "name"})

    def test_name_change_does_not(self):
        assert not profile_needs_recreate({"name", "metadata"})


def test_delete_profile():
    client = MagicMock()

    delete_profile(client, "prof-1")

    client.delete_profile.assert_called_once_with("prof-1")
