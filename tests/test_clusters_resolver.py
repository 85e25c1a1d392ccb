"""Tests for clusters/resolver.py module.

Stored kubeconfigs are loaded for real; ambient identity loading is
mocked.
"""

from unittest.mock import ANY, patch

import pytest
import yaml
from kubernetes.config.config_exception import ConfigException

from yatai_bento.clusters.ratelimit import RateLimitConfig, RateLimitedApiClient
from yatai_bento.clusters.resolver import (
    ClusterAccessError,
    ClusterAccessResolver,
    normalize_kube_config,
    parse_kube_config,
)
from yatai_bento.organizations.models import Cluster
from yatai_bento.versions.models import (
    Bento,  # noqa: F401 - needed for ORM relationships
)

SERVER = "https://k8s.example.com:6443"

V1_KUBECONFIG = {
    "apiVersion": "v1",
    "kind": "Config",
    "clusters": [{"name": "prod", "cluster": {"server": SERVER}}],
    "users": [{"name": "builder", "user": {"token": "abc123"}}],
    "contexts": [{"name": "prod", "context": {"cluster": "prod", "user": "builder"}}],
    "current-context": "prod",
}

LEGACY_KUBECONFIG = {
    "clusters": {"prod": {"server": SERVER}},
    "users": {"builder": {"token": "abc123"}},
    "contexts": {"prod": {"cluster": "prod", "user": "builder"}},
}


@pytest.fixture
def resolver():
    """Create a resolver with modest limits."""
    return ClusterAccessResolver(RateLimitConfig(qps=5, burst=10))


def _cluster(kube_config: str = "") -> Cluster:
    return Cluster(id=1, organization_id=1, name="prod", kube_config=kube_config)


class TestNormalizeKubeConfig:
    """Test normalize_kube_config function."""

    def test_v1_unchanged(self) -> None:
        """List-form documents should keep their entries."""
        doc = normalize_kube_config(V1_KUBECONFIG)
        assert doc["clusters"] == V1_KUBECONFIG["clusters"]
        assert doc["current-context"] == "prod"

    def test_legacy_maps_converted(self) -> None:
        """Map-form sections should become named lists."""
        doc = normalize_kube_config(LEGACY_KUBECONFIG)
        assert doc["clusters"] == [{"name": "prod", "cluster": {"server": SERVER}}]
        assert doc["users"] == [{"name": "builder", "user": {"token": "abc123"}}]
        assert doc["apiVersion"] == "v1"

    def test_current_context_defaults_to_first(self) -> None:
        """A missing current context should select the first context."""
        doc = normalize_kube_config(LEGACY_KUBECONFIG)
        assert doc["current-context"] == "prod"

    def test_camel_case_current_context(self) -> None:
        """The legacy currentContext key should be honored."""
        doc = normalize_kube_config({**LEGACY_KUBECONFIG, "currentContext": "prod"})
        assert doc["current-context"] == "prod"
        assert "currentContext" not in doc

    def test_input_not_mutated(self) -> None:
        """Normalization should return a new document."""
        data = dict(LEGACY_KUBECONFIG)
        normalize_kube_config(data)
        assert data == LEGACY_KUBECONFIG


class TestParseKubeConfig:
    """Test parse_kube_config function."""

    def test_parses_yaml(self) -> None:
        """YAML text should be parsed and normalized."""
        doc = parse_kube_config(yaml.safe_dump(LEGACY_KUBECONFIG))
        assert doc["contexts"][0]["name"] == "prod"

    def test_rejects_invalid_yaml(self) -> None:
        """Malformed text should raise ValueError."""
        with pytest.raises(ValueError):
            parse_kube_config("clusters: [unclosed")

    def test_rejects_non_mapping(self) -> None:
        """Scalars and lists are not kubeconfigs."""
        with pytest.raises(ValueError):
            parse_kube_config("- a\n- b\n")


class TestResolveExplicit:
    """Test resolving clusters with stored kubeconfig."""

    @pytest.mark.parametrize("document", [V1_KUBECONFIG, LEGACY_KUBECONFIG])
    def test_builds_client(self, resolver, document) -> None:
        """Both serializations should produce a client for the server."""
        resolved = resolver.resolve(_cluster(yaml.safe_dump(document)))

        assert isinstance(resolved.api_client, RateLimitedApiClient)
        assert resolved.configuration.host == SERVER
        assert resolved.api_client.rate_limiter.qps == 5
        assert resolved.api_client.rate_limiter.burst == 10
        resolved.api_client.close()

    def test_invalid_document(self, resolver) -> None:
        """Unparseable credentials should raise ClusterAccessError."""
        with pytest.raises(ClusterAccessError) as exc_info:
            resolver.resolve(_cluster("clusters: [unclosed"))
        assert exc_info.value.code == "cluster_access_error"
        assert exc_info.value.cluster_name == "prod"

    @pytest.mark.parametrize(
        "raw",
        [
            "contexts:\n- prod\n",
            "clusters: prod\n",
            "users:\n  admin: token\n",
        ],
    )
    def test_malformed_sections(self, resolver, raw) -> None:
        """Sections that are not maps or lists of mappings should be rejected."""
        with pytest.raises(ClusterAccessError) as exc_info:
            resolver.resolve(_cluster(raw))
        assert "Malformed kubeconfig section" in str(exc_info.value)

    def test_unknown_context(self, resolver) -> None:
        """A current context that does not exist should be rejected."""
        document = {**V1_KUBECONFIG, "current-context": "missing"}
        with pytest.raises(ClusterAccessError):
            resolver.resolve(_cluster(yaml.safe_dump(document)))


class TestResolveAmbient:
    """Test resolving clusters without stored kubeconfig."""

    def test_prefers_in_cluster(self, resolver) -> None:
        """In-cluster identity should be used when available."""
        with (
            patch("yatai_bento.clusters.resolver.kube_config.load_incluster_config") as incluster,
            patch("yatai_bento.clusters.resolver.kube_config.load_kube_config") as local,
        ):
            resolved = resolver.resolve(_cluster())

        incluster.assert_called_once_with(client_configuration=resolved.configuration)
        local.assert_not_called()
        resolved.api_client.close()

    def test_falls_back_to_local_kubeconfig(self) -> None:
        """Outside a cluster the local kubeconfig should be loaded."""
        resolver = ClusterAccessResolver(
            RateLimitConfig(qps=1, burst=1), default_kubeconfig="/tmp/kubeconfig"
        )
        with (
            patch(
                "yatai_bento.clusters.resolver.kube_config.load_incluster_config",
                side_effect=ConfigException("not in cluster"),
            ),
            patch("yatai_bento.clusters.resolver.kube_config.load_kube_config") as local,
        ):
            resolved = resolver.resolve(_cluster())

        local.assert_called_once_with(
            config_file="/tmp/kubeconfig",
            client_configuration=ANY,
            persist_config=False,
        )
        resolved.api_client.close()

    def test_no_ambient_identity(self, resolver) -> None:
        """Without any ambient identity the cluster is inaccessible."""
        with (
            patch(
                "yatai_bento.clusters.resolver.kube_config.load_incluster_config",
                side_effect=ConfigException("not in cluster"),
            ),
            patch(
                "yatai_bento.clusters.resolver.kube_config.load_kube_config",
                side_effect=ConfigException("no kubeconfig"),
            ),
            pytest.raises(ClusterAccessError),
        ):
            resolver.resolve(_cluster())

    def test_whitespace_kubeconfig_is_ambient(self, resolver) -> None:
        """Blank stored credentials mean ambient identity."""
        with (
            patch("yatai_bento.clusters.resolver.kube_config.load_incluster_config") as incluster,
            patch("yatai_bento.clusters.resolver.kube_config.load_kube_config"),
        ):
            resolved = resolver.resolve(_cluster("  \n"))
        incluster.assert_called_once()
        resolved.api_client.close()
