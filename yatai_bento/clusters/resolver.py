"""Cluster access resolution.

This module turns a Cluster record into a live Kubernetes API client:
- Ambient identity (in-cluster service account, then the local kubeconfig)
  when the cluster stores no credentials
- Parsing of stored kubeconfig documents, accepting both the current list
  serialization and the legacy map serialization
- Client-side rate limits taken from an explicit RateLimitConfig

Clients are resolved fresh on every call and are not bound to a namespace.
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple

import yaml
from kubernetes import config as kube_config
from kubernetes.client import Configuration
from kubernetes.config.config_exception import ConfigException

from yatai_bento.clusters.ratelimit import (
    RateLimitConfig,
    RateLimitedApiClient,
    RateLimiter,
)
from yatai_bento.organizations.models import Cluster

logger = logging.getLogger(__name__)

# Named sections of a kubeconfig and the key holding each entry's body
_NAMED_SECTIONS = (
    ("clusters", "cluster"),
    ("users", "user"),
    ("contexts", "context"),
)


class ClusterAccessError(Exception):
    """Raised when a cluster's credentials cannot produce a client."""

    def __init__(
        self,
        cluster_name: str,
        message: str,
        code: str = "cluster_access_error",
    ) -> None:
        super().__init__(f"Cluster {cluster_name}: {message}")
        self.cluster_name = cluster_name
        self.code = code


class ResolvedCluster(NamedTuple):
    """A live API client and the configuration it was built from."""

    api_client: RateLimitedApiClient
    configuration: Configuration


def normalize_kube_config(data: dict[str, Any]) -> dict[str, Any]:
    """Convert a kubeconfig document to the canonical v1 layout.

    Legacy documents store clusters, users and contexts as maps keyed by
    name; v1 documents store lists of {name, <kind>} entries. A missing
    current-context defaults to the first context.

    Args:
        data: Parsed kubeconfig document.

    Returns:
        New dictionary in v1 layout.

    Raises:
        ValueError: If a section is neither a map nor a list of mappings.
    """
    doc = dict(data)
    for section, item_key in _NAMED_SECTIONS:
        value = doc.get(section)
        if value is None:
            doc[section] = []
        elif isinstance(value, dict):
            if not all(
                body is None or isinstance(body, dict) for body in value.values()
            ):
                raise ValueError(f"Malformed kubeconfig section: {section}")
            doc[section] = [
                {"name": name, item_key: body or {}} for name, body in value.items()
            ]
        elif not isinstance(value, list) or not all(
            isinstance(entry, dict) for entry in value
        ):
            raise ValueError(f"Malformed kubeconfig section: {section}")

    if "currentContext" in doc and "current-context" not in doc:
        doc["current-context"] = doc.pop("currentContext")
    if not doc.get("current-context") and doc["contexts"]:
        doc["current-context"] = doc["contexts"][0].get("name", "")

    doc.setdefault("apiVersion", "v1")
    doc.setdefault("kind", "Config")
    return doc


def parse_kube_config(raw: str) -> dict[str, Any]:
    """Parse a stored kubeconfig (YAML or JSON) into the v1 layout.

    Raises:
        ValueError: If the text is not a kubeconfig mapping.
    """
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ValueError(f"k8s cluster config yaml to json: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a kubeconfig mapping, got {type(data).__name__}"
        )
    return normalize_kube_config(data)


class ClusterAccessResolver:
    """Builds rate-limited Kubernetes clients for Cluster records."""

    def __init__(
        self,
        rate_limit: RateLimitConfig,
        default_kubeconfig: str | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            rate_limit: Limits applied to every resolved client.
            default_kubeconfig: Kubeconfig file used when in-cluster identity
                is unavailable (None = the client library's default path).
        """
        self.rate_limit = rate_limit
        self.default_kubeconfig = default_kubeconfig

    def resolve(self, cluster: Cluster) -> ResolvedCluster:
        """Build a live API client for a cluster.

        Args:
            cluster: Cluster record.

        Returns:
            ResolvedCluster with the client and its configuration.

        Raises:
            ClusterAccessError: If no usable credentials can be loaded.
        """
        configuration = Configuration()
        if cluster.uses_ambient_identity():
            self._load_ambient(cluster, configuration)
        else:
            self._load_explicit(cluster, configuration)

        limiter = RateLimiter(self.rate_limit.qps, self.rate_limit.burst)
        api_client = RateLimitedApiClient(configuration, limiter)
        logger.debug(
            "Resolved cluster %s at %s (qps=%s, burst=%s)",
            cluster.name,
            configuration.host,
            self.rate_limit.qps,
            self.rate_limit.burst,
        )
        return ResolvedCluster(api_client, configuration)

    def _load_ambient(self, cluster: Cluster, configuration: Configuration) -> None:
        try:
            kube_config.load_incluster_config(client_configuration=configuration)
            return
        except ConfigException as e:
            logger.debug("In-cluster config unavailable for %s: %s", cluster.name, e)

        try:
            kube_config.load_kube_config(
                config_file=self.default_kubeconfig,
                client_configuration=configuration,
                persist_config=False,
            )
        except (ConfigException, OSError) as e:
            raise ClusterAccessError(
                cluster.name, f"get in-cluster rest config: {e}"
            ) from e

    def _load_explicit(self, cluster: Cluster, configuration: Configuration) -> None:
        try:
            config_dict = parse_kube_config(cluster.kube_config)
        except ValueError as e:
            raise ClusterAccessError(cluster.name, str(e)) from e

        try:
            kube_config.load_kube_config_from_dict(
                config_dict=config_dict,
                client_configuration=configuration,
                persist_config=False,
            )
        except (ConfigException, OSError) as e:
            raise ClusterAccessError(
                cluster.name, f"new default k8s client config: {e}"
            ) from e


__all__ = [
    "ClusterAccessError",
    "ClusterAccessResolver",
    "ResolvedCluster",
    "normalize_kube_config",
    "parse_kube_config",
]
