"""Cluster access module.

This module handles:
- Resolving stored cluster credentials into Kubernetes API clients
- Client-side rate limiting of those clients
"""

from yatai_bento.clusters.ratelimit import (
    RateLimitConfig,
    RateLimitedApiClient,
    RateLimiter,
)
from yatai_bento.clusters.resolver import (
    ClusterAccessError,
    ClusterAccessResolver,
    ResolvedCluster,
    parse_kube_config,
)

__all__ = [
    "ClusterAccessError",
    "ClusterAccessResolver",
    "RateLimitConfig",
    "RateLimitedApiClient",
    "RateLimiter",
    "ResolvedCluster",
    "parse_kube_config",
]
