"""Cluster registry: kubeconfig resolution and per-cluster API clients."""

from logcollector.clusters.ratelimit import TokenBucket
from logcollector.clusters.registry import (
    ClusterHandle,
    build_clusters,
    resolve_kubeconfigs,
)

__all__ = [
    "ClusterHandle",
    "TokenBucket",
    "build_clusters",
    "resolve_kubeconfigs",
]
