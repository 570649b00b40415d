"""Resolve kubeconfigs and build one API client per reachable cluster."""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException
from kubernetes.config.exec_provider import ExecProvider
from kubernetes.config.kube_config import ConfigNode

from logcollector.clusters.ratelimit import TokenBucket
from logcollector.config import CollectionConfig

logger = logging.getLogger(__name__)

# Default QPS of a kubeconfig-built client, scaled per worker.
DEFAULT_QPS = 500

CLIENT_AUTH_API_VERSIONS = (
    "client.authentication.k8s.io/v1",
    "client.authentication.k8s.io/v1beta1",
    "client.authentication.k8s.io/v1alpha1",
)


@dataclass(frozen=True)
class ClusterHandle:
    """API access to one cluster; `index` names its artifact directory."""

    index: int
    kubeconfig: str
    api_client: client.ApiClient
    rate_limiter: TokenBucket | None = None

    @property
    def name(self) -> str:
        return f"cluster{self.index}"

    def core_v1_api(self) -> client.CoreV1Api:
        return client.CoreV1Api(self.api_client)

    def throttle(self) -> None:
        """Wait for the cluster's request budget before an API call."""
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()


def resolve_kubeconfigs(settings: CollectionConfig, environ: Mapping[str, str] | None = None) -> list[str]:
    """
    Numbered KUBECONFIG1..N when any is set, otherwise the single KUBECONFIG
    or $HOME/.kube/config.
    """
    env = os.environ if environ is None else environ
    numbered = []
    for i in range(1, settings.max_kube_configs + 1):
        path = env.get(f"KUBECONFIG{i}", "")
        if path:
            numbered.append(path)
    if numbered:
        return numbered
    single = env.get("KUBECONFIG", "")
    if not single:
        single = str(Path(env.get("HOME", "~")).expanduser() / ".kube" / "config")
    return [single]


def _named(entries: Any, name: Any) -> dict[str, Any]:
    for entry in entries or []:
        if isinstance(entry, dict) and entry.get("name") == name:
            return entry
    return {}


def _current_exec_config(kubeconfig: dict[str, Any]) -> dict[str, Any] | None:
    """Exec credential plugin of the current context's user, if it has one."""
    context = _named(kubeconfig.get("contexts"), kubeconfig.get("current-context")).get("context") or {}
    user = _named(kubeconfig.get("users"), context.get("user")).get("user") or {}
    return user.get("exec") or None


def _with_exec_api_version(kubeconfig: dict[str, Any], api_version: str) -> dict[str, Any]:
    """Copy of the kubeconfig with every exec credential plugin pinned to api_version."""
    out = copy.deepcopy(kubeconfig)
    for user in out.get("users") or []:
        exec_cfg = ((user or {}).get("user") or {}).get("exec")
        if exec_cfg:
            exec_cfg["apiVersion"] = api_version
    return out


def _read_kubeconfig(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ConfigException(f"Invalid kube-config file {path}: not a mapping")
    return data


def _load_configuration(kubeconfig: dict[str, Any], path: str) -> client.Configuration:
    configuration = client.Configuration()
    config.load_kube_config_from_dict(
        kubeconfig,
        client_configuration=configuration,
        persist_config=False,
        temp_file_path=str(Path(path).parent),
    )
    return configuration


def load_client_configuration(path: str) -> client.Configuration:
    """
    Load a kubeconfig, falling back across client-auth API versions.

    The kubernetes loader only logs exec plugin failures, so the plugin is run
    here first for every candidate version. The first version the plugin
    answers is used; when none is answered the last error is raised.
    """
    raw = _read_kubeconfig(path)
    if _current_exec_config(raw) is None:
        return _load_configuration(raw, path)

    base_path = str(Path(path).resolve().parent)
    last = len(CLIENT_AUTH_API_VERSIONS) - 1
    for attempt, version in enumerate(CLIENT_AUTH_API_VERSIONS):
        cfg_dict = _with_exec_api_version(raw, version)
        try:
            ExecProvider(ConfigNode("exec", _current_exec_config(cfg_dict)), base_path).run()
        except (ConfigException, ValueError, KeyError, TypeError, OSError) as e:
            if attempt == last:
                raise
            logger.debug("kubeconfig %s rejected with auth version %s: %s", path, version, e)
            continue
        return _load_configuration(cfg_dict, path)
    raise ConfigException(f"no client authentication API version to try for {path}")


def build_cluster(index: int, path: str, settings: CollectionConfig) -> ClusterHandle:
    """Client for one kubeconfig, sized and throttled for `worker_count` concurrent callers."""
    configuration = load_client_configuration(path)
    qps = settings.worker_count * DEFAULT_QPS
    configuration.connection_pool_maxsize = max(settings.worker_count, 1)
    return ClusterHandle(
        index=index,
        kubeconfig=path,
        api_client=client.ApiClient(configuration),
        rate_limiter=TokenBucket(rate=qps, burst=qps * 2),
    )


def build_clusters(settings: CollectionConfig, environ: Mapping[str, str] | None = None) -> list[ClusterHandle]:
    """Build handles for every kubeconfig that loads; unloadable ones are dropped."""
    clusters: list[ClusterHandle] = []
    for index, path in enumerate(resolve_kubeconfigs(settings, environ), start=1):
        try:
            clusters.append(build_cluster(index, path, settings))
        except (ConfigException, ValueError, KeyError, TypeError, OSError, yaml.YAMLError) as e:
            logger.warning("Skipping cluster%d (%s): cannot build client: %s", index, path, e)
    return clusters
