"""Shared fixtures: fake clusters, pods and log responses."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable
from unittest.mock import MagicMock

import pytest
from kubernetes import client

from logcollector.clusters.registry import ClusterHandle
from logcollector.config import CollectionConfig

_ENV_VARS = (
    "ARTIFACTS_DIR",
    "KUBECONFIG",
    "LOGS_ENABLED",
    "LOGS_ARTIFACTS_DIR",
    "LOGS_TIMEOUT",
    "LOGS_DUMP_TIMEOUT",
    "LOGS_WORKER_COUNT",
    "LOGS_MAX_KUBE_CONFIGS",
    "LOGS_ALLOWED_NAMESPACES",
    "LOGS_SYSTEM_NAMESPACES",
    "LOGS_KUBECTL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of settings."""
    for name in _ENV_VARS:
        # setenv first so that values exported by the code under test are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    for i in range(1, 6):
        monkeypatch.delenv(f"KUBECONFIG{i}", raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> CollectionConfig:
    return CollectionConfig(artifacts_dir=tmp_path / "artifacts", timeout=1, dump_timeout=5, worker_count=2)


def make_pod(
    namespace: str,
    name: str,
    containers: Iterable[str] = ("app",),
    init_containers: Iterable[str] = (),
) -> client.V1Pod:
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1PodSpec(
            containers=[client.V1Container(name=c) for c in containers],
            init_containers=[client.V1Container(name=c) for c in init_containers] or None,
        ),
    )


def make_namespace(name: str, phase: str = "Active") -> client.V1Namespace:
    return client.V1Namespace(
        metadata=client.V1ObjectMeta(name=name),
        status=client.V1NamespaceStatus(phase=phase),
    )


class FakeLogResponse:
    """Snapshot log response (`_preload_content=False`)."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.released = False

    def release_conn(self) -> None:
        self.released = True


class FakeStreamResponse:
    """Follow-mode log response: yields chunks, then blocks until shut down."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self.chunks = list(chunks)
        self.streamed = threading.Event()
        self._shutdown = threading.Event()
        self.released = False

    def stream(self, amt: int, decode_content: bool = True):
        for chunk in self.chunks:
            yield chunk
        self.streamed.set()
        self._shutdown.wait(10)

    def shutdown(self) -> None:
        self._shutdown.set()

    def release_conn(self) -> None:
        self.released = True


def make_cluster(index: int = 1, core: MagicMock | None = None, kubeconfig: str = "/kube/config") -> MagicMock:
    cluster = MagicMock(spec=ClusterHandle)
    cluster.index = index
    cluster.name = f"cluster{index}"
    cluster.kubeconfig = kubeconfig
    cluster.core_v1_api.return_value = core or MagicMock()
    return cluster


@pytest.fixture
def core() -> MagicMock:
    return MagicMock()


@pytest.fixture
def cluster(core: MagicMock) -> MagicMock:
    return make_cluster(1, core)
