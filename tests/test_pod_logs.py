"""Tests for per-pod log capture."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import ReadTimeoutError

from logcollector.capture.models import CaptureTask, PodRef
from logcollector.capture.pod_logs import plan_capture_tasks, save_pod_logs, since_seconds
from logcollector.config import CollectionConfig
from logcollector.namespaces import NamespaceClassifier

from conftest import FakeLogResponse, make_pod


def _logs_by_call(mapping: dict[tuple[str, bool], bytes | Exception]):
    calls: list[tuple[str, bool]] = []

    def read_log(name, namespace, container, previous, **kwargs):
        calls.append((container, previous))
        value = mapping.get((container, previous), b"")
        if isinstance(value, Exception):
            raise value
        return FakeLogResponse(value)

    return read_log, calls


def _task(cluster, tmp_path: Path, pod: client.V1Pod) -> CaptureTask:
    return CaptureTask(
        cluster=cluster,
        pod=PodRef.from_pod(pod),
        since=datetime.now(timezone.utc) - timedelta(minutes=5),
        directory=tmp_path / "cluster1" / "basic",
    )


def test_single_container_pod_files(cluster, core: MagicMock, tmp_path: Path) -> None:
    read_log, calls = _logs_by_call({("nsc", False): b"current\n", ("nsc", True): b"previous\n"})
    core.read_namespaced_pod_log.side_effect = read_log
    task = _task(cluster, tmp_path, make_pod("ns-a", "nsc-1", ["nsc"]))

    written = save_pod_logs(task, timeout=1)

    out = tmp_path / "cluster1" / "basic"
    assert written == [out / "nsc-1.log", out / "nsc-1-previous.log"]
    assert (out / "nsc-1.log").read_bytes() == b"current\n"
    assert (out / "nsc-1-previous.log").read_bytes() == b"previous\n"
    assert calls == [("nsc", False), ("nsc", True)]
    assert cluster.throttle.call_count == 2


def test_container_names_added_for_multi_and_init_containers(cluster, core: MagicMock, tmp_path: Path) -> None:
    read_log, calls = _logs_by_call({})
    core.read_namespaced_pod_log.side_effect = read_log
    task = _task(cluster, tmp_path, make_pod("ns-a", "nse-1", ["nse", "sidecar"], init_containers=["init"]))

    written = save_pod_logs(task, timeout=1)

    assert [p.name for p in written] == [
        "nse-1-nse.log",
        "nse-1-nse-previous.log",
        "nse-1-sidecar.log",
        "nse-1-sidecar-previous.log",
        "nse-1-init.log",
        "nse-1-init-previous.log",
    ]
    assert calls[0] == ("nse", False)
    assert calls[-1] == ("init", True)


def test_failed_container_does_not_stop_siblings(cluster, core: MagicMock, tmp_path: Path) -> None:
    read_log, _ = _logs_by_call(
        {
            ("a", False): ApiException(status=500, reason="Internal Server Error"),
            ("a", True): ApiException(status=400, reason="Bad Request"),
            ("b", False): ReadTimeoutError(None, "/logs", "read timed out"),
            ("b", True): b"b previous",
        }
    )
    core.read_namespaced_pod_log.side_effect = read_log
    task = _task(cluster, tmp_path, make_pod("ns-a", "pod", ["a", "b"]))

    written = save_pod_logs(task, timeout=1)

    assert [p.name for p in written] == ["pod-b-previous.log"]


def test_request_uses_since_and_timeout(cluster, core: MagicMock, tmp_path: Path) -> None:
    core.read_namespaced_pod_log.return_value = FakeLogResponse(b"")
    task = _task(cluster, tmp_path, make_pod("ns-a", "pod", ["app"]))

    save_pod_logs(task, timeout=3)

    kwargs = core.read_namespaced_pod_log.call_args.kwargs
    assert kwargs["namespace"] == "ns-a"
    assert kwargs["_request_timeout"] == 3
    assert kwargs["_preload_content"] is False
    assert 299 <= kwargs["since_seconds"] <= 302


def test_since_seconds_rounds_up() -> None:
    now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert since_seconds(now - timedelta(seconds=1.2), now) == 2
    assert since_seconds(now, now) == 1
    assert since_seconds(datetime(2024, 1, 1, 11, 59, 0), now) == 60


def test_plan_capture_tasks_filters_namespaces(cluster, core: MagicMock, tmp_path: Path) -> None:
    core.list_pod_for_all_namespaces.return_value = client.V1PodList(
        items=[
            make_pod("ns-a", "nsc"),
            make_pod("kube-system", "coredns"),
            make_pod("nsm-system", "nsmgr"),
        ]
    )
    classifier = NamespaceClassifier.from_settings(CollectionConfig())
    since = datetime.now(timezone.utc)

    tasks = plan_capture_tasks(cluster, classifier, since, tmp_path, timeout=1)

    assert [(t.pod.namespace, t.pod.name) for t in tasks] == [("ns-a", "nsc"), ("nsm-system", "nsmgr")]
    assert all(t.since == since and t.directory == tmp_path for t in tasks)


def test_plan_capture_tasks_survives_list_failure(cluster, core: MagicMock, tmp_path: Path) -> None:
    core.list_pod_for_all_namespaces.side_effect = ApiException(status=503, reason="Unavailable")
    classifier = NamespaceClassifier.from_settings(CollectionConfig())

    assert plan_capture_tasks(cluster, classifier, datetime.now(timezone.utc), tmp_path, timeout=1) == []
