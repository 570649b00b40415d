"""Fetch current and previous container logs of pods and store them on disk."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from pathlib import Path

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from logcollector.capture.models import CaptureTask, PodRef
from logcollector.clusters.registry import ClusterHandle
from logcollector.namespaces import NamespaceClassifier
from logcollector.paths import LogVariant, log_file_name, write_atomic

logger = logging.getLogger(__name__)

# Missing previous instance is reported by the API server as a bad request.
_NO_PREVIOUS_STATUS = 400


def since_seconds(since: datetime, now: datetime | None = None) -> int:
    """Whole seconds elapsed since `since`, rounded up and at least 1."""
    current = now or datetime.now(timezone.utc)
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return max(1, math.ceil((current - since).total_seconds()))


def _fetch_log(task: CaptureTask, container: str, previous: bool, timeout: float) -> bytes:
    task.cluster.throttle()
    resp = task.cluster.core_v1_api().read_namespaced_pod_log(
        name=task.pod.name,
        namespace=task.pod.namespace,
        container=container,
        previous=previous,
        since_seconds=since_seconds(task.since),
        _preload_content=False,
        _request_timeout=timeout,
    )
    try:
        return resp.data
    finally:
        resp.release_conn()


def _container_logs(task: CaptureTask, container: str, suffixed: bool, timeout: float) -> list[Path]:
    written: list[Path] = []
    # Current instance first, then the previous one.
    for variant in (LogVariant.CURRENT, LogVariant.PREVIOUS):
        previous = variant == LogVariant.PREVIOUS
        try:
            data = _fetch_log(task, container, previous, timeout)
        except ApiException as e:
            if previous and e.status == _NO_PREVIOUS_STATUS:
                logger.debug("%s/%s: no previous instance of %s", task.cluster.name, task.pod.name, container)
            else:
                logger.error(
                    "%s: an error while retrieving logs of %s/%s container %s: %s",
                    task.cluster.name,
                    task.pod.namespace,
                    task.pod.name,
                    container,
                    e.reason,
                )
            continue
        except HTTPError as e:
            logger.error(
                "%s: an error while retrieving logs of %s/%s container %s: %s",
                task.cluster.name,
                task.pod.namespace,
                task.pod.name,
                container,
                e,
            )
            continue

        path = task.directory / log_file_name(task.pod.name, container if suffixed else "", variant)
        try:
            written.append(write_atomic(path, data or b""))
        except OSError as e:
            logger.error("An error during saving logs to %s: %s", path, e)
    return written


def save_pod_logs(task: CaptureTask, timeout: float) -> list[Path]:
    """
    Store logs of every regular and init container of the task's pod.

    Container names are part of the file name for init containers and for
    pods with more than one container. Returns the files written.
    """
    written: list[Path] = []
    for init in (False, True):
        containers = task.pod.init_containers if init else task.pod.containers
        suffixed = init or len(containers) > 1
        for container in containers:
            written.extend(_container_logs(task, container, suffixed, timeout))
    return written


def plan_capture_tasks(
    cluster: ClusterHandle,
    classifier: NamespaceClassifier,
    since: datetime,
    directory: Path,
    timeout: float,
) -> list[CaptureTask]:
    """List pods of all namespaces and build a task for every in-scope pod."""
    cluster.throttle()
    try:
        pods = cluster.core_v1_api().list_pod_for_all_namespaces(_request_timeout=timeout)
    except (ApiException, HTTPError) as e:
        logger.error("%s: an error while retrieving list of pods: %s", cluster.name, e)
        return []
    tasks = []
    for pod in pods.items or []:
        ref = PodRef.from_pod(pod)
        if not classifier.matches_any(ref.namespace):
            continue
        tasks.append(CaptureTask(cluster=cluster, pod=ref, since=since, directory=directory))
    return tasks
