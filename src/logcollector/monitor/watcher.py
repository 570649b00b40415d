"""Watch pods of one cluster and follow the logs of test pods while they live."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from kubernetes import watch
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from logcollector.capture.models import PodRef
from logcollector.clusters.registry import ClusterHandle
from logcollector.config import CollectionConfig
from logcollector.monitor.streamer import ContainerStreamer
from logcollector.namespaces import NamespaceClass, NamespaceClassifier
from logcollector.paths import log_file_name

logger = logging.getLogger(__name__)

WATCH_TIMEOUT_SECONDS = 30
WATCH_RETRY_SECONDS = 1.0
_GONE = 410


@dataclass
class StreamHandle:
    """Cancellation handle for the log streams of one pod."""

    cancel: threading.Event = field(default_factory=threading.Event)
    streamers: list[ContainerStreamer] = field(default_factory=list)

    def stop(self) -> None:
        """Cancel the streams and unblock their pending reads."""
        self.cancel.set()
        for s in self.streamers:
            s.interrupt()

    def join(self, timeout: float | None = None) -> None:
        for s in self.streamers:
            s.join(timeout)

    @property
    def alive(self) -> bool:
        return any(s.alive for s in self.streamers)


class WatchedPods:
    """(namespace, pod) -> StreamHandle, safe for concurrent use."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pods: dict[tuple[str, str], StreamHandle] = {}

    def add_if_absent(self, key: tuple[str, str], factory: Callable[[], StreamHandle]) -> StreamHandle | None:
        """Store a new handle unless the key is tracked; returns the new handle or None."""
        with self._lock:
            if key in self._pods:
                return None
            handle = self._pods[key] = factory()
            return handle

    def pop(self, key: tuple[str, str]) -> StreamHandle | None:
        with self._lock:
            return self._pods.pop(key, None)

    def pop_all(self) -> list[StreamHandle]:
        with self._lock:
            handles = list(self._pods.values())
            self._pods.clear()
            return handles

    def keys(self) -> list[tuple[str, str]]:
        with self._lock:
            return list(self._pods)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._pods

    def __len__(self) -> int:
        with self._lock:
            return len(self._pods)


class NamespaceMonitor:
    """
    Per-cluster pod watch. A pod added in a test namespace gets its containers'
    logs followed; deletion cancels the streams, which then flush to
    <suite_dir>/<namespace>/<pod>-<container>.log.
    """

    def __init__(
        self,
        cluster: ClusterHandle,
        settings: CollectionConfig,
        classifier: NamespaceClassifier,
        suite_dir: Path,
        watch_factory: Callable[[], Any] = watch.Watch,
    ) -> None:
        self.cluster = cluster
        self.settings = settings
        self.classifier = classifier
        self.suite_dir = Path(suite_dir)
        self.pods = WatchedPods()
        self._watch_factory = watch_factory
        self._watch: Any = None
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._retired: list[StreamHandle] = []
        self._thread = threading.Thread(target=self._run, name=f"monitor-{cluster.name}", daemon=True)

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    @property
    def flushing(self) -> int:
        """Number of deleted pods whose streams are still being written out."""
        self._prune_retired()
        with self._lock:
            return len(self._retired)

    def _prune_retired(self) -> None:
        with self._lock:
            self._retired = [h for h in self._retired if h.alive]

    def start(self) -> None:
        logger.info("%s: starting monitoring namespaces into %s", self.cluster.name, self.suite_dir)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Cancel every tracked stream and stop the watch."""
        self._stop.set()
        with self._lock:
            w = self._watch
        if w is not None:
            w.stop()
        handles = self.pods.pop_all()
        for handle in handles:
            handle.stop()
        with self._lock:
            # Includes streams of deleted pods that may still be flushing.
            self._retired.extend(handles)
            retired = list(self._retired)
        for handle in retired:
            handle.join(timeout)
        self._prune_retired()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def on_pod_added(self, pod: PodRef) -> bool:
        if self._stop.is_set() or not self.classifier.matches(pod.namespace, NamespaceClass.TEST):
            return False

        def new_handle() -> StreamHandle:
            handle = StreamHandle()
            for container in pod.containers:
                path = self.suite_dir / pod.namespace / log_file_name(pod.name, container)
                handle.streamers.append(
                    ContainerStreamer(self.cluster, pod, container, path, handle.cancel, self.settings.timeout)
                )
            return handle

        handle = self.pods.add_if_absent(pod.key, new_handle)
        if handle is None:
            return False
        logger.debug("%s: tracking pod %s/%s", self.cluster.name, pod.namespace, pod.name)
        for s in handle.streamers:
            s.start()
        if self._stop.is_set():
            # stop() may have drained the map before this pod was stored.
            self.on_pod_deleted(pod)
        return True

    def on_pod_deleted(self, pod: PodRef) -> bool:
        handle = self.pods.pop(pod.key)
        if handle is None:
            return False
        logger.debug("%s: pod %s/%s deleted", self.cluster.name, pod.namespace, pod.name)
        handle.stop()
        self._prune_retired()
        with self._lock:
            self._retired.append(handle)
        return True

    def handle_event(self, event: dict[str, Any]) -> None:
        obj = event.get("object")
        if obj is None or getattr(obj, "metadata", None) is None:
            return
        pod = PodRef.from_pod(obj)
        kind = event.get("type")
        if kind == "ADDED":
            self.on_pod_added(pod)
        elif kind == "DELETED":
            self.on_pod_deleted(pod)

    def _run(self) -> None:
        core = self.cluster.core_v1_api()
        resource_version: str | None = None
        while not self._stop.is_set():
            w = self._watch_factory()
            with self._lock:
                self._watch = w
            kwargs: dict[str, Any] = {"timeout_seconds": WATCH_TIMEOUT_SECONDS}
            if resource_version:
                kwargs["resource_version"] = resource_version
            try:
                self.cluster.throttle()
                for event in w.stream(core.list_pod_for_all_namespaces, **kwargs):
                    if self._stop.is_set():
                        break
                    self.handle_event(event)
                resource_version = getattr(w, "resource_version", None) or resource_version
            except ApiException as e:
                if e.status == _GONE:
                    resource_version = None
                    continue
                logger.warning("%s: pod watch failed: %s", self.cluster.name, e.reason)
                self._stop.wait(WATCH_RETRY_SECONDS)
            except (HTTPError, OSError) as e:
                logger.warning("%s: pod watch failed: %s", self.cluster.name, e)
                self._stop.wait(WATCH_RETRY_SECONDS)
            finally:
                w.stop()
        logger.info("%s: stopped monitoring namespaces", self.cluster.name)
