"""Follow-mode log tail of one container, flushed to disk once on cancel."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from logcollector.capture.models import PodRef
from logcollector.clusters.registry import ClusterHandle
from logcollector.paths import write_atomic

logger = logging.getLogger(__name__)

STREAM_RETRY_SECONDS = 0.3
CHUNK_SIZE = 32 * 1024


class ContainerStreamer:
    """Buffers a container's followed log until `cancel` is set, then writes it."""

    def __init__(
        self,
        cluster: ClusterHandle,
        pod: PodRef,
        container: str,
        path: Path,
        cancel: threading.Event,
        timeout: float,
    ) -> None:
        self.cluster = cluster
        self.pod = pod
        self.container = container
        self.path = path
        self.cancel = cancel
        self.timeout = timeout
        self._buffer = bytearray()
        self._opened = False
        self._flushed = False
        self._response: Any = None
        self._lock = threading.Lock()
        self._thread = threading.Thread(
            target=self.run,
            name=f"stream-{pod.namespace}-{pod.name}-{container}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    @property
    def buffered(self) -> int:
        """Bytes read from the stream and not yet written out."""
        with self._lock:
            return len(self._buffer)

    def _open(self) -> Any:
        """Open the log stream, retrying until it succeeds or the stream is cancelled."""
        core = self.cluster.core_v1_api()
        while not self.cancel.is_set():
            try:
                self.cluster.throttle()
                resp = core.read_namespaced_pod_log(
                    name=self.pod.name,
                    namespace=self.pod.namespace,
                    container=self.container,
                    follow=True,
                    _preload_content=False,
                    _request_timeout=(self.timeout, None),
                )
            except (ApiException, HTTPError) as e:
                logger.debug("%s/%s/%s: log stream not ready: %s", self.pod.namespace, self.pod.name, self.container, e)
                self.cancel.wait(STREAM_RETRY_SECONDS)
                continue
            with self._lock:
                if self.cancel.is_set():
                    resp.release_conn()
                    return None
                self._response = resp
                self._opened = True
            return resp
        return None

    def _read(self, resp: Any) -> None:
        try:
            for chunk in resp.stream(CHUNK_SIZE, decode_content=True):
                self._buffer.extend(chunk)
                if self.cancel.is_set():
                    break
        except (HTTPError, OSError, ValueError) as e:
            if not self.cancel.is_set():
                logger.warning("%s/%s/%s: log stream broken: %s", self.pod.namespace, self.pod.name, self.container, e)
        finally:
            with self._lock:
                self._response = None
            resp.release_conn()

    def run(self) -> None:
        try:
            resp = self._open()
            if resp is not None:
                self._read(resp)
            # The container may exit before the pod is deleted; keep the tail until then.
            self.cancel.wait()
        finally:
            self.flush()

    def interrupt(self) -> None:
        """Unblock a pending read after `cancel` has been set."""
        with self._lock:
            resp = self._response
        if resp is None:
            return
        try:
            resp.shutdown()
        except (HTTPError, OSError, ValueError) as e:
            logger.debug("%s/%s/%s: closing log stream: %s", self.pod.namespace, self.pod.name, self.container, e)

    def flush(self) -> Path | None:
        """Write the buffered tail; only the first call writes."""
        with self._lock:
            if self._flushed or not self._opened:
                self._flushed = True
                return None
            self._flushed = True
            data = bytes(self._buffer)
            self._buffer.clear()
        try:
            logger.info("Saving logs to file %s", self.path)
            return write_atomic(self.path, data)
        except OSError as e:
            logger.error("An error during saving logs to %s: %s", self.path, e)
            return None
