"""Bounded pool of worker threads draining capture tasks."""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Generic, TypeVar

from logcollector.errors import PoolClosedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STOP = object()
_PUT_POLL_SECONDS = 0.1


class WorkerPool(Generic[T]):
    """
    Fixed number of threads running `handler(task)` for every submitted task.

    The queue holds at most `queue_size` pending tasks; `submit` blocks while
    it is full. Once closed or cancelled, new submissions are rejected.
    """

    def __init__(
        self,
        handler: Callable[[T], Any],
        worker_count: int,
        queue_size: int | None = None,
        cancel_event: threading.Event | None = None,
        name: str = "log-worker",
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self._handler = handler
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size or worker_count)
        self._cancel = cancel_event or threading.Event()
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._threads = [
            threading.Thread(target=self._work, name=f"{name}-{i}", daemon=True) for i in range(worker_count)
        ]
        for t in self._threads:
            t.start()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def submit(self, task: T, strict: bool = False) -> Future:
        """
        Enqueue a task, blocking while the queue is full.

        After close or cancel the returned future is already cancelled,
        or PoolClosedError is raised when `strict` is set.
        """
        fut: Future = Future()
        while True:
            # Check and put under the close lock: nothing lands behind the stop markers.
            with self._close_lock:
                if self._closed.is_set() or self._cancel.is_set():
                    if strict:
                        raise PoolClosedError(f"worker pool closed, task {task} rejected")
                    logger.warning("Worker pool is closed, dropping task %s", task)
                    fut.cancel()
                    return fut
                try:
                    self._queue.put((task, fut), timeout=_PUT_POLL_SECONDS)
                    return fut
                except queue.Full:
                    pass

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                task, fut = item
                if self._cancel.is_set():
                    fut.cancel()
                    continue
                if not fut.set_running_or_notify_cancel():
                    continue
                try:
                    result = self._handler(task)
                except Exception as e:
                    logger.error("Capture task %s failed: %s", task, e)
                    fut.set_exception(e)
                else:
                    fut.set_result(result)
            finally:
                self._queue.task_done()

    def close(self, wait: bool = True) -> None:
        """Stop accepting work; pending tasks are still executed."""
        with self._close_lock:
            if self._closed.is_set():
                first = False
            else:
                self._closed.set()
                first = True
        if first:
            for _ in self._threads:
                self._queue.put(_STOP)
        if wait:
            self.join()

    def cancel(self) -> None:
        """Stop pulling new tasks; queued ones are cancelled."""
        self._cancel.set()
        self.close(wait=False)

    def join(self) -> None:
        """Wait for the worker threads to exit; pending futures are resolved on return."""
        for t in self._threads:
            t.join()
        # Leftovers only remain when a worker thread died; their futures must still resolve.
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is not _STOP:
                item[1].cancel()
            self._queue.task_done()

    def __enter__(self) -> WorkerPool[T]:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close(wait=True)
