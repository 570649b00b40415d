"""Tests for the bounded capture worker pool."""

from __future__ import annotations

import threading
import time
from concurrent.futures import wait

import pytest

from logcollector.capture.pool import WorkerPool
from logcollector.errors import PoolClosedError


@pytest.mark.parametrize("worker_count", [1, 2, 8])
def test_every_task_completes_exactly_once(worker_count: int) -> None:
    seen: list[int] = []
    lock = threading.Lock()

    def handler(task: int) -> int:
        if task % 7 == 0:
            raise RuntimeError(f"task {task} failed")
        with lock:
            seen.append(task)
        return task * 2

    with WorkerPool(handler, worker_count) as pool:
        futures = [pool.submit(i) for i in range(50)]
        wait(futures, timeout=10)

    assert all(f.done() for f in futures)
    failed = [i for i, f in enumerate(futures) if f.exception() is not None]
    assert failed == [i for i in range(50) if i % 7 == 0]
    assert sorted(seen) == [i for i in range(50) if i % 7 != 0]
    assert futures[3].result() == 6


def test_submit_blocks_while_queue_is_full() -> None:
    release = threading.Event()
    started = threading.Event()

    def handler(task: int) -> None:
        started.set()
        release.wait(5)

    pool = WorkerPool(handler, worker_count=1, queue_size=1)
    pool.submit(0)
    assert started.wait(5)
    pool.submit(1)  # fills the queue

    submitted = threading.Event()

    def producer() -> None:
        pool.submit(2)
        submitted.set()

    t = threading.Thread(target=producer)
    t.start()
    assert not submitted.wait(0.3)

    release.set()
    assert submitted.wait(5)
    t.join(5)
    pool.close()


def test_close_drains_pending_tasks_then_rejects() -> None:
    done: list[int] = []
    pool = WorkerPool(lambda task: done.append(task), worker_count=2, queue_size=10)
    futures = [pool.submit(i) for i in range(10)]

    pool.close(wait=True)

    assert sorted(done) == list(range(10))
    assert all(f.done() and not f.cancelled() for f in futures)
    assert pool.submit(99).cancelled()
    with pytest.raises(PoolClosedError):
        pool.submit(100, strict=True)


def test_cancel_stops_pulling_new_tasks() -> None:
    release = threading.Event()
    started = threading.Event()
    ran: list[int] = []

    def handler(task: int) -> None:
        ran.append(task)
        started.set()
        release.wait(5)

    pool = WorkerPool(handler, worker_count=1, queue_size=5)
    first = pool.submit(0)
    assert started.wait(5)
    queued = [pool.submit(i) for i in range(1, 4)]

    canceller = threading.Thread(target=pool.cancel)
    canceller.start()
    time.sleep(0.1)
    release.set()
    canceller.join(5)
    pool.join()

    assert first.done() and not first.cancelled()
    assert all(f.cancelled() for f in queued)
    assert ran == [0]


def test_shared_cancel_event_rejects_submissions() -> None:
    cancel = threading.Event()
    pool = WorkerPool(lambda task: None, worker_count=1, cancel_event=cancel)
    cancel.set()

    assert pool.submit(1).cancelled()
    pool.close()


def test_requires_a_worker() -> None:
    with pytest.raises(ValueError):
        WorkerPool(lambda task: None, worker_count=0)


def test_submissions_racing_with_close_all_resolve() -> None:
    pool = WorkerPool(lambda task: task, worker_count=2, queue_size=2)
    futures = []
    lock = threading.Lock()
    start = threading.Barrier(5)

    def producer() -> None:
        start.wait(5)
        for i in range(200):
            fut = pool.submit(i)
            with lock:
                futures.append(fut)

    producers = [threading.Thread(target=producer) for _ in range(4)]
    for t in producers:
        t.start()
    start.wait(5)
    time.sleep(0.01)
    pool.close(wait=True)
    for t in producers:
        t.join(10)

    wait(futures, timeout=10)
    assert len(futures) == 800
    assert all(f.done() for f in futures)
