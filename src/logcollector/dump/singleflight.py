"""Run-or-join primitive: overlapping callers share one in-flight execution."""

from __future__ import annotations

import threading
from typing import Callable, Generic, Hashable, TypeVar

T = TypeVar("T")


class _Flight(Generic[T]):
    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: T | None = None
        self.error: BaseException | None = None


class SingleFlight(Generic[T]):
    """
    Wraps a replaceable body function. `run()` starts the body when idle or
    waits for the running one and returns its outcome. Results are not kept:
    a call made after a run finished starts a fresh run.
    """

    def __init__(self, body: Callable[[], T] | None = None) -> None:
        self.body = body
        self._lock = threading.Lock()
        self._flight: _Flight[T] | None = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._flight is not None

    def run(self, body: Callable[[], T] | None = None) -> T:
        """Run the body, or wait for the run in flight and share its outcome."""
        with self._lock:
            if self._flight is None:
                flight = self._flight = _Flight()
                leader = True
            else:
                flight = self._flight
                leader = False

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.result  # type: ignore[return-value]

        fn = body or self.body
        try:
            if fn is None:
                raise ValueError("SingleFlight has no body to run")
            flight.result = fn()
        except BaseException as e:
            flight.error = e
            raise
        finally:
            with self._lock:
                self._flight = None
            flight.done.set()
        return flight.result


class SingleFlightGroup(Generic[T]):
    """One SingleFlight slot per key."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._flights: dict[Hashable, SingleFlight[T]] = {}

    def slot(self, key: Hashable) -> SingleFlight[T]:
        with self._lock:
            flight = self._flights.get(key)
            if flight is None:
                flight = self._flights[key] = SingleFlight()
            return flight

    def run(self, key: Hashable, body: Callable[[], T]) -> T:
        return self.slot(key).run(body)
