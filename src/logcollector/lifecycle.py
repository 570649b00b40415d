"""Suite lifecycle hooks: components opt in by implementing the hook they need."""

from __future__ import annotations

import logging
import os
import threading
from typing import Protocol, Sequence, runtime_checkable

from logcollector.collector import Collector, initialize
from logcollector.config import CollectionConfig, get_settings

logger = logging.getLogger(__name__)


@runtime_checkable
class SetupHook(Protocol):
    def setup_suite(self) -> None: ...


@runtime_checkable
class TeardownHook(Protocol):
    def teardown_suite(self) -> None: ...


@runtime_checkable
class TestTeardownHook(Protocol):
    def after_test(self, suite_name: str, test_name: str, failed: bool) -> None: ...


def run_setup(parents: Sequence[object]) -> None:
    """Run setup of every parent that has one, in order."""
    for p in parents:
        if isinstance(p, SetupHook):
            p.setup_suite()


def run_teardown(parents: Sequence[object]) -> None:
    """Run teardown of every parent that has one, in reverse order."""
    for p in reversed(parents):
        if isinstance(p, TeardownHook):
            p.teardown_suite()


def run_after_test(parents: Sequence[object], suite_name: str, test_name: str, failed: bool) -> None:
    """Report the outcome of one test to every parent that wants it."""
    for p in parents:
        if isinstance(p, TestTeardownHook):
            p.after_test(suite_name, test_name, failed)


def absolute_artifacts_settings(settings: CollectionConfig) -> CollectionConfig:
    """Pin a relative artifacts dir to the working directory and export it as ARTIFACTS_DIR."""
    artifacts_dir = settings.artifacts_dir
    if not artifacts_dir.is_absolute():
        artifacts_dir = artifacts_dir.resolve()
        settings = settings.model_copy(update={"artifacts_dir": artifacts_dir})
        logger.info("ARTIFACTS_DIR: %s", artifacts_dir)
    os.environ["ARTIFACTS_DIR"] = str(artifacts_dir)
    return settings


class ArtifactSuite:
    """
    Suite extension that stores cluster artifacts: a cluster dump after each
    failed test and, optionally, per-pod log streaming for the whole suite.
    """

    def __init__(
        self,
        suite_name: str,
        settings: CollectionConfig | None = None,
        monitor: bool = False,
    ) -> None:
        self.suite_name = suite_name
        self.monitor = monitor
        self._settings = settings
        self._stop_monitor = threading.Event()
        self.collector: Collector | None = None

    def setup_suite(self) -> None:
        settings = absolute_artifacts_settings(self._settings or get_settings())
        self.collector = initialize(settings)
        if self.monitor:
            self.collector.monitor_namespaces(self._stop_monitor, self.suite_name)

    def after_test(self, suite_name: str, test_name: str, failed: bool) -> None:
        if failed and self.collector is not None:
            self.collector.cluster_dump(f"{suite_name}/{test_name}")

    def teardown_suite(self) -> None:
        self._stop_monitor.set()
