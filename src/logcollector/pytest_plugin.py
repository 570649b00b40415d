"""
pytest integration: store cluster logs and dumps for failed tests.

Enable with ``-p logcollector.pytest_plugin --collect-cluster-logs``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Callable

import pytest

from logcollector.lifecycle import ArtifactSuite, run_setup, run_teardown

_SUITE_KEY = pytest.StashKey[ArtifactSuite]()
_FINALIZE_KEY = pytest.StashKey[Callable[[], object]]()
_UNSAFE = re.compile(r"[^\w.\-]+")


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("cluster-artifacts")
    group.addoption(
        "--collect-cluster-logs",
        action="store_true",
        default=False,
        help="Store pod logs and cluster dumps of failed tests under ARTIFACTS_DIR",
    )
    group.addoption(
        "--monitor-namespaces",
        action="store_true",
        default=False,
        help="Follow logs of test namespace pods for the whole session",
    )


def item_label(item: pytest.Item) -> str:
    """<module>/<test> label of a test item, safe as a path."""
    parts = item.nodeid.split("::")
    module = Path(parts[0]).stem
    return f"{_UNSAFE.sub('_', module)}/{_UNSAFE.sub('_', parts[-1])}"


def _suite(config: pytest.Config) -> ArtifactSuite | None:
    return config.stash.get(_SUITE_KEY, None)


def pytest_configure(config: pytest.Config) -> None:
    if not config.getoption("--collect-cluster-logs", default=False):
        return
    suite = ArtifactSuite(
        suite_name="session",
        monitor=bool(config.getoption("--monitor-namespaces", default=False)),
    )
    run_setup([suite])
    config.stash[_SUITE_KEY] = suite


def pytest_runtest_setup(item: pytest.Item) -> None:
    suite = _suite(item.config)
    if suite is None or suite.collector is None:
        return
    item.stash[_FINALIZE_KEY] = suite.collector.capture(item_label(item))


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo):
    outcome = yield
    report = outcome.get_result()
    if report.when != "call" or not report.failed:
        return
    finalize = item.stash.get(_FINALIZE_KEY, None)
    if finalize is not None:
        finalize()


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    suite = _suite(session.config)
    if suite is None:
        return
    if session.testsfailed and suite.collector is not None:
        suite.collector.cluster_dump(suite.suite_name)
    run_teardown([suite])
