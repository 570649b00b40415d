"""Process-wide collection context: capture → dump → flush, and namespace monitoring."""

from __future__ import annotations

import logging
import signal
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Mapping

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from logcollector.capture import WorkerPool, plan_capture_tasks, save_pod_logs
from logcollector.clusters import ClusterHandle, build_clusters
from logcollector.config import CollectionConfig, get_settings
from logcollector.dump import ClusterDumper, DumpReport, SingleFlightGroup
from logcollector.dump.runner import CommandRunner, run_command
from logcollector.monitor import NamespaceMonitor
from logcollector.namespaces import NamespaceClassifier
from logcollector.paths import cluster_dir

logger = logging.getLogger(__name__)

_SIGNALS = tuple(getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP", "SIGQUIT") if hasattr(signal, name))


class Collector:
    """Clusters, worker pool and dumpers shared by every capture in the process."""

    def __init__(
        self,
        settings: CollectionConfig,
        clusters: list[ClusterHandle],
        classifier: NamespaceClassifier | None = None,
        runner: CommandRunner = run_command,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.settings = settings
        self.clusters = list(clusters)
        self.classifier = classifier or NamespaceClassifier.from_settings(settings)
        self.cancel_event = cancel_event or threading.Event()
        self.enabled = settings.enabled and bool(self.clusters)
        self.pool: WorkerPool | None = None
        if self.enabled:
            self.pool = WorkerPool(
                partial(save_pod_logs, timeout=settings.timeout),
                settings.worker_count,
                cancel_event=self.cancel_event,
            )
        flights: SingleFlightGroup[DumpReport] = SingleFlightGroup()
        self.dumpers = [ClusterDumper(c, settings, self.classifier, runner, flights) for c in self.clusters]
        self._monitors: list[NamespaceMonitor] = []
        self._monitors_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: CollectionConfig | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Collector:
        """Build the collector; configuration errors propagate, unreachable clusters do not."""
        opts = settings or get_settings()
        classifier = NamespaceClassifier.from_settings(opts)
        clusters: list[ClusterHandle] = []
        if not opts.enabled:
            logger.info("Log collection is disabled")
        else:
            clusters = build_clusters(opts, environ)
            if not clusters:
                logger.warning("No cluster client could be built, log collection is disabled")
        return cls(opts, clusters, classifier)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def capture(self, label: str) -> Callable[[], list[DumpReport]]:
        """Start a time-windowed capture; the returned function dumps and stores logs since now."""
        since = datetime.now(timezone.utc)
        if not self.enabled:
            return lambda: []

        def finalize() -> list[DumpReport]:
            reports = self.cluster_dump(label)
            self.capture_logs(label, since)
            return reports

        return finalize

    def capture_logs(self, label: str, since: datetime) -> list[Future]:
        """Queue a capture task per in-scope pod of every cluster and wait for all of them."""
        if not self.enabled or self.pool is None:
            return []
        futures: list[Future] = []
        for cluster in self.clusters:
            if self.cancelled:
                break
            directory = cluster_dir(self.settings.artifacts_dir, cluster.index, label)
            tasks = plan_capture_tasks(cluster, self.classifier, since, directory, self.settings.timeout)
            for task in tasks:
                if self.cancelled:
                    break
                futures.append(self.pool.submit(task))
        wait(futures)
        return futures

    def cluster_dump(self, label: str) -> list[DumpReport]:
        """Dump every cluster concurrently; a failing cluster does not affect the others."""
        if not self.enabled or not self.dumpers:
            return []
        reports: list[DumpReport] = []
        with ThreadPoolExecutor(max_workers=len(self.dumpers), thread_name_prefix="dump") as executor:
            futures = {executor.submit(d.dump, label): d for d in self.dumpers}
            for fut, dumper in futures.items():
                try:
                    reports.append(fut.result())
                except Exception:
                    logger.exception("%s: cluster dump %s failed", dumper.cluster.name, label)
        return reports

    def monitor_namespaces(self, stop_event: threading.Event, label: str) -> list[NamespaceMonitor]:
        """Follow test pod logs on every cluster until `stop_event` is set."""
        if not self.enabled:
            return []
        monitors = []
        for cluster in self.clusters:
            suite_dir = cluster_dir(self.settings.artifacts_dir, cluster.index, label)
            monitor = NamespaceMonitor(cluster, self.settings, self.classifier, suite_dir)
            monitor.start()
            monitors.append(monitor)
        with self._monitors_lock:
            self._monitors.extend(monitors)

        def stop_when_done() -> None:
            stop_event.wait()
            self._stop_monitors(monitors)

        threading.Thread(target=stop_when_done, name=f"monitor-stop-{label}", daemon=True).start()
        return monitors

    def _stop_monitors(self, monitors: list[NamespaceMonitor]) -> None:
        # stop() is idempotent and waits for pending flushes, so shutdown stops every monitor again.
        for m in monitors:
            m.stop(self.settings.timeout)

    def shutdown(self, wait_pending: bool = False) -> None:
        """Close the task queue and stop monitors. Pending tasks drain unless cancelled."""
        if self.pool is not None:
            if wait_pending and not self.cancelled:
                self.pool.close(wait=True)
            else:
                self.cancel_event.set()
                self.pool.cancel()
                self.pool.join()
        with self._monitors_lock:
            monitors = list(self._monitors)
        self._stop_monitors(monitors)

    def install_signal_handlers(self) -> None:
        """Cancel collection on termination signals; previous handlers still run."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, signal handlers not installed")
            return
        for sig in _SIGNALS:
            previous = signal.getsignal(sig)

            def handler(signum, frame, previous=previous):
                logger.info("Received signal %d, stopping log collection", signum)
                self.cancel_event.set()
                threading.Thread(target=self.shutdown, name="collector-shutdown", daemon=True).start()
                if callable(previous):
                    previous(signum, frame)

            signal.signal(sig, handler)


_init_lock = threading.Lock()
_collector: Collector | None = None


def initialize(settings: CollectionConfig | None = None, install_signals: bool = True) -> Collector:
    """Build the process-wide collector once; later calls return the same one."""
    global _collector
    with _init_lock:
        if _collector is None:
            collector = Collector.from_settings(settings)
            if install_signals and collector.enabled:
                collector.install_signal_handlers()
            _collector = collector
        return _collector


def reset() -> None:
    """Shut down and forget the process-wide collector."""
    global _collector
    with _init_lock:
        collector, _collector = _collector, None
    if collector is not None:
        collector.shutdown()


def capture(label: str) -> Callable[[], list[DumpReport]]:
    return initialize().capture(label)


def cluster_dump(label: str) -> list[DumpReport]:
    return initialize().cluster_dump(label)


def monitor_namespaces(stop_event: threading.Event, label: str) -> list[NamespaceMonitor]:
    return initialize().monitor_namespaces(stop_event, label)


def print_reports(reports: list[DumpReport], console: Console | None = None) -> None:
    """Print dump reports to console using Rich."""
    c = console or Console()
    if not reports:
        c.print(Panel("No cluster was dumped.", title="Cluster dumps", border_style="yellow"))
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Cluster")
    table.add_column("Label")
    table.add_column("Test namespaces")
    table.add_column("System namespaces")
    table.add_column("Artifacts", justify="right")
    table.add_column("Failures")
    for r in reports:
        table.add_row(
            r.cluster,
            r.label,
            ", ".join(r.test_namespaces) or "-",
            ", ".join(r.system_namespaces) or "-",
            str(len(r.paths)),
            "\n".join(r.failures) or "none",
        )
    border = "blue" if all(r.ok for r in reports) else "red"
    c.print(Panel(table, title="Cluster dumps", border_style=border))
