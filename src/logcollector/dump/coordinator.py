"""Per-cluster diagnostic dumps: cluster-info dump and pod descriptions."""

from __future__ import annotations

import logging
import subprocess
import threading
from datetime import datetime, timezone
from pathlib import Path

from kubernetes.client.rest import ApiException
from pydantic import BaseModel, Field
from urllib3.exceptions import HTTPError

from logcollector.clusters.registry import ClusterHandle
from logcollector.config import CollectionConfig
from logcollector.dump.runner import CommandResult, CommandRunner, run_command
from logcollector.dump.singleflight import SingleFlightGroup
from logcollector.namespaces import NamespaceClass, NamespaceClassifier, active_namespace_names
from logcollector.paths import cluster_dir, describe_path, dump_dir, ensure_dir, write_atomic

logger = logging.getLogger(__name__)

TEST_DUMP_DIR = "test-namespaces"
SYSTEM_DUMP_DIR = "system-namespaces"


class DumpReport(BaseModel):
    """What one dump of one cluster produced."""

    cluster: str
    label: str
    test_namespaces: list[str] = Field(default_factory=list)
    system_namespaces: list[str] = Field(default_factory=list)
    paths: list[Path] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return not self.failures


class ClusterDumper:
    """Dumps one cluster; overlapping dumps of the same cluster share one run."""

    def __init__(
        self,
        cluster: ClusterHandle,
        settings: CollectionConfig,
        classifier: NamespaceClassifier,
        runner: CommandRunner = run_command,
        flights: SingleFlightGroup[DumpReport] | None = None,
    ) -> None:
        self.cluster = cluster
        self.settings = settings
        self.classifier = classifier
        self._runner = runner
        self._flights = flights or SingleFlightGroup()
        self._system_dumps = 0
        self._counter_lock = threading.Lock()

    def dump(self, label: str) -> DumpReport:
        """Dump the cluster under `label`, or join the dump already running."""
        return self._flights.run(self.cluster.index, lambda: self._dump(label))

    def _next_system_dump(self) -> int:
        with self._counter_lock:
            self._system_dumps += 1
            return self._system_dumps

    def _list_namespaces(self) -> list[str] | None:
        self.cluster.throttle()
        try:
            ns_list = self.cluster.core_v1_api().list_namespace(_request_timeout=self.settings.timeout)
        except (ApiException, HTTPError) as e:
            logger.error("%s: an error while retrieving list of namespaces: %s", self.cluster.name, e)
            return None
        return active_namespace_names(ns_list)

    def _kubectl(self, *args: str) -> list[str]:
        return [self.settings.kubectl, "--kubeconfig", self.cluster.kubeconfig, *args]

    def _run(self, args: list[str], what: str, report: DumpReport) -> CommandResult | None:
        try:
            result = self._runner(args, self.settings.dump_timeout)
        except subprocess.TimeoutExpired:
            logger.error("%s: timed out while retrieving %s", self.cluster.name, what)
            report.failures.append(what)
            return None
        except OSError as e:
            logger.error("%s: cannot run %s for %s: %s", self.cluster.name, args[0], what, e)
            report.failures.append(what)
            return None
        if not result.ok:
            logger.error(
                "%s: an error while retrieving %s (exit %d): %s",
                self.cluster.name,
                what,
                result.returncode,
                result.stderr.decode("utf-8", "replace").strip(),
            )
            report.failures.append(what)
            return None
        return result

    def _cluster_info_dump(self, namespaces: list[str], out_dir: Path, report: DumpReport) -> None:
        ensure_dir(out_dir)
        args = self._kubectl(
            "cluster-info",
            "dump",
            "--namespaces",
            ",".join(namespaces),
            "--output-directory",
            str(out_dir),
        )
        if self._run(args, f"cluster-info dump into {out_dir.name}", report) is not None:
            report.paths.append(out_dir)

    def _describe_pods(self, namespace: str, path: Path, report: DumpReport) -> None:
        what = f"describe for namespace {namespace}"
        result = self._run(self._kubectl("describe", "pods", "-n", namespace), what, report)
        if result is None:
            return
        try:
            report.paths.append(write_atomic(path, result.stdout))
        except OSError as e:
            logger.error("An error during saving describe to %s: %s", path, e)
            report.failures.append(what)

    def _dump(self, label: str) -> DumpReport:
        report = DumpReport(cluster=self.cluster.name, label=label)
        root = self.settings.artifacts_dir
        names = self._list_namespaces()
        if names is None:
            report.failures.append("list namespaces")
            report.finished_at = datetime.now(timezone.utc)
            return report

        report.test_namespaces = self.classifier.select(names, NamespaceClass.TEST)
        report.system_namespaces = self.classifier.select(names, NamespaceClass.SYSTEM)
        ensure_dir(cluster_dir(root, self.cluster.index, label))

        if report.test_namespaces:
            self._cluster_info_dump(
                report.test_namespaces, dump_dir(root, self.cluster.index, label, TEST_DUMP_DIR), report
            )
        if report.system_namespaces:
            occurrence = self._next_system_dump()
            self._cluster_info_dump(
                report.system_namespaces,
                dump_dir(root, self.cluster.index, label, f"{SYSTEM_DUMP_DIR}-{occurrence}"),
                report,
            )
        for ns in dict.fromkeys(report.test_namespaces + report.system_namespaces):
            self._describe_pods(ns, describe_path(root, self.cluster.index, label, ns), report)

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "%s: dump %s finished, %d artifacts, %d failures",
            self.cluster.name,
            label,
            len(report.paths),
            len(report.failures),
        )
        return report
