"""Structured models for log capture work."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from logcollector.clusters.registry import ClusterHandle


class PodRef(BaseModel):
    """The parts of a pod that log capture needs."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str
    containers: tuple[str, ...] = Field(default_factory=tuple)
    init_containers: tuple[str, ...] = Field(default_factory=tuple)

    @property
    def key(self) -> tuple[str, str]:
        return self.namespace, self.name

    @classmethod
    def from_pod(cls, pod: Any) -> PodRef:
        """Build PodRef from V1Pod."""
        spec = pod.spec
        return cls(
            namespace=pod.metadata.namespace or "default",
            name=pod.metadata.name,
            containers=tuple(c.name for c in (getattr(spec, "containers", None) or [])),
            init_containers=tuple(c.name for c in (getattr(spec, "init_containers", None) or [])),
        )


@dataclass(frozen=True)
class CaptureTask:
    """Fetch logs of one pod written since `since` into `directory`."""

    cluster: ClusterHandle
    pod: PodRef
    since: datetime
    directory: Path

    def __str__(self) -> str:
        return f"{self.cluster.name}/{self.pod.namespace}/{self.pod.name}"
