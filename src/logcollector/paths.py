"""Artifact path planning and safe file writes."""

from __future__ import annotations

import os
import tempfile
from enum import Enum
from pathlib import Path

LOG_SUFFIX = ".log"
PREVIOUS_SUFFIX = "-previous"


class LogVariant(str, Enum):
    """Which container instance a log file belongs to."""

    CURRENT = "current"
    PREVIOUS = "previous"


def cluster_dir(root: str | os.PathLike, ordinal: int, label: str) -> Path:
    """Artifact directory of one cluster for one capture label: <root>/cluster<N>/<label>."""
    return Path(root) / f"cluster{ordinal}" / label


def log_file_name(pod: str, container: str = "", variant: LogVariant = LogVariant.CURRENT) -> str:
    """File name of a container log: <pod>[-<container>][-previous].log."""
    name = pod
    if container:
        name += f"-{container}"
    if variant == LogVariant.PREVIOUS:
        name += PREVIOUS_SUFFIX
    return name + LOG_SUFFIX


def log_path(
    root: str | os.PathLike,
    ordinal: int,
    label: str,
    pod: str,
    container: str = "",
    variant: LogVariant = LogVariant.CURRENT,
    namespace: str | None = None,
) -> Path:
    """
    Path of a container log file:
    <root>/cluster<N>/<label>/[<namespace>/]<pod>[-<container>][-previous].log
    """
    base = cluster_dir(root, ordinal, label)
    if namespace:
        base = base / namespace
    return base / log_file_name(pod, container, variant)


def describe_path(root: str | os.PathLike, ordinal: int, label: str, namespace: str) -> Path:
    """File holding `kubectl describe pods` output of one namespace."""
    return cluster_dir(root, ordinal, label) / f"describe-{namespace}{LOG_SUFFIX}"


def dump_dir(root: str | os.PathLike, ordinal: int, label: str, name: str) -> Path:
    """Output directory of one cluster-info dump."""
    return cluster_dir(root, ordinal, label) / name


def ensure_dir(path: str | os.PathLike) -> Path:
    """Create the directory if missing; existing content is kept."""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def write_atomic(path: str | os.PathLike, data: bytes) -> Path:
    """Write data so that readers see either the whole file or no file."""
    target = Path(path)
    ensure_dir(target.parent)
    fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp, 0o644)
        os.replace(tmp, target)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
    return target
