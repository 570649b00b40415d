"""Namespace watch monitor: per-pod log streaming for a suite's duration."""

from logcollector.monitor.streamer import ContainerStreamer
from logcollector.monitor.watcher import NamespaceMonitor, StreamHandle, WatchedPods

__all__ = [
    "ContainerStreamer",
    "NamespaceMonitor",
    "StreamHandle",
    "WatchedPods",
]
