"""Pod log and diagnostic dump collection for multi-cluster integration tests."""

__version__ = "0.1.0"

from logcollector.collector import (  # noqa: E402
    Collector,
    capture,
    cluster_dump,
    initialize,
    monitor_namespaces,
    reset,
)

__all__ = [
    "Collector",
    "__version__",
    "capture",
    "cluster_dump",
    "initialize",
    "monitor_namespaces",
    "reset",
]
