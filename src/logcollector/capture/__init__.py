"""Log capture: worker pool and per-pod log fetching."""

from logcollector.capture.models import CaptureTask, PodRef
from logcollector.capture.pod_logs import plan_capture_tasks, save_pod_logs
from logcollector.capture.pool import WorkerPool

__all__ = [
    "CaptureTask",
    "PodRef",
    "WorkerPool",
    "plan_capture_tasks",
    "save_pod_logs",
]
