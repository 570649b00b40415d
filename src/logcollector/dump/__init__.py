"""Cluster dump coordination: single-flight dumps through an external tool."""

from logcollector.dump.coordinator import ClusterDumper, DumpReport
from logcollector.dump.runner import CommandResult, run_command
from logcollector.dump.singleflight import SingleFlight, SingleFlightGroup

__all__ = [
    "ClusterDumper",
    "CommandResult",
    "DumpReport",
    "SingleFlight",
    "SingleFlightGroup",
    "run_command",
]
