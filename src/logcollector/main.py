"""CLI entrypoint for cluster artifact collection."""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from logcollector import __version__
from logcollector.collector import initialize, print_reports


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Collect pod logs and diagnostic dumps from the clusters of an integration test run.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    dump = sub.add_parser("dump", help="Dump test and system namespaces of every cluster")
    dump.add_argument("label", help="Artifact directory name under cluster<N>/")

    capture = sub.add_parser("capture", help="Capture logs written during the next DURATION seconds, then dump")
    capture.add_argument("label", help="Artifact directory name under cluster<N>/")
    capture.add_argument("--duration", type=float, default=0.0, help="Seconds to wait before storing logs")

    monitor = sub.add_parser("monitor", help="Follow logs of test namespace pods until interrupted")
    monitor.add_argument("label", help="Artifact directory name under cluster<N>/")
    monitor.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for cluster-artifacts CLI."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    logger = logging.getLogger("logcollector")
    if not args.verbose:
        logger.setLevel(logging.INFO)
        logging.getLogger("kubernetes").setLevel(logging.WARNING)

    try:
        collector = initialize()
    except ValidationError as e:
        logging.error("Invalid log collection configuration:\n%s", e)
        return 2

    console = Console()
    try:
        if args.command == "dump":
            print_reports(collector.cluster_dump(args.label), console)
        elif args.command == "capture":
            finalize = collector.capture(args.label)
            collector.cancel_event.wait(args.duration)
            print_reports(finalize(), console)
        elif args.command == "monitor":
            stop = threading.Event()
            collector.monitor_namespaces(stop, args.label)
            try:
                collector.cancel_event.wait(args.duration)
            except KeyboardInterrupt:
                pass
            stop.set()
    except KeyboardInterrupt:
        logging.warning("Interrupted")
        return 130
    finally:
        collector.shutdown(wait_pending=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
