"""Invoke external diagnostic tools."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def __call__(self, args: Sequence[str], timeout: float) -> CommandResult: ...


def run_command(args: Sequence[str], timeout: float) -> CommandResult:
    """
    Run a command and capture its output. Raises subprocess.TimeoutExpired
    or OSError when the command cannot finish.
    """
    cmd = list(args)
    logger.debug("Running %s", " ".join(cmd))
    r = subprocess.run(cmd, capture_output=True, timeout=timeout, check=False)
    return CommandResult(args=cmd, returncode=r.returncode, stdout=r.stdout or b"", stderr=r.stderr or b"")
