"""Exceptions raised by the collection subsystem."""

from __future__ import annotations


class CollectorError(Exception):
    """Base class for log collection failures."""


class PoolClosedError(CollectorError):
    """Raised when work is submitted to a worker pool that is shutting down."""
