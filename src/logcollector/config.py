"""Configuration and environment for log collection."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> float:
    """Convert '10s', '1m30s', '250ms' or a plain number into seconds."""
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


class CollectionConfig(BaseSettings):
    """Log collection settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="LOGS_",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    enabled: bool = Field(default=True, description="Master switch; when false every capture is a no-op")
    artifacts_dir: Path = Field(
        default=Path("logs"),
        validation_alias=AliasChoices("LOGS_ARTIFACTS_DIR", "ARTIFACTS_DIR", "artifacts_dir"),
        description="Directory for storing container logs and dumps",
    )
    timeout: float = Field(default=10.0, gt=0, description="Timeout for kubernetes queries, e.g. '10s'")
    dump_timeout: float = Field(default=120.0, gt=0, description="Timeout for a single dump tool invocation")
    worker_count: int = Field(default=8, ge=1, description="Number of log collector workers")
    max_kube_configs: int = Field(default=3, ge=0, description="Number of numbered kubeconfigs to consider")
    allowed_namespaces: str = Field(
        default="(ns-.*)",
        description="Regex of test namespaces",
    )
    system_namespaces: str = Field(
        default="(nsm-system)|(spire)|(observability)",
        description="Regex of system namespaces",
    )
    kubectl: str = Field(default="kubectl", description="Binary used for cluster-info dumps and describes")

    @field_validator("timeout", "dump_timeout", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("allowed_namespaces", "system_namespaces")
    @classmethod
    def _check_regex(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid namespace regex {value!r}: {e}") from e
        return value


def get_settings() -> CollectionConfig:
    """Return validated settings instance."""
    return CollectionConfig()
