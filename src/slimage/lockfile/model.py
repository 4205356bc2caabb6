"""Lockfile typed model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

LOCKFILE_VERSION = 1


@dataclass(frozen=True, slots=True)
class Lockfile:
    version: int
    binary_name: str
    config_digest: str
    config: dict[str, Any]
    source_digest: str
    bases: dict[str, str] = field(default_factory=dict)
    executable_digest: str | None = None
