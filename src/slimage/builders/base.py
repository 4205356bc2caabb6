"""Typed interfaces for toolchain build collaborators."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True, slots=True)
class BuildSpec:
    name: str
    source: Path
    bin_dir: Path
    reproducible: bool = True
    locked: bool = False
    flags: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    metadata_dir: Path | None = None


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    builder: str
    command: tuple[str, ...]
    bin_dir: Path
    produced: tuple[str, ...] = ()
    metadata_path: Path | None = None

    @property
    def executable_path(self) -> Path | None:
        """Path of the first produced executable, if any."""
        if not self.produced:
            return None
        return self.bin_dir / self.produced[0]


class Builder(Protocol):
    name: str
    default_bin_dir: str
    lockfiles: tuple[str, ...]

    def command(self, spec: BuildSpec) -> tuple[str, ...]:
        """Return the argv that compiles and installs the executable."""

    def environment(self, spec: BuildSpec) -> dict[str, str]:
        """Return environment variables the command needs beyond ``spec.env``."""

    def identity(self, spec: BuildSpec) -> dict[str, str]:
        """Describe the host toolchain ``build`` would run, for cache keys."""

    def build(self, spec: BuildSpec) -> BuildArtifact:
        """Compile source and install the executable into ``spec.bin_dir``."""
