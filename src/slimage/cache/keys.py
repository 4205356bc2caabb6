"""Cache key derivation for compiled executables."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class BuildCacheInput:
    """Everything that can change the bytes the build collaborator emits."""

    source_digest: str
    builder_base: str
    toolchain: str
    binary: str
    command: tuple[str, ...] = ()
    packages: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    arch: str = "x86_64"
    toolchain_identity: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "arch": self.arch,
            "binary": self.binary,
            "builder_base": self.builder_base,
            "command": list(self.command),
            "env": dict(sorted(self.env.items())),
            "packages": sorted(self.packages),
            "source_digest": self.source_digest,
            "toolchain": self.toolchain,
            "toolchain_identity": dict(sorted(self.toolchain_identity.items())),
        }


def cache_key(inputs: BuildCacheInput) -> str:
    canonical = json.dumps(inputs.to_payload(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
