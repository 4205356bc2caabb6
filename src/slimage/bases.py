"""Local store of base system root filesystems."""

from __future__ import annotations

import hashlib
from pathlib import Path

from slimage.errors import EnvironmentSetupError
from slimage.models import BaseImageRef

ARCHIVE_NAMES = ("rootfs.tar", "rootfs.tar.gz")


class BaseImageStore:
    """Resolves ``name:version`` references to ``<root>/<name>/<version>/rootfs.tar``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def resolve(self, ref: BaseImageRef) -> Path:
        entry = self.root / ref.name / ref.version
        for archive_name in ARCHIVE_NAMES:
            candidate = entry / archive_name
            if candidate.is_file():
                return candidate
        raise EnvironmentSetupError(
            "Base image is not available.",
            hint="Export the base image rootfs into the store before building.",
            context={
                "operation": "resolve_base",
                "base": str(ref),
                "expected": str(entry / ARCHIVE_NAMES[0]),
            },
        )

    def digest(self, ref: BaseImageRef) -> str:
        return hashlib.sha256(self.resolve(ref).read_bytes()).hexdigest()

    def add(self, ref: BaseImageRef, archive: bytes) -> Path:
        entry = self.root / ref.name / ref.version
        entry.mkdir(parents=True, exist_ok=True)
        path = entry / ARCHIVE_NAMES[0]
        path.write_bytes(archive)
        return path


__all__ = ["ARCHIVE_NAMES", "BaseImageStore"]
