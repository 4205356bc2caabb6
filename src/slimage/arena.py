"""Ephemeral builder environment.

The builder environment is a throwaway arena: a private root filesystem that
the builder stage seeds from its base image, installs toolchain packages into,
and compiles the source tree inside. Nothing in it is ever shipped. The one
narrow crossing point is :meth:`BuilderEnvironment.extract`, which reads a
single named file out of the frozen arena.
"""

from __future__ import annotations

import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from types import TracebackType
from typing import Self

from slimage.errors import AssemblyError, EnvironmentSetupError, ValidationError
from slimage.models import SourceTree


class BuilderEnvironment:
    def __init__(self, name: str, *, work_root: str | Path | None = None) -> None:
        if not name:
            raise ValidationError("Builder environments require a stage name.")
        self.name = name
        self._work_root = Path(work_root) if work_root is not None else None
        self._root: Path | None = None
        self._frozen = False
        self._discarded = False

    def __enter__(self) -> Self:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.discard()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def rootfs(self) -> Path:
        return self._require_root() / "rootfs"

    def open(self) -> None:
        if self._root is not None:
            return
        if self._discarded:
            raise ValidationError(
                "Builder environment was already discarded.",
                context={"stage": self.name},
            )
        if self._work_root is not None:
            self._work_root.mkdir(parents=True, exist_ok=True)
        self._root = Path(
            tempfile.mkdtemp(
                prefix=f"slimage-{self.name}-",
                dir=str(self._work_root) if self._work_root is not None else None,
            )
        )
        (self._root / "rootfs").mkdir()

    def seed(self, rootfs_archive: Path) -> None:
        """Unpack a base system archive into the arena root filesystem."""
        self._ensure_writable("seed")
        try:
            with tarfile.open(rootfs_archive, mode="r:*") as archive:
                archive.extractall(self.rootfs, filter="tar")
        except (tarfile.TarError, OSError) as exc:
            raise EnvironmentSetupError(
                "Base system archive could not be unpacked.",
                hint="Re-export the base image rootfs archive.",
                context={"stage": self.name, "archive": str(rootfs_archive), "error": str(exc)},
            ) from exc

    def host_path(self, guest_path: str) -> Path:
        """Map an absolute in-environment path onto the host arena directory."""
        guest = PurePosixPath(guest_path)
        if not guest.is_absolute():
            raise ValidationError(
                "Builder environment paths must be absolute.",
                context={"stage": self.name, "path": guest_path},
            )
        if ".." in guest.parts:
            raise ValidationError(
                "Builder environment paths may not traverse upwards.",
                context={"stage": self.name, "path": guest_path},
            )
        return self.rootfs.joinpath(*guest.parts[1:])

    def copy_source(self, source: SourceTree, workdir: str) -> Path:
        self._ensure_writable("copy_source")
        destination = self.host_path(workdir)
        destination.mkdir(parents=True, exist_ok=True)
        root = Path(source.root)
        for relative in source.iter_files():
            src = root / relative
            dst = destination / relative
            dst.parent.mkdir(parents=True, exist_ok=True)
            if src.is_symlink():
                dst.symlink_to(src.readlink())
            else:
                shutil.copy2(src, dst)
        return destination

    def freeze(self) -> None:
        self._require_root()
        self._frozen = True

    def extract(self, path: str) -> bytes:
        """Read one regular file out of the environment."""
        if self._discarded or self._root is None:
            raise AssemblyError(
                "Builder environment is no longer available.",
                hint="Extract artifacts before the builder stage is discarded.",
                context={"stage": self.name, "path": path},
            )
        host = self.host_path(path).resolve()
        if not host.is_relative_to(self.rootfs.resolve()):
            raise AssemblyError(
                "Artifact path resolves outside the builder environment.",
                context={"stage": self.name, "path": path},
            )
        if not host.is_file():
            raise AssemblyError(
                "Artifact does not exist in the builder stage.",
                hint="Check that the copied binary name matches what the build produced.",
                context={"stage": self.name, "path": path},
            )
        return host.read_bytes()

    def discard(self) -> None:
        if self._root is not None:
            shutil.rmtree(self._root, ignore_errors=True)
        self._root = None
        self._discarded = True

    def _require_root(self) -> Path:
        if self._root is None:
            raise ValidationError(
                "Builder environment is not open.",
                hint="Use the environment as a context manager.",
                context={"stage": self.name},
            )
        return self._root

    def _ensure_writable(self, operation: str) -> None:
        self._require_root()
        if self._frozen:
            raise ValidationError(
                "Builder environment is frozen.",
                hint="Builder stages are read-only once compilation completes.",
                context={"stage": self.name, "operation": operation},
            )


__all__ = ["BuilderEnvironment"]
