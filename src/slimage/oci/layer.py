"""Deterministic tar layers."""

from __future__ import annotations

import gzip
import hashlib
import io
import os
import tarfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from slimage.errors import EnvironmentSetupError, ValidationError
from slimage.models import Layer

LAYER_MEDIA_TYPE = "application/vnd.oci.image.layer.v1.tar"
LAYER_GZIP_MEDIA_TYPE = "application/vnd.oci.image.layer.v1.tar+gzip"


@dataclass(frozen=True, slots=True)
class LayerFile:
    content: bytes
    mode: int = 0o644


def source_date_epoch() -> int:
    raw = os.environ.get("SOURCE_DATE_EPOCH", "0")
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValidationError(
            "SOURCE_DATE_EPOCH must be an integer.",
            context={"value": raw},
        ) from exc
    if value < 0:
        raise ValidationError("SOURCE_DATE_EPOCH must not be negative.", context={"value": raw})
    return value


def sha256_digest(payload: bytes) -> str:
    return "sha256:" + hashlib.sha256(payload).hexdigest()


def build_layer(files: Mapping[str, LayerFile], *, mtime: int = 0) -> Layer:
    """Pack files into a tar layer whose bytes depend only on names, modes and contents."""
    if not files:
        raise ValidationError("A layer needs at least one file.")
    directories: set[str] = set()
    entries: dict[str, LayerFile] = {}
    for raw_path, layer_file in files.items():
        path = PurePosixPath(raw_path)
        if not path.is_absolute() or ".." in path.parts or path == PurePosixPath("/"):
            raise ValidationError(
                "Layer paths must be absolute file paths.",
                context={"path": raw_path},
            )
        relative = path.relative_to("/")
        entries[relative.as_posix()] = layer_file
        for parent in relative.parents:
            if parent != PurePosixPath("."):
                directories.add(parent.as_posix())

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.USTAR_FORMAT) as archive:
        for name in sorted(directories | set(entries)):
            info = tarfile.TarInfo(name)
            info.uid = info.gid = 0
            info.uname = info.gname = ""
            info.mtime = mtime
            if name in entries:
                layer_file = entries[name]
                info.type = tarfile.REGTYPE
                info.mode = layer_file.mode
                info.size = len(layer_file.content)
                archive.addfile(info, io.BytesIO(layer_file.content))
            else:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                archive.addfile(info)
    blob = buffer.getvalue()
    digest = sha256_digest(blob)
    return Layer(
        digest=digest,
        diff_id=digest,
        size=len(blob),
        media_type=LAYER_MEDIA_TYPE,
        paths=tuple(sorted("/" + name for name in entries)),
        blob=blob,
    )


def layer_from_archive(path: Path) -> Layer:
    """Wrap an existing rootfs archive as a layer without repacking it."""
    blob = Path(path).read_bytes()
    compressed = blob[:2] == b"\x1f\x8b"
    try:
        uncompressed = gzip.decompress(blob) if compressed else blob
        paths = archive_paths(uncompressed)
    except (OSError, tarfile.TarError) as exc:
        raise EnvironmentSetupError(
            "Base system archive is not a readable tar archive.",
            context={"archive": str(path), "error": str(exc)},
        ) from exc
    return Layer(
        digest=sha256_digest(blob),
        diff_id=sha256_digest(uncompressed),
        size=len(blob),
        media_type=LAYER_GZIP_MEDIA_TYPE if compressed else LAYER_MEDIA_TYPE,
        paths=paths,
        blob=blob,
    )


def archive_paths(blob: bytes) -> tuple[str, ...]:
    """Absolute paths of every non-directory entry in a tar archive."""
    with tarfile.open(fileobj=io.BytesIO(blob), mode="r:*") as archive:
        names = {
            "/" + member.name.removeprefix("./").lstrip("/")
            for member in archive.getmembers()
            if not member.isdir()
        }
    return tuple(sorted(names))


__all__ = [
    "LAYER_GZIP_MEDIA_TYPE",
    "LAYER_MEDIA_TYPE",
    "LayerFile",
    "archive_paths",
    "build_layer",
    "layer_from_archive",
    "sha256_digest",
    "source_date_epoch",
]
