"""OCI image layout writer and reader.

The layout is staged in a temporary sibling directory and renamed into place
once every blob is written, so readers observe either a complete image or no
image at all.
"""

from __future__ import annotations

import gzip
import hashlib
import json
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from slimage.errors import ReproducibilityError, ValidationError
from slimage.models import DEFAULT_PATH, RuntimeImage
from slimage.oci.layer import archive_paths, sha256_digest

OCI_LAYOUT_VERSION = "1.0.0"
INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
CONFIG_MEDIA_TYPE = "application/vnd.oci.image.config.v1+json"
REF_NAME_ANNOTATION = "org.opencontainers.image.ref.name"

OCI_ARCH: dict[str, str] = {
    "x86_64": "amd64",
    "aarch64": "arm64",
}


@dataclass(frozen=True, slots=True)
class LayoutWrite:
    path: Path
    manifest_digest: str
    config_digest: str


@dataclass(frozen=True, slots=True)
class LayoutInspection:
    manifest_digest: str
    ref_name: str | None
    architecture: str
    command: tuple[str, ...]
    labels: dict[str, str] = field(default_factory=dict)
    layers: tuple[tuple[str, ...], ...] = ()

    @property
    def added_paths(self) -> tuple[str, ...]:
        return tuple(sorted(path for layer in self.layers[1:] for path in layer))


def image_config(image: RuntimeImage) -> dict[str, Any]:
    history = [{"created_by": f"FROM {image.base}"}]
    history.extend(
        {"created_by": f"COPY {image.target_path}"} for _ in image.added_layers
    )
    return {
        "architecture": OCI_ARCH[image.arch],
        "os": "linux",
        "config": {
            "Cmd": list(image.command),
            "Env": [f"PATH={DEFAULT_PATH}"],
            "Labels": dict(sorted(image.labels.items())),
        },
        "rootfs": {
            "type": "layers",
            "diff_ids": [layer.diff_id for layer in image.layers],
        },
        "history": history,
    }


def image_manifest(image: RuntimeImage) -> tuple[bytes, bytes]:
    """Return the canonical (config, manifest) documents for an image."""
    config_bytes = _canonical(image_config(image))
    manifest = {
        "schemaVersion": 2,
        "mediaType": MANIFEST_MEDIA_TYPE,
        "config": {
            "mediaType": CONFIG_MEDIA_TYPE,
            "digest": sha256_digest(config_bytes),
            "size": len(config_bytes),
        },
        "layers": [
            {"mediaType": layer.media_type, "digest": layer.digest, "size": layer.size}
            for layer in image.layers
        ],
        "annotations": dict(sorted(image.labels.items())),
    }
    return config_bytes, _canonical(manifest)


def manifest_digest(image: RuntimeImage) -> str:
    _, manifest_bytes = image_manifest(image)
    return sha256_digest(manifest_bytes)


def write_oci_layout(image: RuntimeImage, destination: str | Path, *, ref_name: str) -> LayoutWrite:
    target = Path(destination)
    target.parent.mkdir(parents=True, exist_ok=True)
    for layer in image.layers:
        if not layer.blob:
            raise ValidationError(
                "Layer content is not loaded.",
                context={"digest": layer.digest},
            )
    config_bytes, manifest_bytes = image_manifest(image)
    manifest_sha = sha256_digest(manifest_bytes)

    staging = Path(tempfile.mkdtemp(prefix=f".{target.name}-", dir=str(target.parent)))
    try:
        blobs_dir = staging / "blobs" / "sha256"
        blobs_dir.mkdir(parents=True)
        for layer in image.layers:
            _write_blob(blobs_dir, layer.blob)
        _write_blob(blobs_dir, config_bytes)
        _write_blob(blobs_dir, manifest_bytes)
        index = {
            "schemaVersion": 2,
            "mediaType": INDEX_MEDIA_TYPE,
            "manifests": [
                {
                    "mediaType": MANIFEST_MEDIA_TYPE,
                    "digest": manifest_sha,
                    "size": len(manifest_bytes),
                    "annotations": {REF_NAME_ANNOTATION: ref_name},
                }
            ],
        }
        (staging / "index.json").write_bytes(_canonical(index))
        (staging / "oci-layout").write_bytes(
            _canonical({"imageLayoutVersion": OCI_LAYOUT_VERSION})
        )
        if target.exists():
            shutil.rmtree(target)
        os.replace(staging, target)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    return LayoutWrite(
        path=target,
        manifest_digest=manifest_sha,
        config_digest=sha256_digest(config_bytes),
    )


def read_oci_layout(path: str | Path) -> LayoutInspection:
    root = Path(path)
    index = _read_json(root / "index.json")
    manifests = index.get("manifests")
    if not isinstance(manifests, list) or len(manifests) != 1:
        raise ValidationError(
            "OCI layout must reference exactly one manifest.",
            context={"path": str(root)},
        )
    descriptor = manifests[0]
    manifest_sha = descriptor["digest"]
    manifest = json.loads(_read_blob(root, manifest_sha))
    config = json.loads(_read_blob(root, manifest["config"]["digest"]))

    layers: list[tuple[str, ...]] = []
    for layer in manifest["layers"]:
        blob = _read_blob(root, layer["digest"])
        if layer["mediaType"].endswith("+gzip"):
            blob = gzip.decompress(blob)
        layers.append(archive_paths(blob))

    image_config_section = config.get("config", {})
    return LayoutInspection(
        manifest_digest=manifest_sha,
        ref_name=descriptor.get("annotations", {}).get(REF_NAME_ANNOTATION),
        architecture=config.get("architecture", ""),
        command=tuple(image_config_section.get("Cmd") or ()),
        labels=dict(image_config_section.get("Labels") or {}),
        layers=tuple(layers),
    )


def _canonical(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _write_blob(blobs_dir: Path, payload: bytes) -> Path:
    path = blobs_dir / hashlib.sha256(payload).hexdigest()
    path.write_bytes(payload)
    return path


def _read_blob(root: Path, digest: str) -> bytes:
    algorithm, _, hexdigest = digest.partition(":")
    if algorithm != "sha256" or not hexdigest:
        raise ValidationError("Unsupported blob digest.", context={"digest": digest})
    payload = (root / "blobs" / "sha256" / hexdigest).read_bytes()
    if hashlib.sha256(payload).hexdigest() != hexdigest:
        raise ReproducibilityError(
            "OCI blob content does not match its digest.",
            hint="The image layout was modified after it was written; rebuild it.",
            context={"path": str(root), "digest": digest},
        )
    return payload


def _read_json(path: Path) -> dict[str, Any]:
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError) as exc:
        raise ValidationError(
            "OCI layout index is missing or invalid.",
            context={"path": str(path)},
        ) from exc
    if not isinstance(parsed, dict):
        raise ValidationError("OCI layout index has invalid structure.", context={"path": str(path)})
    return parsed
