"""Lockfile parser, serializer, and builder."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from slimage.errors import LockfileError
from slimage.lockfile.model import LOCKFILE_VERSION, Lockfile
from slimage.models import PipelineConfig, SourceTree


def build_lockfile(
    config: PipelineConfig,
    source: SourceTree,
    *,
    base_digests: dict[str, str] | None = None,
    executable_digest: str | None = None,
) -> Lockfile:
    bases = {
        "builder": str(config.builder.base),
        "runtime": str(config.runtime.base),
    }
    for role, digest in sorted((base_digests or {}).items()):
        bases[f"{role}_digest"] = digest
    return Lockfile(
        version=LOCKFILE_VERSION,
        binary_name=config.binary_name,
        config_digest=config.digest(),
        config=config.to_payload(),
        source_digest=source.digest(),
        bases=bases,
        executable_digest=executable_digest,
    )


def serialize_lockfile(lockfile: Lockfile) -> str:
    payload: dict[str, Any] = {
        "version": lockfile.version,
        "binary_name": lockfile.binary_name,
        "config_digest": lockfile.config_digest,
        "config": lockfile.config,
        "source_digest": lockfile.source_digest,
        "bases": dict(sorted(lockfile.bases.items())),
        "executable_digest": lockfile.executable_digest,
    }
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def parse_lockfile(raw: str) -> Lockfile:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockfileError("Invalid lockfile JSON.", hint=str(exc)) from exc

    if not isinstance(payload, dict):
        raise LockfileError("Invalid lockfile payload type.")

    version = payload.get("version")
    if version != LOCKFILE_VERSION:
        raise LockfileError(
            "Unsupported lockfile version.",
            hint="Regenerate the lockfile with this version of slimage.",
            context={"version": str(version)},
        )
    executable_digest = payload.get("executable_digest")
    if executable_digest is not None and not isinstance(executable_digest, str):
        raise LockfileError("Invalid lockfile `executable_digest` value.")
    bases = _required_dict(payload, "bases")
    if not all(isinstance(value, str) for value in bases.values()):
        raise LockfileError("Invalid lockfile `bases` value.")
    return Lockfile(
        version=version,
        binary_name=_required_str(payload, "binary_name"),
        config_digest=_required_str(payload, "config_digest"),
        config=_required_dict(payload, "config"),
        source_digest=_required_str(payload, "source_digest"),
        bases=bases,
        executable_digest=executable_digest,
    )


def read_lockfile(path: str | Path) -> Lockfile:
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Lockfile does not exist.",
            hint="Run `slimage lock` (or Recipe.lock()) before building in frozen mode.",
            context={"path": str(lock_path)},
        ) from exc
    return parse_lockfile(raw)


def write_lockfile(lockfile: Lockfile, path: str | Path) -> Path:
    lock_path = Path(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.write_text(serialize_lockfile(lockfile), encoding="utf-8")
    return lock_path


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _required_dict(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value
