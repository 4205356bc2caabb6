"""Content-addressed executable cache.

Each entry lives in ``<root>/<key>/`` as ``executable.bin`` next to a
``manifest.json`` recording the key, the canonical inputs and the executable
digest. Any disagreement between the three on load is treated as tampering.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from slimage.cache.keys import BuildCacheInput, cache_key
from slimage.errors import ReproducibilityError

EXECUTABLE_NAME = "executable.bin"
MANIFEST_NAME = "manifest.json"


@dataclass(slots=True)
class BuildCacheStore:
    root: Path

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        self.root.mkdir(parents=True, exist_ok=True)

    def load(self, *, key: str, expected_inputs: BuildCacheInput) -> bytes | None:
        """Return cached executable bytes, ``None`` on a miss."""
        entry = self.root / key
        if not (entry / EXECUTABLE_NAME).is_file() or not (entry / MANIFEST_NAME).is_file():
            return None

        manifest = _read_manifest(entry / MANIFEST_NAME, key=key)
        executable = (entry / EXECUTABLE_NAME).read_bytes()
        mismatched = [
            name
            for name, recorded, actual in (
                ("key", manifest.get("key"), key),
                ("inputs", manifest.get("inputs"), expected_inputs.to_payload()),
                ("executable_sha256", manifest.get("executable_sha256"), _sha256(executable)),
            )
            if recorded != actual
        ]
        if mismatched:
            raise ReproducibilityError(
                f"Cache entry does not match its manifest ({', '.join(mismatched)}).",
                hint=f"Delete {entry} and rebuild.",
                context={"operation": "cache_load", "key": key},
            )
        return executable

    def save(self, *, inputs: BuildCacheInput, executable: bytes) -> str:
        key = cache_key(inputs)
        entry = self.root / key
        entry.mkdir(parents=True, exist_ok=True)
        _write_atomic(entry / EXECUTABLE_NAME, executable)
        manifest = {
            "executable_sha256": _sha256(executable),
            "inputs": inputs.to_payload(),
            "key": key,
        }
        _write_atomic(
            entry / MANIFEST_NAME,
            (json.dumps(manifest, indent=2, sort_keys=True) + "\n").encode("utf-8"),
        )
        return key


def _read_manifest(path: Path, *, key: str) -> dict[str, Any]:
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ReproducibilityError(
            "Cache manifest is not valid JSON.",
            hint=f"Delete {path.parent} and rebuild.",
            context={"operation": "cache_load", "key": key},
        ) from exc
    if not isinstance(parsed, dict):
        raise ReproducibilityError(
            "Cache manifest must be a JSON object.",
            hint=f"Delete {path.parent} and rebuild.",
            context={"operation": "cache_load", "key": key},
        )
    return parsed


def _write_atomic(path: Path, data: bytes) -> None:
    temp_path = path.with_name(path.name + ".tmp")
    temp_path.write_bytes(data)
    os.replace(temp_path, path)


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
