import json
from pathlib import Path

import pytest

from slimage.cache import BuildCacheInput, BuildCacheStore, cache_key
from slimage.errors import ReproducibilityError


def _inputs(**overrides: object) -> BuildCacheInput:
    settings: dict[str, object] = {
        "source_digest": "a" * 64,
        "builder_base": "rust:1.72-alpine3.17",
        "toolchain": "rust",
        "binary": "overmind",
        "command": ("cargo", "install", "--path", "/usr/src/overmind", "--root", "/usr/local/cargo"),
        "packages": ("musl-dev",),
    }
    settings.update(overrides)
    return BuildCacheInput(**settings)  # type: ignore[arg-type]


def test_cache_key_is_stable_across_package_order() -> None:
    first = _inputs(packages=("musl-dev", "openssl-dev"))
    second = _inputs(packages=("openssl-dev", "musl-dev"))
    assert cache_key(first) == cache_key(second)


def test_cache_key_changes_with_source_and_command() -> None:
    base = cache_key(_inputs())
    assert cache_key(_inputs(source_digest="b" * 64)) != base
    assert cache_key(_inputs(command=("cargo", "install", "--locked"))) != base
    assert cache_key(_inputs(arch="aarch64")) != base


def test_cache_key_changes_with_toolchain_identity() -> None:
    stable = {"tool": "cargo", "path": "/usr/local/cargo/bin/cargo", "version": "cargo 1.72.0"}
    nightly = {**stable, "version": "cargo 1.74.0-nightly"}
    assert cache_key(_inputs(toolchain_identity=stable)) != cache_key(_inputs())
    assert cache_key(_inputs(toolchain_identity=stable)) != cache_key(_inputs(toolchain_identity=nightly))


def test_cache_roundtrip(tmp_path: Path) -> None:
    store = BuildCacheStore(tmp_path / "cache")
    inputs = _inputs()
    assert store.load(key=cache_key(inputs), expected_inputs=inputs) is None

    key = store.save(inputs=inputs, executable=b"\x7fELF overmind")

    assert key == cache_key(inputs)
    assert store.load(key=key, expected_inputs=inputs) == b"\x7fELF overmind"


def test_cache_detects_tampered_executable(tmp_path: Path) -> None:
    store = BuildCacheStore(tmp_path / "cache")
    inputs = _inputs()
    key = store.save(inputs=inputs, executable=b"\x7fELF overmind")
    (tmp_path / "cache" / key / "executable.bin").write_bytes(b"\x7fELF evil")

    with pytest.raises(ReproducibilityError):
        store.load(key=key, expected_inputs=inputs)


def test_cache_detects_mismatched_manifest_inputs(tmp_path: Path) -> None:
    store = BuildCacheStore(tmp_path / "cache")
    inputs = _inputs()
    key = store.save(inputs=inputs, executable=b"bin")
    manifest_path = tmp_path / "cache" / key / "manifest.json"
    manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    manifest["inputs"]["binary"] = "knowbase"
    manifest_path.write_text(json.dumps(manifest), encoding="utf-8")

    with pytest.raises(ReproducibilityError):
        store.load(key=key, expected_inputs=inputs)


def test_cache_rejects_invalid_manifest(tmp_path: Path) -> None:
    store = BuildCacheStore(tmp_path / "cache")
    inputs = _inputs()
    key = store.save(inputs=inputs, executable=b"bin")
    (tmp_path / "cache" / key / "manifest.json").write_text("{", encoding="utf-8")

    with pytest.raises(ReproducibilityError):
        store.load(key=key, expected_inputs=inputs)
