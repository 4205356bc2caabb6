from collections.abc import Callable
from pathlib import Path

import pytest

from slimage.errors import LockfileError
from slimage.lockfile import (
    LOCKFILE_VERSION,
    build_lockfile,
    parse_lockfile,
    read_lockfile,
    serialize_lockfile,
)
from slimage.models import SourceTree
from slimage.recipe import Recipe


def test_lockfile_roundtrip_parser_serializer(
    make_recipe: Callable[..., Recipe],
    source_tree: SourceTree,
) -> None:
    lock = build_lockfile(
        make_recipe().config(),
        source_tree,
        base_digests={"builder": "1" * 64, "runtime": "2" * 64},
        executable_digest="3" * 64,
    )
    assert parse_lockfile(serialize_lockfile(lock)) == lock
    assert lock.bases["runtime_digest"] == "2" * 64


def test_recipe_lock_writes_config_and_source_digests(
    make_recipe: Callable[..., Recipe],
    source_tree: SourceTree,
    tmp_path: Path,
) -> None:
    recipe = make_recipe()
    lock_path = recipe.lock(source_tree)

    assert lock_path == tmp_path / "build" / "overmind.lock"
    lock = read_lockfile(lock_path)
    assert lock.version == LOCKFILE_VERSION
    assert lock.binary_name == "overmind"
    assert lock.config_digest == recipe.config().digest()
    assert lock.source_digest == source_tree.digest()
    assert lock.config["builder"]["packages"] == ["musl-dev"]
    assert lock.bases == {"builder": "rust:1.72-alpine3.17", "runtime": "alpine:3.17"}
    assert lock.executable_digest is None


def test_read_missing_lockfile_fails(tmp_path: Path) -> None:
    with pytest.raises(LockfileError) as excinfo:
        read_lockfile(tmp_path / "missing.lock")
    assert excinfo.value.hint is not None


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[]",
        '{"version": 99}',
        '{"version": 1, "binary_name": "overmind"}',
    ],
)
def test_parse_rejects_invalid_lockfiles(raw: str) -> None:
    with pytest.raises(LockfileError):
        parse_lockfile(raw)
