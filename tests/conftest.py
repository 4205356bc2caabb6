"""Shared test fixtures."""

from __future__ import annotations

import io
import tarfile
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from slimage.backends import LocalBackend
from slimage.bases import BaseImageStore
from slimage.models import BaseImageRef, SourceTree
from slimage.packages import RepositoryInstaller
from slimage.recipe import Recipe

BUILDER_BASE = "rust:1.72-alpine3.17"
RUNTIME_BASE = "alpine:3.17"

# Writes a shell script named after the configured binary; it prints the
# SOURCE_DATE_EPOCH it was built with so builds are byte-for-byte stable.
BUILD_SCRIPT = (
    'printf "#!/bin/sh\\necho %s built at %s\\n" "$SLIMAGE_BINARY" "$SOURCE_DATE_EPOCH" '
    '> "$SLIMAGE_BIN_DIR/$SLIMAGE_BINARY" && chmod 755 "$SLIMAGE_BIN_DIR/$SLIMAGE_BINARY"'
)


def make_tar(files: Mapping[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        for name, content in sorted(files.items()):
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o755 if name.startswith(("bin/", "usr/bin/")) else 0o644
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


BUILDER_FILES = {
    "etc/alpine-release": b"3.17.0\n",
    "usr/local/cargo/bin/rustc": b"not really rustc\n",
    "usr/local/rustup/toolchain.txt": b"1.72\n",
}
RUNTIME_FILES = {
    "etc/alpine-release": b"3.17.0\n",
    "bin/busybox": b"busybox\n",
    "lib/ld-musl-x86_64.so.1": b"musl loader\n",
}


@pytest.fixture
def store(tmp_path: Path) -> BaseImageStore:
    bases = BaseImageStore(tmp_path / "bases")
    bases.add(BaseImageRef.parse(BUILDER_BASE), make_tar(BUILDER_FILES))
    bases.add(BaseImageRef.parse(RUNTIME_BASE), make_tar(RUNTIME_FILES))
    return bases


@pytest.fixture
def package_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "musl-dev.tar").write_bytes(
        make_tar(
            {
                "usr/lib/libc.a": b"static libc\n",
                "usr/include/stdio.h": b"/* stdio */\n",
            }
        )
    )
    return repo


@pytest.fixture
def installer(package_repo: Path) -> RepositoryInstaller:
    return RepositoryInstaller(package_repo)


@pytest.fixture
def source_tree(tmp_path: Path) -> SourceTree:
    root = tmp_path / "src"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.toml").write_text(
        '[package]\nname = "overmind"\nversion = "0.1.0"\n', encoding="utf-8"
    )
    (root / "src" / "main.rs").write_text('fn main() { println!("hi"); }\n', encoding="utf-8")
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")
    return SourceTree(root=root)


@pytest.fixture
def local_backend(store: BaseImageStore, installer: RepositoryInstaller, tmp_path: Path) -> LocalBackend:
    return LocalBackend(store=store, installer=installer, work_root=tmp_path / "work")


@pytest.fixture
def make_recipe(tmp_path: Path) -> Callable[..., Recipe]:
    def factory(name: str = "overmind", *, script: str = BUILD_SCRIPT) -> Recipe:
        return (
            Recipe(name, build_dir=tmp_path / "build")
            .builder(BUILDER_BASE, workdir=f"/usr/src/{name}")
            .install("musl-dev")
            .script("sh", "-c", script)
            .runtime(RUNTIME_BASE)
            .copy_to(f"/usr/local/bin/{name}")
            .cmd(name)
        )

    return factory
