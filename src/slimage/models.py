"""Core typed dataclasses for pipeline configuration and build artifacts."""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Literal, get_args

from slimage.errors import ValidationError
from slimage.policy import Policy

Arch = Literal["x86_64", "aarch64"]
PackageManager = Literal["apk", "apt"]

DEFAULT_SOURCE_EXCLUDE = (".git", "target")
DEFAULT_RUNTIME_DIR = "/usr/local/bin"
DEFAULT_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"


def command_resolves(command: tuple[str, ...], target_path: str, *, path: str = DEFAULT_PATH) -> bool:
    """Return True when ``command[0]`` runs the file at ``target_path``."""
    if not command or not command[0]:
        return False
    program = command[0]
    if "/" in program:
        return PurePosixPath(program) == PurePosixPath(target_path)
    target = PurePosixPath(target_path)
    if program != target.name:
        return False
    return str(target.parent) in path.split(":")


@dataclass(frozen=True, slots=True)
class BaseImageRef:
    name: str
    version: str

    def __post_init__(self) -> None:
        if not self.name or not self.version:
            raise ValidationError(
                "Base image references need both a name and a version.",
                hint="Use the `name:version` form, e.g. `alpine:3.17`.",
                context={"name": self.name, "version": self.version},
            )

    @classmethod
    def parse(cls, ref: str) -> BaseImageRef:
        name, sep, version = ref.rpartition(":")
        if not sep or "/" in version:
            raise ValidationError(
                "Base image reference is missing a version tag.",
                hint="Pin the base image, e.g. `rust:1.72-alpine3.17`.",
                context={"ref": ref},
            )
        return cls(name=name, version=version)

    def __str__(self) -> str:
        return f"{self.name}:{self.version}"


@dataclass(frozen=True, slots=True)
class SourceTree:
    """Read-only input to compilation, supplied at build invocation time."""

    root: Path
    exclude: tuple[str, ...] = DEFAULT_SOURCE_EXCLUDE

    def __post_init__(self) -> None:
        if not Path(self.root).is_dir():
            raise ValidationError(
                "Source tree root is not a directory.",
                context={"root": str(self.root)},
            )

    def iter_files(self) -> Iterator[str]:
        root = Path(self.root)
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in self.exclude)
            current = Path(dirpath)
            for dirname in dirnames:
                if (current / dirname).is_symlink():
                    yield (current / dirname).relative_to(root).as_posix()
            for filename in sorted(filenames):
                if filename in self.exclude:
                    continue
                yield (current / filename).relative_to(root).as_posix()

    def has(self, relative: str) -> bool:
        return (Path(self.root) / relative).exists()

    def digest(self) -> str:
        hasher = hashlib.sha256()
        root = Path(self.root)
        for relative in sorted(self.iter_files()):
            path = root / relative
            if path.is_symlink():
                entry = f"L {relative} {os.readlink(path)}"
            else:
                executable = "x" if path.stat().st_mode & 0o111 else "-"
                content = hashlib.sha256(path.read_bytes()).hexdigest()
                entry = f"F {relative} {executable} {content}"
            hasher.update(entry.encode("utf-8"))
            hasher.update(b"\n")
        return hasher.hexdigest()


@dataclass(frozen=True, slots=True)
class BuilderConfig:
    base: BaseImageRef
    packages: tuple[str, ...] = ()
    workdir: str = "/usr/src/app"
    toolchain_bin_dir: str = "/usr/local/cargo/bin"
    stage_name: str = "builder"
    toolchain: str = "rust"
    script: tuple[str, ...] = ()
    flags: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    package_manager: PackageManager = "apk"


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    base: BaseImageRef
    target_path: str
    command: tuple[str, ...]
    labels: Mapping[str, str] = field(default_factory=dict)
    copy_from: str = "builder"


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    binary_name: str
    builder: BuilderConfig
    runtime: RuntimeConfig
    arch: Arch = "x86_64"
    reproducible: bool = True
    tag: str | None = None

    def __post_init__(self) -> None:
        if not self.binary_name or "/" in self.binary_name:
            raise ValidationError(
                "Binary name must be a non-empty file name.",
                context={"binary_name": self.binary_name},
            )
        if self.arch not in get_args(Arch):
            raise ValidationError(
                "Unsupported target architecture.",
                hint=f"Supported architectures: {', '.join(get_args(Arch))}.",
                context={"pipeline": self.binary_name, "arch": str(self.arch)},
            )
        for key in ("workdir", "toolchain_bin_dir"):
            value = getattr(self.builder, key)
            builder_path = PurePosixPath(value)
            if not builder_path.is_absolute() or ".." in builder_path.parts:
                raise ValidationError(
                    "Builder paths must be absolute.",
                    hint="Use an absolute container path without `..` segments.",
                    context={"pipeline": self.binary_name, key: value},
                )
        target = PurePosixPath(self.runtime.target_path)
        if not target.is_absolute() or ".." in target.parts:
            raise ValidationError(
                "Runtime target path must be absolute.",
                context={"pipeline": self.binary_name, "target_path": self.runtime.target_path},
            )
        if not command_resolves(self.runtime.command, self.runtime.target_path):
            raise ValidationError(
                "Default command does not invoke the copied executable.",
                hint=(
                    f"Use `{target.name}` (resolved through PATH) or `{target}` as the "
                    "first command argument."
                ),
                context={
                    "pipeline": self.binary_name,
                    "command": json.dumps(list(self.runtime.command)),
                    "target_path": self.runtime.target_path,
                },
            )

    @property
    def source_path(self) -> str:
        return str(PurePosixPath(self.builder.toolchain_bin_dir) / self.binary_name)

    @property
    def image_tag(self) -> str:
        return self.tag or f"{self.binary_name}:latest"

    def to_payload(self) -> dict[str, object]:
        return {
            "binary_name": self.binary_name,
            "arch": self.arch,
            "reproducible": self.reproducible,
            "tag": self.image_tag,
            "builder": {
                "base": str(self.builder.base),
                "packages": sorted(self.builder.packages),
                "package_manager": self.builder.package_manager,
                "workdir": self.builder.workdir,
                "toolchain_bin_dir": self.builder.toolchain_bin_dir,
                "stage_name": self.builder.stage_name,
                "toolchain": self.builder.toolchain,
                "script": list(self.builder.script),
                "flags": list(self.builder.flags),
                "env": dict(sorted(self.builder.env.items())),
            },
            "runtime": {
                "base": str(self.runtime.base),
                "target_path": self.runtime.target_path,
                "command": list(self.runtime.command),
                "labels": dict(sorted(self.runtime.labels.items())),
                "copy_from": self.runtime.copy_from,
            },
        }

    def digest(self) -> str:
        canonical = json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class CompiledExecutable:
    name: str
    path: str
    digest: str
    size: int


@dataclass(frozen=True, slots=True)
class Layer:
    digest: str
    diff_id: str
    size: int
    media_type: str
    paths: tuple[str, ...] = ()
    blob: bytes = field(default=b"", repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class RuntimeImage:
    binary_name: str
    base: BaseImageRef
    layers: tuple[Layer, ...]
    target_path: str
    command: tuple[str, ...]
    labels: Mapping[str, str] = field(default_factory=dict)
    arch: Arch = "x86_64"

    @property
    def base_layer(self) -> Layer:
        return self.layers[0]

    @property
    def added_layers(self) -> tuple[Layer, ...]:
        return self.layers[1:]

    @property
    def added_paths(self) -> tuple[str, ...]:
        paths: list[str] = []
        for layer in self.added_layers:
            paths.extend(layer.paths)
        return tuple(sorted(paths))

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(sorted({path for layer in self.layers for path in layer.paths}))


@dataclass(frozen=True, slots=True)
class BuildRequest:
    config: PipelineConfig
    source: SourceTree
    output_dir: Path
    policy: Policy = field(default_factory=Policy)
    expected_executable_digest: str | None = None


@dataclass(slots=True)
class PipelineResult:
    binary_name: str
    backend: str
    image_ref: str
    image: RuntimeImage | None = None
    layout_path: Path | None = None
    report_path: Path | None = None
    executable: CompiledExecutable | None = None
    cache_hit: bool = False


__all__ = [
    "Arch",
    "BaseImageRef",
    "BuildRequest",
    "BuilderConfig",
    "CompiledExecutable",
    "command_resolves",
    "DEFAULT_PATH",
    "DEFAULT_RUNTIME_DIR",
    "DEFAULT_SOURCE_EXCLUDE",
    "Layer",
    "PackageManager",
    "PipelineConfig",
    "PipelineResult",
    "RuntimeConfig",
    "RuntimeImage",
    "SourceTree",
]
