"""Fluent pipeline declarations."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Self

from slimage.backends import PipelineBackend
from slimage.bases import BaseImageStore
from slimage.builders import TOOLCHAINS
from slimage.compiler import DockerfileEmission, emit_dockerfile
from slimage.errors import ValidationError
from slimage.lockfile import build_lockfile, write_lockfile
from slimage.models import (
    DEFAULT_RUNTIME_DIR,
    Arch,
    BaseImageRef,
    BuilderConfig,
    PackageManager,
    PipelineConfig,
    PipelineResult,
    RuntimeConfig,
    SourceTree,
)
from slimage.observability import StructuredLogger
from slimage.pipeline import base_digests, build_pipeline, default_lock_path
from slimage.policy import Policy
from slimage.provenance import validate_labels

RUST_BIN_DIR = "/usr/local/cargo/bin"
SCRIPT_BIN_DIR = "/usr/local/bin"


@dataclass(slots=True)
class Recipe:
    """Declares one two-stage pipeline for a single executable."""

    binary_name: str
    build_dir: Path = field(default_factory=lambda: Path("build"))
    arch: Arch = "x86_64"
    reproducible: bool = True
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    _builder_base: BaseImageRef | None = field(init=False, default=None, repr=False)
    _runtime_base: BaseImageRef | None = field(init=False, default=None, repr=False)
    _workdir: str | None = field(init=False, default=None, repr=False)
    _stage_name: str = field(init=False, default="builder", repr=False)
    _package_manager: PackageManager = field(init=False, default="apk", repr=False)
    _packages: list[str] = field(init=False, default_factory=list, repr=False)
    _toolchain: str = field(init=False, default="rust", repr=False)
    _bin_dir: str | None = field(init=False, default=None, repr=False)
    _script: tuple[str, ...] = field(init=False, default=(), repr=False)
    _flags: tuple[str, ...] = field(init=False, default=(), repr=False)
    _env: dict[str, str] = field(init=False, default_factory=dict, repr=False)
    _target_path: str | None = field(init=False, default=None, repr=False)
    _command: tuple[str, ...] | None = field(init=False, default=None, repr=False)
    _labels: dict[str, str] = field(init=False, default_factory=dict, repr=False)
    _tag: str | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.binary_name or "/" in self.binary_name:
            raise ValidationError(
                "Binary name must be a non-empty file name.",
                context={"binary_name": self.binary_name},
            )

    def builder(
        self,
        base: str,
        *,
        workdir: str | None = None,
        stage: str = "builder",
        package_manager: PackageManager = "apk",
    ) -> Self:
        if not stage:
            raise ValidationError("Builder stage name must be non-empty.")
        self._builder_base = BaseImageRef.parse(base)
        self._workdir = workdir
        self._stage_name = stage
        self._package_manager = package_manager
        return self

    def install(self, *packages: str) -> Self:
        if not packages:
            raise ValidationError("install() requires at least one package.")
        for package in packages:
            if not package:
                raise ValidationError("Package names must be non-empty.")
            if package not in self._packages:
                self._packages.append(package)
        return self

    def toolchain(
        self,
        name: str,
        *,
        bin_dir: str | None = None,
        flags: tuple[str, ...] = (),
        env: dict[str, str] | None = None,
    ) -> Self:
        if name not in TOOLCHAINS:
            raise ValidationError(
                "Unknown build toolchain.",
                hint=f"Supported toolchains: {', '.join(TOOLCHAINS)}.",
                context={"toolchain": name},
            )
        self._toolchain = name
        self._bin_dir = bin_dir
        self._flags = tuple(flags)
        self._env = dict(env or {})
        return self

    def script(self, *argv: str, bin_dir: str | None = None, env: dict[str, str] | None = None) -> Self:
        """Build with an arbitrary command instead of a language toolchain.

        The command runs in the copied source directory and must write the
        executable to ``$SLIMAGE_BIN_DIR/$SLIMAGE_BINARY``.
        """
        if not argv:
            raise ValidationError("script() requires a command.")
        self.toolchain("script", bin_dir=bin_dir, env=env)
        self._script = tuple(argv)
        return self

    def runtime(self, base: str) -> Self:
        self._runtime_base = BaseImageRef.parse(base)
        return self

    def copy_to(self, path: str) -> Self:
        if not PurePosixPath(path).is_absolute():
            raise ValidationError(
                "Runtime target path must be absolute.",
                context={"target_path": path},
            )
        self._target_path = path
        return self

    def label(self, key: str, value: str) -> Self:
        self._labels.update(validate_labels({key: value}))
        return self

    def cmd(self, *argv: str) -> Self:
        if not argv:
            raise ValidationError("cmd() requires at least the executable name.")
        self._command = tuple(argv)
        return self

    def tag(self, tag: str) -> Self:
        if not tag:
            raise ValidationError("Image tag must be non-empty.")
        self._tag = tag
        return self

    def config(self) -> PipelineConfig:
        if self._builder_base is None or self._runtime_base is None:
            raise ValidationError(
                "Both a builder base and a runtime base are required.",
                hint="Call .builder('rust:1.72-alpine3.17') and .runtime('alpine:3.17').",
                context={"pipeline": self.binary_name},
            )
        target_path = self._target_path or str(PurePosixPath(DEFAULT_RUNTIME_DIR) / self.binary_name)
        default_bin_dir = SCRIPT_BIN_DIR if self._toolchain == "script" else RUST_BIN_DIR
        return PipelineConfig(
            binary_name=self.binary_name,
            builder=BuilderConfig(
                base=self._builder_base,
                packages=tuple(sorted(self._packages)),
                workdir=self._workdir or f"/usr/src/{self.binary_name}",
                toolchain_bin_dir=self._bin_dir or default_bin_dir,
                stage_name=self._stage_name,
                toolchain=self._toolchain,
                script=self._script,
                flags=self._flags,
                env=dict(self._env),
                package_manager=self._package_manager,
            ),
            runtime=RuntimeConfig(
                base=self._runtime_base,
                target_path=target_path,
                command=self._command or (self.binary_name,),
                labels=dict(self._labels),
                copy_from=self._stage_name,
            ),
            arch=self.arch,
            reproducible=self.reproducible,
            tag=self._tag,
        )

    def bake(
        self,
        source: str | Path | SourceTree,
        *,
        backend: PipelineBackend,
        output_dir: str | Path | None = None,
        frozen: bool = False,
        lock_path: str | Path | None = None,
    ) -> PipelineResult:
        return build_pipeline(
            self.config(),
            _source_tree(source),
            backend=backend,
            output_dir=Path(output_dir) if output_dir is not None else self.build_dir,
            policy=self.policy,
            logger=self.logger,
            frozen=frozen,
            lock_path=lock_path,
        )

    def lock(
        self,
        source: str | Path | SourceTree,
        path: str | Path | None = None,
        *,
        store: BaseImageStore | None = None,
        executable_digest: str | None = None,
    ) -> Path:
        config = self.config()
        lock = build_lockfile(
            config,
            _source_tree(source),
            base_digests=base_digests(store, config) if store is not None else None,
            executable_digest=executable_digest,
        )
        lock_path = Path(path) if path is not None else default_lock_path(config, self.build_dir)
        return write_lockfile(lock, lock_path)

    def emit_dockerfile(
        self,
        path: str | Path,
        *,
        source: str | Path | SourceTree | None = None,
    ) -> DockerfileEmission:
        tree = _source_tree(source) if source is not None else None
        return emit_dockerfile(self.config(), path, source=tree)


def _source_tree(source: str | Path | SourceTree) -> SourceTree:
    if isinstance(source, SourceTree):
        return source
    return SourceTree(root=Path(source))


__all__ = ["Recipe"]
