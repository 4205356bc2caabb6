"""Builder stage: compile one executable inside a throwaway environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from slimage.arena import BuilderEnvironment
from slimage.bases import BaseImageStore
from slimage.builders import BuildArtifact, Builder, BuildSpec, declared_binaries
from slimage.cache import BuildCacheInput, BuildCacheStore, cache_key
from slimage.models import PipelineConfig, SourceTree
from slimage.observability import StructuredLogger
from slimage.packages import InstalledPackage, PackageInstaller


@dataclass(slots=True)
class BuilderStageResult:
    environment: BuilderEnvironment
    source_digest: str
    artifact: BuildArtifact | None = None
    installed: tuple[InstalledPackage, ...] = ()
    cache_hit: bool = False

    @property
    def produced(self) -> tuple[str, ...]:
        if self.artifact is None:
            return ()
        return self.artifact.produced


@dataclass(slots=True)
class BuilderStage:
    config: PipelineConfig
    store: BaseImageStore
    installer: PackageInstaller
    builder: Builder
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    cache: BuildCacheStore | None = None
    metadata_dir: Path | None = None

    def run(self, source: SourceTree, environment: BuilderEnvironment) -> BuilderStageResult:
        settings = self.config.builder
        self._check_declared_name(source)

        environment.seed(self.store.resolve(settings.base))
        self._log("seed_environment", "Seeded builder environment.", base=str(settings.base))

        source_digest = source.digest()
        locked = self.config.reproducible and any(source.has(name) for name in self.builder.lockfiles)
        guest_spec = BuildSpec(
            name=self.config.binary_name,
            source=Path(settings.workdir),
            bin_dir=Path(settings.toolchain_bin_dir),
            reproducible=self.config.reproducible,
            locked=locked,
            flags=settings.flags,
            env=settings.env,
        )
        inputs: BuildCacheInput | None = None
        if self.cache is not None:
            inputs = BuildCacheInput(
                source_digest=source_digest,
                builder_base=str(settings.base),
                toolchain=self.builder.name,
                binary=self.config.binary_name,
                command=self.builder.command(guest_spec),
                packages=settings.packages,
                env=dict(settings.env),
                arch=self.config.arch,
                toolchain_identity=self.builder.identity(guest_spec),
            )
            key = cache_key(inputs)
            cached = self.cache.load(key=key, expected_inputs=inputs)
            if cached is not None:
                target = environment.host_path(self.config.source_path)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(cached)
                os.chmod(target, 0o755)
                environment.freeze()
                self._log("restore_cached_executable", "Restored executable from cache.", key=key)
                return BuilderStageResult(
                    environment=environment,
                    source_digest=source_digest,
                    cache_hit=True,
                )

        installed = self.installer.install(settings.packages, rootfs=environment.rootfs)
        self._log(
            "install_packages",
            "Installed toolchain packages.",
            installer=self.installer.name,
            packages=list(settings.packages),
        )

        workdir = environment.copy_source(source, settings.workdir)
        self._log("copy_source", "Copied source tree.", workdir=settings.workdir)

        artifact = self.builder.build(
            BuildSpec(
                name=self.config.binary_name,
                source=workdir,
                bin_dir=environment.host_path(settings.toolchain_bin_dir),
                reproducible=self.config.reproducible,
                locked=locked,
                flags=settings.flags,
                env=settings.env,
                metadata_dir=self.metadata_dir,
            )
        )
        self._log("compile", "Build collaborator finished.", produced=list(artifact.produced))

        if self.cache is not None and inputs is not None and self.config.binary_name in artifact.produced:
            self.cache.save(inputs=inputs, executable=environment.extract(self.config.source_path))

        environment.freeze()
        return BuilderStageResult(
            environment=environment,
            source_digest=source_digest,
            artifact=artifact,
            installed=installed,
        )

    def _check_declared_name(self, source: SourceTree) -> None:
        if self.builder.name != "rust":
            return
        declared = declared_binaries(Path(source.root))
        if declared and self.config.binary_name not in declared:
            self._log(
                "check_binary_name",
                "Configured binary name is not declared by Cargo.toml; assembly will fail.",
                level="warning",
                declared=list(declared),
            )

    def _log(self, operation: str, message: str, *, level: str = "info", **extra: object) -> None:
        self.logger.log(
            operation=operation,
            pipeline=self.config.binary_name,
            stage=self.config.builder.stage_name,
            builder=self.builder.name,
            message=message,
            level=level,
            extra=dict(extra) or None,
        )
