"""In-process pipeline execution.

Runs the builder stage inside a throwaway ``BuilderEnvironment`` and assembles
the runtime image from a fresh copy of the runtime base.  The environment is
discarded as soon as the executable has been copied out of it; only the OCI
layout and a JSON report survive.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from slimage.arena import BuilderEnvironment
from slimage.backends.base import pipeline_output_dir, write_report
from slimage.bases import BaseImageStore
from slimage.builders import Builder, get_builder
from slimage.cache import BuildCacheStore
from slimage.errors import ReproducibilityError
from slimage.models import BuildRequest, PipelineResult
from slimage.observability import StructuredLogger
from slimage.oci import write_oci_layout
from slimage.packages import PackageInstaller, get_installer
from slimage.stages import BuilderStage, RuntimeAssemblyStage


@dataclass(slots=True)
class LocalBackend:
    store: BaseImageStore
    installer: PackageInstaller | None = None
    builder: Builder | None = None
    cache_dir: Path | None = None
    work_root: Path | None = None
    name: str = "local"

    def prepare(self, request: BuildRequest) -> None:
        pipeline_output_dir(request).mkdir(parents=True, exist_ok=True)
        if self.work_root is not None:
            Path(self.work_root).mkdir(parents=True, exist_ok=True)

    def execute(self, request: BuildRequest, *, logger: StructuredLogger) -> PipelineResult:
        config = request.config
        output_dir = pipeline_output_dir(request)
        installer = self.installer or get_installer(
            config.builder.package_manager, policy=request.policy
        )
        builder = self.builder or get_builder(config.builder)
        cache = BuildCacheStore(self.cache_dir) if self.cache_dir is not None else None

        builder_stage = BuilderStage(
            config=config,
            store=self.store,
            installer=installer,
            builder=builder,
            logger=logger,
            cache=cache,
            metadata_dir=output_dir,
        )
        runtime_stage = RuntimeAssemblyStage(
            config=config,
            store=self.store,
            policy=request.policy,
            logger=logger,
        )
        with BuilderEnvironment(config.builder.stage_name, work_root=self.work_root) as environment:
            built = builder_stage.run(request.source, environment)
            image, executable = runtime_stage.run(
                {config.builder.stage_name: environment},
                source_digest=built.source_digest,
                produced=built.produced,
            )

        expected = request.expected_executable_digest
        if expected is not None and executable.digest != expected:
            raise ReproducibilityError(
                "Rebuilt executable differs from the locked digest.",
                hint="Check the toolchain for non-deterministic output.",
                context={
                    "pipeline": config.binary_name,
                    "expected": expected,
                    "actual": executable.digest,
                },
            )

        layout = write_oci_layout(image, output_dir / "image", ref_name=config.image_tag)
        logger.log(
            operation="write_layout",
            pipeline=config.binary_name,
            stage="runtime",
            builder=None,
            message="Wrote OCI image layout.",
            extra={"path": str(layout.path), "manifest": layout.manifest_digest},
        )

        report_path = write_report(
            output_dir / "report.json",
            {
                "binary": config.binary_name,
                "backend": self.name,
                "config_digest": config.digest(),
                "source_digest": built.source_digest,
                "image": {
                    "ref": config.image_tag,
                    "manifest_digest": layout.manifest_digest,
                    "config_digest": layout.config_digest,
                    "base": str(image.base),
                    "command": list(image.command),
                    "labels": dict(image.labels),
                    "added_paths": list(image.added_paths),
                    "layers": [
                        {"digest": layer.digest, "size": layer.size} for layer in image.layers
                    ],
                },
                "executable": {
                    "path": executable.path,
                    "digest": executable.digest,
                    "size": executable.size,
                },
                "cache_hit": built.cache_hit,
                "installed": {
                    package.name: len(package.paths) for package in built.installed
                },
                "logs": logger.records_for_pipeline(config.binary_name),
            },
        )
        return PipelineResult(
            binary_name=config.binary_name,
            backend=self.name,
            image_ref=f"{config.image_tag}@{layout.manifest_digest}",
            image=image,
            layout_path=layout.path,
            report_path=report_path,
            executable=executable,
            cache_hit=built.cache_hit,
        )

    def cleanup(self, request: BuildRequest) -> None:
        pass
