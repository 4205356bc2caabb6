"""Pipeline execution through ``docker build``.

Emits the two-stage Dockerfile for the pipeline and hands it to the Docker
CLI, which provides full process and network isolation for the builder stage.
"""

from __future__ import annotations

import shlex
import shutil
import subprocess
from dataclasses import dataclass, field

from slimage.backends.base import pipeline_output_dir, write_report
from slimage.compiler import emit_dockerfile
from slimage.errors import (
    AssemblyError,
    BackendExecutionError,
    BuildError,
    EnvironmentSetupError,
    LockfileError,
)
from slimage.models import BuildRequest, PipelineConfig, PipelineResult
from slimage.observability import StructuredLogger
from slimage.oci import OCI_ARCH
from slimage.stages import missing_executable_hint

# Registry failures surface as build failures from the CLI; these markers
# identify a base image that could not be pulled.
BASE_UNAVAILABLE_MARKERS = (
    "pull access denied",
    "manifest unknown",
    "failed to resolve source metadata",
    "not found: manifest",
)
# BuildKit reports a COPY --from source that the builder stage never produced
# as a cache-key failure naming the missing path.
COPY_SOURCE_MISSING_MARKERS = (
    "failed to compute cache key",
    "failed to calculate checksum",
)


@dataclass(slots=True)
class DockerBackend:
    name: str = "docker"
    tool: str = "docker"
    build_args: list[str] = field(default_factory=list)

    def prepare(self, request: BuildRequest) -> None:
        self._ensure_tool()
        if request.expected_executable_digest is not None:
            # docker build tags the image before its layers can be read back.
            raise LockfileError(
                "The docker backend cannot verify a locked executable digest.",
                hint="Lock without an executable digest or build with the local backend.",
                context={
                    "backend": self.name,
                    "pipeline": request.config.binary_name,
                    "field": "executable_digest",
                },
            )
        pipeline_output_dir(request).mkdir(parents=True, exist_ok=True)

    def execute(self, request: BuildRequest, *, logger: StructuredLogger) -> PipelineResult:
        self._ensure_tool()
        config = request.config
        output_dir = pipeline_output_dir(request)
        emission = emit_dockerfile(config, output_dir / "docker", source=request.source)
        logger.log(
            operation="emit_dockerfile",
            pipeline=config.binary_name,
            stage=None,
            builder=config.builder.toolchain,
            message="Emitted two-stage Dockerfile.",
            extra={"path": str(emission.path), "digest": emission.digest},
        )

        cmd = [
            self.tool,
            "build",
            f"--file={emission.path}",
            f"--tag={config.image_tag}",
            f"--platform=linux/{OCI_ARCH[config.arch]}",
        ]
        if request.policy.offline:
            cmd.extend(["--network=none", "--pull=false"])
        cmd.extend([*self.build_args, str(request.source.root)])

        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            self._raise_build_failure(cmd, result, config=config)

        inspect_cmd = [self.tool, "image", "inspect", "--format", "{{.Id}}", config.image_tag]
        inspected = subprocess.run(inspect_cmd, capture_output=True, text=True, check=False)
        if inspected.returncode != 0:
            raise BackendExecutionError(
                "Built image could not be inspected.",
                hint="Check that the Docker daemon kept the tagged image.",
                context={
                    "backend": self.name,
                    "operation": "inspect",
                    "pipeline": config.binary_name,
                    "stderr": inspected.stderr[:2000] if inspected.stderr else "",
                },
            )
        image_id = inspected.stdout.strip()
        logger.log(
            operation="docker_build",
            pipeline=config.binary_name,
            stage=None,
            builder=config.builder.toolchain,
            message="Docker build finished.",
            extra={"image_id": image_id},
        )

        report_path = write_report(
            output_dir / "report.json",
            {
                "binary": config.binary_name,
                "backend": self.name,
                "config_digest": config.digest(),
                "dockerfile_digest": emission.digest,
                "image": {"ref": config.image_tag, "id": image_id},
                "command": shlex.join(cmd),
                "logs": logger.records_for_pipeline(config.binary_name),
            },
        )
        return PipelineResult(
            binary_name=config.binary_name,
            backend=self.name,
            image_ref=f"{config.image_tag}@{image_id}",
            report_path=report_path,
        )

    def cleanup(self, request: BuildRequest) -> None:
        pass

    def _ensure_tool(self) -> None:
        if shutil.which(self.tool) is None:
            raise BackendExecutionError(
                f"Docker backend requires `{self.tool}` in PATH.",
                hint="Install Docker or use the local backend.",
                context={"backend": self.name, "operation": "prepare"},
            )

    def _raise_build_failure(
        self,
        cmd: list[str],
        result: subprocess.CompletedProcess[str],
        *,
        config: PipelineConfig,
    ) -> None:
        diagnostics = result.stderr or result.stdout or ""
        context = {
            "backend": self.name,
            "pipeline": config.binary_name,
            "returncode": str(result.returncode),
            "command": shlex.join(cmd),
        }
        lowered = diagnostics.lower()
        if any(marker in lowered for marker in BASE_UNAVAILABLE_MARKERS):
            raise EnvironmentSetupError(
                "A base image could not be pulled.",
                hint="Check the base image references and registry access.",
                context={**context, "stderr": diagnostics[:2000]},
            )
        if (
            any(marker in lowered for marker in COPY_SOURCE_MISSING_MARKERS)
            and "not found" in lowered
            and config.source_path in diagnostics
        ):
            raise AssemblyError(
                "Compiled executable is missing from the builder stage.",
                hint=missing_executable_hint(config.binary_name),
                context={
                    **context,
                    "stage": config.runtime.copy_from,
                    "path": config.source_path,
                    "stderr": diagnostics[:2000],
                },
            )
        raise BuildError(
            "docker build failed.",
            diagnostics=diagnostics,
            hint="The compiler diagnostics are attached verbatim.",
            context=context,
        )
