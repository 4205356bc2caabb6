"""Two-stage Dockerfile emission.

Renders a pipeline configuration as a multi-stage manifest: a named builder
stage that installs toolchain packages and compiles the source tree, followed
by a runtime stage that copies the single executable out of it.
"""

from __future__ import annotations

import hashlib
import json
import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from slimage.builders import Builder, BuildSpec, get_builder
from slimage.builders.materialize import REPRODUCIBLE_EPOCH
from slimage.models import DEFAULT_SOURCE_EXCLUDE, PipelineConfig, SourceTree
from slimage.packages import PackageInstaller, get_installer
from slimage.provenance import provenance_labels


@dataclass(frozen=True, slots=True)
class DockerfileEmission:
    path: Path
    ignore_path: Path
    digest: str


def render_dockerfile(
    config: PipelineConfig,
    *,
    source: SourceTree | None = None,
    builder: Builder | None = None,
    installer: PackageInstaller | None = None,
    labels: Mapping[str, str] | None = None,
) -> str:
    settings = config.builder
    runtime = config.runtime
    builder = builder or get_builder(settings)
    installer = installer or get_installer(settings.package_manager)
    locked = (
        config.reproducible
        and source is not None
        and any(source.has(name) for name in builder.lockfiles)
    )
    spec = BuildSpec(
        name=config.binary_name,
        source=Path(settings.workdir),
        bin_dir=Path(settings.toolchain_bin_dir),
        reproducible=config.reproducible,
        locked=locked,
        flags=settings.flags,
        env=settings.env,
    )

    env = dict(settings.env)
    env.update(builder.environment(spec))
    if config.reproducible:
        env["SOURCE_DATE_EPOCH"] = REPRODUCIBLE_EPOCH

    steps: list[str] = []
    if settings.packages:
        steps.append(installer.install_command(settings.packages))
    if builder.name == "script":
        steps.append(shlex.join(["mkdir", "-p", settings.toolchain_bin_dir]))
    steps.append(shlex.join(builder.command(spec)))

    lines = [
        f"FROM {settings.base} AS {settings.stage_name}",
        f"WORKDIR {settings.workdir}",
        "COPY . .",
    ]
    if env:
        lines.append("ENV " + " ".join(f"{key}={json.dumps(value)}" for key, value in sorted(env.items())))
    lines.append("RUN " + " && ".join(steps))
    lines.append("")
    lines.append(f"FROM {runtime.base}")
    lines.append(f"COPY --from={runtime.copy_from} {config.source_path} {runtime.target_path}")

    resolved_labels = provenance_labels(config) if labels is None else dict(sorted(labels.items()))
    if resolved_labels:
        rendered = [f"{json.dumps(key)}={json.dumps(value)}" for key, value in resolved_labels.items()]
        lines.append("LABEL " + " \\\n      ".join(rendered))
    lines.append(f"CMD {json.dumps(list(runtime.command))}")
    return "\n".join(lines) + "\n"


def emit_dockerfile(
    config: PipelineConfig,
    destination: str | Path,
    *,
    source: SourceTree | None = None,
    builder: Builder | None = None,
) -> DockerfileEmission:
    target_dir = Path(destination)
    target_dir.mkdir(parents=True, exist_ok=True)
    dockerfile = target_dir / "Dockerfile"
    content = render_dockerfile(config, source=source, builder=builder)
    dockerfile.write_text(content, encoding="utf-8")
    # BuildKit reads <Dockerfile>.dockerignore next to the manifest.
    ignore_path = target_dir / "Dockerfile.dockerignore"
    exclude = source.exclude if source is not None else DEFAULT_SOURCE_EXCLUDE
    # SourceTree drops excluded names at any depth.
    ignore_path.write_text("".join(f"**/{entry}\n" for entry in exclude), encoding="utf-8")
    return DockerfileEmission(
        path=dockerfile,
        ignore_path=ignore_path,
        digest=hashlib.sha256(content.encode("utf-8")).hexdigest(),
    )
