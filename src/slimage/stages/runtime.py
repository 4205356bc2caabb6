"""Runtime assembly stage: a fresh base plus exactly one copied executable."""

from __future__ import annotations

import hashlib
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from slimage.arena import BuilderEnvironment
from slimage.bases import BaseImageStore
from slimage.errors import AssemblyError
from slimage.linkage import ensure_runnable, read_linkage
from slimage.models import CompiledExecutable, PipelineConfig, RuntimeImage
from slimage.observability import StructuredLogger
from slimage.oci import LayerFile, build_layer, layer_from_archive, source_date_epoch
from slimage.policy import Policy
from slimage.provenance import provenance_labels

EXECUTABLE_MODE = 0o755


def missing_executable_hint(binary_name: str, produced: tuple[str, ...] | None = None) -> str:
    if produced is None:
        found = "the build did not install it"
    elif produced:
        found = "the build produced " + ", ".join(produced)
    else:
        found = "the build produced no executables"
    return (
        f"The copy step expects `{binary_name}` but {found}. "
        "Align the binary name with the project name."
    )


@dataclass(slots=True)
class RuntimeAssemblyStage:
    config: PipelineConfig
    store: BaseImageStore
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def run(
        self,
        stages: Mapping[str, BuilderEnvironment],
        *,
        source_digest: str | None = None,
        produced: tuple[str, ...] = (),
    ) -> tuple[RuntimeImage, CompiledExecutable]:
        runtime = self.config.runtime
        base_layer = layer_from_archive(self.store.resolve(runtime.base))
        self._log("load_runtime_base", "Loaded runtime base layer.", base=str(runtime.base))

        environment = stages.get(runtime.copy_from)
        if environment is None:
            raise AssemblyError(
                "Copy step references an unknown stage.",
                hint="copy_from must name the builder stage.",
                context={
                    "pipeline": self.config.binary_name,
                    "copy_from": runtime.copy_from,
                    "stages": ",".join(sorted(stages)),
                },
            )

        try:
            content = environment.extract(self.config.source_path)
        except AssemblyError as exc:
            raise AssemblyError(
                "Compiled executable is missing from the builder stage.",
                hint=missing_executable_hint(self.config.binary_name, produced),
                context={
                    "pipeline": self.config.binary_name,
                    "stage": runtime.copy_from,
                    "path": self.config.source_path,
                },
            ) from exc
        digest = hashlib.sha256(content).hexdigest()
        self._log("extract_executable", "Extracted executable.", path=self.config.source_path)

        if self.policy.verify_linkage:
            linkage = read_linkage(content)
            if linkage is not None:
                ensure_runnable(
                    linkage,
                    base_paths=base_layer.paths,
                    arch=self.config.arch,
                    binary_name=self.config.binary_name,
                )
                self._log(
                    "verify_linkage",
                    "Executable is runnable on the runtime base.",
                    static=linkage.static,
                    interpreter=linkage.interpreter,
                )

        mtime = source_date_epoch() if self.config.reproducible else int(time.time())
        layer = build_layer(
            {runtime.target_path: LayerFile(content=content, mode=EXECUTABLE_MODE)},
            mtime=mtime,
        )
        image = RuntimeImage(
            binary_name=self.config.binary_name,
            base=runtime.base,
            layers=(base_layer, layer),
            target_path=runtime.target_path,
            command=runtime.command,
            labels=provenance_labels(
                self.config,
                source_digest=source_digest,
                executable_digest=digest,
            ),
            arch=self.config.arch,
        )
        self._log("assemble_image", "Assembled runtime image.", layer=layer.digest)
        executable = CompiledExecutable(
            name=self.config.binary_name,
            path=runtime.target_path,
            digest=digest,
            size=len(content),
        )
        return image, executable

    def _log(self, operation: str, message: str, **extra: object) -> None:
        self.logger.log(
            operation=operation,
            pipeline=self.config.binary_name,
            stage="runtime",
            builder=None,
            message=message,
            extra=dict(extra) or None,
        )
