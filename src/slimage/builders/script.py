"""Builder that runs an arbitrary install command."""

from __future__ import annotations

from dataclasses import dataclass

from slimage.builders.base import BuildArtifact, BuildSpec
from slimage.builders.materialize import materialize_artifact, toolchain_identity
from slimage.errors import ValidationError


@dataclass(slots=True)
class ScriptBuilder:
    """Runs ``argv`` with the install location exported in the environment.

    The command must write the executable to ``$SLIMAGE_BIN_DIR/$SLIMAGE_BINARY``.
    """

    argv: tuple[str, ...] = ()
    name: str = "script"
    default_bin_dir: str = "/usr/local/bin"
    lockfiles: tuple[str, ...] = ()

    def command(self, spec: BuildSpec) -> tuple[str, ...]:
        if not self.argv:
            raise ValidationError(
                "Script builder requires a command.",
                hint="Declare the build command with Recipe.script(...).",
                context={"binary": spec.name},
            )
        return (*self.argv, *spec.flags)

    def environment(self, spec: BuildSpec) -> dict[str, str]:
        return {
            "SLIMAGE_BIN_DIR": str(spec.bin_dir),
            "SLIMAGE_BINARY": spec.name,
            "SLIMAGE_SOURCE": str(spec.source),
        }

    def identity(self, spec: BuildSpec) -> dict[str, str]:
        return toolchain_identity(self.command(spec)[0])

    def build(self, spec: BuildSpec) -> BuildArtifact:
        spec.bin_dir.mkdir(parents=True, exist_ok=True)
        return materialize_artifact(
            builder_name=self.name,
            command=self.command(spec),
            env=self.environment(spec),
            spec=spec,
        )
