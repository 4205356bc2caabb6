"""Build collaborator contracts and the toolchain registry."""

from slimage.errors import ValidationError
from slimage.models import BuilderConfig

from .base import BuildArtifact, Builder, BuildSpec
from .materialize import list_executables, materialize_artifact, toolchain_identity
from .rust import RustBuilder, declared_binaries
from .script import ScriptBuilder

TOOLCHAINS = ("rust", "script")


def get_builder(config: BuilderConfig) -> Builder:
    if config.toolchain == "rust":
        return RustBuilder()
    if config.toolchain == "script":
        return ScriptBuilder(argv=tuple(config.script))
    raise ValidationError(
        "Unknown build toolchain.",
        hint=f"Supported toolchains: {', '.join(TOOLCHAINS)}.",
        context={"toolchain": config.toolchain},
    )


__all__ = [
    "BuildArtifact",
    "BuildSpec",
    "Builder",
    "RustBuilder",
    "ScriptBuilder",
    "TOOLCHAINS",
    "declared_binaries",
    "get_builder",
    "list_executables",
    "materialize_artifact",
    "toolchain_identity",
]
