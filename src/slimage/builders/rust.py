"""Rust builder backed by ``cargo install``."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

from slimage.builders.base import BuildArtifact, BuildSpec
from slimage.builders.materialize import materialize_artifact, toolchain_identity
from slimage.errors import ValidationError


@dataclass(slots=True)
class RustBuilder:
    name: str = "rust"
    tool: str = "cargo"
    default_bin_dir: str = "/usr/local/cargo/bin"
    lockfiles: tuple[str, ...] = ("Cargo.lock",)

    def command(self, spec: BuildSpec) -> tuple[str, ...]:
        flags = list(spec.flags)
        if spec.reproducible and spec.locked and "--locked" not in flags:
            flags.append("--locked")
        # cargo installs into <root>/bin
        return (
            self.tool,
            "install",
            *flags,
            "--path",
            str(spec.source),
            "--root",
            str(spec.bin_dir.parent),
        )

    def environment(self, spec: BuildSpec) -> dict[str, str]:
        return {}

    def identity(self, spec: BuildSpec) -> dict[str, str]:
        return toolchain_identity(self.tool, version_args=("--version",))

    def build(self, spec: BuildSpec) -> BuildArtifact:
        return materialize_artifact(
            builder_name=self.name,
            command=self.command(spec),
            env=self.environment(spec),
            spec=spec,
        )


def declared_binaries(source: Path) -> tuple[str, ...]:
    """Binary names a cargo project installs, read from its ``Cargo.toml``."""
    manifest_path = Path(source) / "Cargo.toml"
    try:
        manifest = tomllib.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return ()
    except tomllib.TOMLDecodeError as exc:
        raise ValidationError(
            "Cargo.toml is not valid TOML.",
            hint=str(exc),
            context={"path": str(manifest_path)},
        ) from exc
    bins = manifest.get("bin")
    if isinstance(bins, list):
        names = tuple(
            entry["name"] for entry in bins if isinstance(entry, dict) and "name" in entry
        )
        if names:
            return names
    package = manifest.get("package")
    if isinstance(package, dict) and isinstance(package.get("name"), str):
        return (package["name"],)
    return ()
