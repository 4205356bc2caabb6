"""Runs build collaborator commands and catalogs what they installed."""

from __future__ import annotations

import hashlib
import json
import os
import shlex
import shutil
import subprocess
from collections.abc import Mapping
from pathlib import Path

from slimage.builders.base import BuildArtifact, BuildSpec
from slimage.errors import BuildError, EnvironmentSetupError

# Fixed timestamp so toolchains that honor it embed no wall-clock time.
REPRODUCIBLE_EPOCH = "0"

# Host variables a build may see. Anything else (RUSTFLAGS, CARGO_TARGET_DIR,
# ...) must be declared in the pipeline env so it reaches the cache key.
INHERITED_ENV = ("PATH", "HOME", "TMPDIR", "CARGO_HOME", "RUSTUP_HOME", "RUSTUP_TOOLCHAIN")
# Inherited variables that select a different toolchain.
TOOLCHAIN_ENV = ("CARGO_HOME", "RUSTUP_HOME", "RUSTUP_TOOLCHAIN")


def inherited_environment() -> dict[str, str]:
    return {key: os.environ[key] for key in INHERITED_ENV if key in os.environ}


def toolchain_identity(tool: str, *, version_args: tuple[str, ...] = ()) -> dict[str, str]:
    """Describe the host tool a build will run, for cache keys.

    Records the resolved path, a digest of the file, the output of
    ``tool *version_args`` and the inherited variables that pick a toolchain.
    """
    inherited = inherited_environment()
    identity = {"tool": tool}
    resolved = shutil.which(tool) if "/" not in tool else tool
    if resolved is not None and Path(resolved).is_absolute() and Path(resolved).is_file():
        identity["path"] = resolved
        identity["sha256"] = hashlib.sha256(Path(resolved).read_bytes()).hexdigest()
        if version_args:
            reported = subprocess.run(
                [resolved, *version_args],
                env=inherited,
                capture_output=True,
                text=True,
                check=False,
            )
            identity["version"] = reported.stdout.strip()
    for key in TOOLCHAIN_ENV:
        if key in inherited:
            identity[f"env.{key}"] = inherited[key]
    return identity


def materialize_artifact(
    *,
    builder_name: str,
    command: tuple[str, ...],
    env: Mapping[str, str],
    spec: BuildSpec,
) -> BuildArtifact:
    tool = command[0] if command else ""
    if not _tool_available(tool, cwd=spec.source):
        raise EnvironmentSetupError(
            f"{builder_name} toolchain is not available.",
            hint=f"Install `{tool}` in the builder environment or on the build host.",
            context={"builder": builder_name, "tool": tool},
        )

    build_env = inherited_environment()
    build_env.update(spec.env)
    build_env.update(env)
    if spec.reproducible:
        build_env["SOURCE_DATE_EPOCH"] = REPRODUCIBLE_EPOCH

    result = subprocess.run(
        list(command),
        cwd=str(spec.source),
        env=build_env,
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise BuildError(
            f"{builder_name} build failed.",
            diagnostics=result.stderr or result.stdout or "",
            hint=f"Fix the source tree; the {builder_name} diagnostics are attached verbatim.",
            context={
                "builder": builder_name,
                "binary": spec.name,
                "command": shlex.join(command),
                "returncode": str(result.returncode),
            },
        )

    produced = list_executables(spec.bin_dir)

    metadata_path: Path | None = None
    if spec.metadata_dir is not None:
        spec.metadata_dir.mkdir(parents=True, exist_ok=True)
        metadata_path = spec.metadata_dir / f"{spec.name}.build.json"
        metadata = {
            "builder": builder_name,
            "binary": spec.name,
            "reproducible": spec.reproducible,
            "locked": spec.locked,
            "flags": list(spec.flags),
            "env": dict(sorted(spec.env.items())),
            "command": list(command),
            "produced": list(produced),
        }
        metadata_path.write_text(
            json.dumps(metadata, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )

    return BuildArtifact(
        builder=builder_name,
        command=command,
        bin_dir=spec.bin_dir,
        produced=produced,
        metadata_path=metadata_path,
    )


def list_executables(bin_dir: Path) -> tuple[str, ...]:
    if not bin_dir.is_dir():
        return ()
    return tuple(
        sorted(entry.name for entry in bin_dir.iterdir() if entry.is_file() and not entry.is_symlink())
    )


def _tool_available(tool: str, *, cwd: Path) -> bool:
    if not tool:
        return False
    if "/" in tool:
        return (cwd / tool).exists()
    return shutil.which(tool) is not None
