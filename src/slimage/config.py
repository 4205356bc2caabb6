"""TOML pipeline configuration.

A configuration file declares one or more pipelines::

    [pipelines.overmind]
    tag = "overmind:latest"

    [pipelines.overmind.builder]
    base = "rust:1.72-alpine3.17"
    packages = ["musl-dev"]

    [pipelines.overmind.runtime]
    base = "alpine:3.17"
    target_path = "/usr/local/bin/overmind"
    command = ["overmind"]

    [pipelines.overmind.runtime.labels]
    "org.opencontainers.image.source" = "https://example.invalid/overmind"
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from slimage.errors import ValidationError
from slimage.models import PipelineConfig
from slimage.recipe import Recipe

PIPELINE_KEYS = frozenset({"arch", "reproducible", "tag", "builder", "runtime"})
BUILDER_KEYS = frozenset(
    {
        "base",
        "packages",
        "workdir",
        "stage",
        "package_manager",
        "toolchain",
        "bin_dir",
        "script",
        "flags",
        "env",
    }
)
RUNTIME_KEYS = frozenset({"base", "target_path", "command", "labels"})


def load_configs(path: str | Path) -> dict[str, PipelineConfig]:
    config_path = Path(path)
    try:
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValidationError(
            "Configuration file does not exist.",
            context={"path": str(config_path)},
        ) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ValidationError(
            "Configuration file is not valid TOML.",
            hint=str(exc),
            context={"path": str(config_path)},
        ) from exc
    return parse_configs(raw)


def parse_configs(raw: dict[str, Any]) -> dict[str, PipelineConfig]:
    pipelines = raw.get("pipelines")
    if not isinstance(pipelines, dict) or not pipelines:
        raise ValidationError(
            "Configuration must declare at least one [pipelines.<name>] table.",
            context={"key": "pipelines"},
        )
    return {name: parse_pipeline(name, table) for name, table in sorted(pipelines.items())}


def parse_pipeline(name: str, table: Any) -> PipelineConfig:
    key = f"pipelines.{name}"
    table = _table(table, key)
    _reject_unknown(table, PIPELINE_KEYS, key)

    recipe = Recipe(
        name,
        arch=_str(table, "arch", key, default="x86_64"),  # type: ignore[arg-type]
        reproducible=_bool(table, "reproducible", key, default=True),
    )

    builder_key = f"{key}.builder"
    builder = _table(table.get("builder"), builder_key)
    _reject_unknown(builder, BUILDER_KEYS, builder_key)
    recipe.builder(
        _str(builder, "base", builder_key),
        workdir=_optional_str(builder, "workdir", builder_key),
        stage=_str(builder, "stage", builder_key, default="builder"),
        package_manager=_str(builder, "package_manager", builder_key, default="apk"),  # type: ignore[arg-type]
    )
    packages = _str_list(builder, "packages", builder_key)
    if packages:
        recipe.install(*packages)
    toolchain = _str(builder, "toolchain", builder_key, default="rust")
    script = _str_list(builder, "script", builder_key)
    bin_dir = _optional_str(builder, "bin_dir", builder_key)
    env = _str_table(builder, "env", builder_key)
    if toolchain == "script":
        recipe.script(*script, bin_dir=bin_dir, env=env)
    elif script:
        raise ValidationError(
            "`script` is only valid with toolchain = \"script\".",
            context={"key": f"{builder_key}.script"},
        )
    else:
        recipe.toolchain(
            toolchain,
            bin_dir=bin_dir,
            flags=tuple(_str_list(builder, "flags", builder_key)),
            env=env,
        )

    runtime_key = f"{key}.runtime"
    runtime = _table(table.get("runtime"), runtime_key)
    _reject_unknown(runtime, RUNTIME_KEYS, runtime_key)
    recipe.runtime(_str(runtime, "base", runtime_key))
    target_path = _optional_str(runtime, "target_path", runtime_key)
    if target_path is not None:
        recipe.copy_to(target_path)
    command = _str_list(runtime, "command", runtime_key)
    if command:
        recipe.cmd(*command)
    for label_key, value in _str_table(runtime, "labels", runtime_key).items():
        recipe.label(label_key, value)

    tag = _optional_str(table, "tag", key)
    if tag is not None:
        recipe.tag(tag)
    return recipe.config()


def _table(value: Any, key: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError(f"`{key}` must be a table.", context={"key": key})
    return value


def _reject_unknown(table: dict[str, Any], allowed: frozenset[str], key: str) -> None:
    unknown = sorted(set(table) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown configuration key `{key}.{unknown[0]}`.",
            hint=f"Allowed keys: {', '.join(sorted(allowed))}.",
            context={"key": f"{key}.{unknown[0]}"},
        )


def _str(table: dict[str, Any], name: str, key: str, *, default: str | None = None) -> str:
    value = table.get(name, default)
    if not isinstance(value, str) or not value:
        raise ValidationError(
            f"`{key}.{name}` must be a non-empty string.",
            context={"key": f"{key}.{name}"},
        )
    return value


def _optional_str(table: dict[str, Any], name: str, key: str) -> str | None:
    if name not in table:
        return None
    return _str(table, name, key)


def _bool(table: dict[str, Any], name: str, key: str, *, default: bool) -> bool:
    value = table.get(name, default)
    if not isinstance(value, bool):
        raise ValidationError(f"`{key}.{name}` must be a boolean.", context={"key": f"{key}.{name}"})
    return value


def _str_list(table: dict[str, Any], name: str, key: str) -> list[str]:
    value = table.get(name, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(
            f"`{key}.{name}` must be a list of strings.",
            context={"key": f"{key}.{name}"},
        )
    return value


def _str_table(table: dict[str, Any], name: str, key: str) -> dict[str, str]:
    value = table.get(name, {})
    if not isinstance(value, dict) or not all(isinstance(item, str) for item in value.values()):
        raise ValidationError(
            f"`{key}.{name}` must be a table of strings.",
            context={"key": f"{key}.{name}"},
        )
    return dict(value)


__all__ = ["load_configs", "parse_configs", "parse_pipeline"]
