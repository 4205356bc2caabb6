from pathlib import Path

import pytest

from slimage.config import load_configs
from slimage.errors import ValidationError
from slimage.presets import overmind

OVERMIND_TOML = """\
[pipelines.overmind.builder]
base = "rust:1.72-alpine3.17"
packages = ["musl-dev"]
workdir = "/usr/src/overmind"

[pipelines.overmind.runtime]
base = "alpine:3.17"
target_path = "/usr/local/bin/overmind"
command = ["overmind"]
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "slimage.toml"
    path.write_text(content, encoding="utf-8")
    return path


def test_toml_pipeline_matches_preset(tmp_path: Path) -> None:
    configs = load_configs(_write(tmp_path, OVERMIND_TOML))
    assert list(configs) == ["overmind"]
    assert configs["overmind"] == overmind().config()


def test_toml_supports_labels_script_and_tag(tmp_path: Path) -> None:
    content = """\
[pipelines.knowbase]
tag = "registry.invalid/knowbase:1.0"
reproducible = false

[pipelines.knowbase.builder]
base = "alpine:3.17"
toolchain = "script"
script = ["make", "install"]
env = { CFLAGS = "-O2" }

[pipelines.knowbase.runtime]
base = "alpine:3.17"

[pipelines.knowbase.runtime.labels]
"org.opencontainers.image.source" = "https://example.invalid/knowbase"
"""
    config = load_configs(_write(tmp_path, content))["knowbase"]

    assert config.image_tag == "registry.invalid/knowbase:1.0"
    assert config.reproducible is False
    assert config.builder.toolchain == "script"
    assert config.builder.script == ("make", "install")
    assert config.builder.toolchain_bin_dir == "/usr/local/bin"
    assert dict(config.builder.env) == {"CFLAGS": "-O2"}
    assert config.runtime.target_path == "/usr/local/bin/knowbase"
    assert config.runtime.command == ("knowbase",)
    assert config.runtime.labels == {"org.opencontainers.image.source": "https://example.invalid/knowbase"}


def test_unknown_keys_are_named_in_the_error(tmp_path: Path) -> None:
    content = OVERMIND_TOML + 'entrypoint = ["overmind"]\n'
    with pytest.raises(ValidationError) as excinfo:
        load_configs(_write(tmp_path, content))
    assert excinfo.value.context["key"] == "pipelines.overmind.runtime.entrypoint"


def test_mismatched_command_is_rejected(tmp_path: Path) -> None:
    content = OVERMIND_TOML.replace('command = ["overmind"]', 'command = ["knowbase"]')
    with pytest.raises(ValidationError) as excinfo:
        load_configs(_write(tmp_path, content))
    assert "command" in excinfo.value.context


@pytest.mark.parametrize(
    ("content", "key"),
    [
        ("", "pipelines"),
        ("[pipelines.overmind]\n", "pipelines.overmind.builder"),
        (OVERMIND_TOML.replace('packages = ["musl-dev"]', 'packages = "musl-dev"'), "pipelines.overmind.builder.packages"),
        (OVERMIND_TOML.replace('base = "alpine:3.17"', "base = 3"), "pipelines.overmind.runtime.base"),
    ],
)
def test_malformed_tables_are_rejected(tmp_path: Path, content: str, key: str) -> None:
    with pytest.raises(ValidationError) as excinfo:
        load_configs(_write(tmp_path, content))
    assert excinfo.value.context["key"] == key


def test_invalid_toml_is_a_validation_error(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        load_configs(_write(tmp_path, "[pipelines\n"))
    with pytest.raises(ValidationError):
        load_configs(tmp_path / "missing.toml")
