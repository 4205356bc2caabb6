from pathlib import Path

from slimage.compiler import emit_dockerfile, render_dockerfile
from slimage.models import SourceTree
from slimage.presets import knowbase, overmind

OVERMIND_DOCKERFILE = """\
FROM rust:1.72-alpine3.17 AS builder
WORKDIR /usr/src/overmind
COPY . .
ENV SOURCE_DATE_EPOCH="0"
RUN apk add --no-cache musl-dev && cargo install --path /usr/src/overmind --root /usr/local/cargo

FROM alpine:3.17
COPY --from=builder /usr/local/cargo/bin/overmind /usr/local/bin/overmind
LABEL "io.slimage.builder.base"="rust:1.72-alpine3.17" \\
      "org.opencontainers.image.base.name"="alpine:3.17" \\
      "org.opencontainers.image.title"="overmind"
CMD ["overmind"]
"""


def test_overmind_preset_matches_golden_dockerfile() -> None:
    assert render_dockerfile(overmind().config()) == OVERMIND_DOCKERFILE


def test_rendered_manifest_keeps_the_original_stage_structure() -> None:
    rendered = render_dockerfile(knowbase().config())
    lines = rendered.splitlines()

    assert lines[0] == "FROM rust:1.72-alpine3.17 AS builder"
    assert "WORKDIR /usr/src/knowbase" in lines
    assert "FROM alpine:3.17" in lines
    assert "COPY --from=builder /usr/local/cargo/bin/knowbase /usr/local/bin/knowbase" in lines
    assert lines[-1] == 'CMD ["knowbase"]'
    assert lines.index("FROM alpine:3.17") > lines.index("COPY . .")


def test_cargo_lock_enables_locked_install(tmp_path: Path) -> None:
    (tmp_path / "Cargo.lock").write_text("version = 3\n", encoding="utf-8")
    rendered = render_dockerfile(overmind().config(), source=SourceTree(root=tmp_path))
    assert "cargo install --locked --path /usr/src/overmind" in rendered


def test_non_reproducible_builds_omit_epoch(tmp_path: Path) -> None:
    recipe = overmind()
    recipe.reproducible = False
    rendered = render_dockerfile(recipe.config())
    assert "SOURCE_DATE_EPOCH" not in rendered


def test_user_labels_and_custom_command_are_rendered() -> None:
    recipe = (
        overmind()
        .label("org.opencontainers.image.source", "https://example.invalid/overmind")
        .cmd("/usr/local/bin/overmind", "--serve")
    )
    rendered = render_dockerfile(recipe.config())
    assert '"org.opencontainers.image.source"="https://example.invalid/overmind"' in rendered
    assert rendered.endswith('CMD ["/usr/local/bin/overmind", "--serve"]\n')


def test_script_toolchain_exports_install_location() -> None:
    recipe = overmind().script("make", "install")
    rendered = render_dockerfile(recipe.config())
    assert 'SLIMAGE_BIN_DIR="/usr/local/bin"' in rendered
    assert "RUN apk add --no-cache musl-dev && mkdir -p /usr/local/bin && make install" in rendered
    assert "COPY --from=builder /usr/local/bin/overmind /usr/local/bin/overmind" in rendered


def test_emit_writes_dockerfile_and_ignore_file(tmp_path: Path) -> None:
    emission = overmind().emit_dockerfile(tmp_path / "docker")

    assert emission.path.read_text(encoding="utf-8") == OVERMIND_DOCKERFILE
    assert emission.ignore_path.read_text(encoding="utf-8") == "**/.git\n**/target\n"
    assert len(emission.digest) == 64


def test_emission_is_stable(tmp_path: Path) -> None:
    first = emit_dockerfile(overmind().config(), tmp_path / "one")
    second = emit_dockerfile(overmind().config(), tmp_path / "two")
    assert first.digest == second.digest
