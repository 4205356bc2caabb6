"""Two-stage Rust build for overmind, shipped on plain Alpine."""

from pathlib import Path

from slimage import Recipe
from slimage.backends import DockerBackend


def build_overmind_image() -> None:
    recipe = (
        Recipe("overmind", build_dir=Path("build"))
        .builder("rust:1.72-alpine3.17", workdir="/usr/src/overmind")
        .install("musl-dev")
        .toolchain("rust")
        .runtime("alpine:3.17")
        .copy_to("/usr/local/bin/overmind")
        .cmd("overmind")
        .label("org.opencontainers.image.source", "https://github.com/overmindtech/cli")
    )
    recipe.emit_dockerfile("build/docker", source=".")
    recipe.lock(".")
    recipe.bake(".", backend=DockerBackend(), frozen=True)


if __name__ == "__main__":
    build_overmind_image()
