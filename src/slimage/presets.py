"""Recipes for the packaged programs.

Both programs are Rust services built with ``cargo install`` on an Alpine
toolchain image and shipped on a bare Alpine runtime.
"""

from __future__ import annotations

from pathlib import Path

from slimage.errors import ValidationError
from slimage.recipe import Recipe

RUST_BUILDER_BASE = "rust:1.72-alpine3.17"
ALPINE_RUNTIME_BASE = "alpine:3.17"


def rust_alpine(name: str, *, build_dir: str | Path = "build") -> Recipe:
    """Cargo project ``name`` compiled against musl and run as ``CMD [name]``."""
    return (
        Recipe(name, build_dir=Path(build_dir))
        .builder(RUST_BUILDER_BASE, workdir=f"/usr/src/{name}")
        .install("musl-dev")
        .toolchain("rust")
        .runtime(ALPINE_RUNTIME_BASE)
        .copy_to(f"/usr/local/bin/{name}")
        .cmd(name)
    )


def overmind(*, build_dir: str | Path = "build") -> Recipe:
    return rust_alpine("overmind", build_dir=build_dir)


def knowbase(*, build_dir: str | Path = "build") -> Recipe:
    return rust_alpine("knowbase", build_dir=build_dir)


PRESETS = {
    "knowbase": knowbase,
    "overmind": overmind,
}


def get_preset(name: str, *, build_dir: str | Path = "build") -> Recipe:
    factory = PRESETS.get(name)
    if factory is None:
        raise ValidationError(
            "Unknown preset.",
            hint=f"Available presets: {', '.join(sorted(PRESETS))}.",
            context={"preset": name},
        )
    return factory(build_dir=build_dir)


__all__ = ["PRESETS", "get_preset", "knowbase", "overmind", "rust_alpine"]
