"""Shared helpers for integration tests."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

CARGO_TOML = """\
[package]
name = "overmind"
version = "0.1.0"
edition = "2021"

[dependencies]
"""

MAIN_RS = """\
fn main() {
    println!("overmind ready");
}
"""


@pytest.fixture
def docker() -> str:
    tool = shutil.which("docker")
    if tool is None:
        pytest.skip("docker is not installed")
    probe = subprocess.run([tool, "info"], capture_output=True, text=True, check=False)
    if probe.returncode != 0:
        pytest.skip("docker daemon is not reachable")
    return tool


@pytest.fixture
def rust_project(tmp_path: Path) -> Path:
    root = tmp_path / "overmind"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.toml").write_text(CARGO_TOML, encoding="utf-8")
    (root / "src" / "main.rs").write_text(MAIN_RS, encoding="utf-8")
    return root
