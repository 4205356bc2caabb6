"""Pipeline lockfiles pinning configuration, source, and base images."""

from .io import build_lockfile, parse_lockfile, read_lockfile, serialize_lockfile, write_lockfile
from .model import LOCKFILE_VERSION, Lockfile

__all__ = [
    "LOCKFILE_VERSION",
    "Lockfile",
    "build_lockfile",
    "parse_lockfile",
    "read_lockfile",
    "serialize_lockfile",
    "write_lockfile",
]
