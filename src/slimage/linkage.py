"""Cross-stage compatibility checks for compiled executables.

An executable compiled in the builder environment must run on the runtime
base. For ELF binaries that means its program interpreter and every
``DT_NEEDED`` library must exist in the runtime base layer, and its machine
type must match the image architecture.
"""

from __future__ import annotations

import io
from collections.abc import Iterable
from dataclasses import dataclass

from elftools.common.exceptions import ELFError
from elftools.elf.dynamic import DynamicSegment
from elftools.elf.elffile import ELFFile

from slimage.errors import AssemblyError
from slimage.models import Arch

ELF_MAGIC = b"\x7fELF"

ELF_MACHINE: dict[str, str] = {
    "x86_64": "EM_X86_64",
    "aarch64": "EM_AARCH64",
}

LIBRARY_DIRS = ("/lib", "/usr/lib", "/lib64", "/usr/lib64", "/usr/local/lib")


@dataclass(frozen=True, slots=True)
class Linkage:
    machine: str
    interpreter: str | None = None
    needed: tuple[str, ...] = ()

    @property
    def static(self) -> bool:
        return self.interpreter is None and not self.needed


def read_linkage(content: bytes) -> Linkage | None:
    """Return ELF linkage facts, or ``None`` when the content is not ELF."""
    if content[:4] != ELF_MAGIC:
        return None
    try:
        elffile = ELFFile(io.BytesIO(content))
        interpreter: str | None = None
        needed: list[str] = []
        for segment in elffile.iter_segments():
            if segment["p_type"] == "PT_INTERP":
                interpreter = segment.get_interp_name()
            elif isinstance(segment, DynamicSegment):
                needed.extend(
                    tag.needed for tag in segment.iter_tags() if tag.entry.d_tag == "DT_NEEDED"
                )
        machine = str(elffile.header["e_machine"])
    except ELFError as exc:
        raise AssemblyError(
            "Executable has a malformed ELF structure.",
            hint="Rebuild the executable; the builder output appears corrupted.",
            context={"error": str(exc)},
        ) from exc
    return Linkage(machine=machine, interpreter=interpreter, needed=tuple(needed))


def ensure_runnable(
    linkage: Linkage,
    *,
    base_paths: Iterable[str],
    arch: Arch,
    binary_name: str,
) -> None:
    available = set(base_paths)
    expected_machine = ELF_MACHINE[arch]
    if linkage.machine != expected_machine:
        raise AssemblyError(
            "Executable architecture does not match the image architecture.",
            hint="Compile for the image architecture or change the pipeline arch.",
            context={
                "binary": binary_name,
                "expected": expected_machine,
                "actual": linkage.machine,
            },
        )
    if linkage.interpreter is not None and linkage.interpreter not in available:
        raise AssemblyError(
            "Executable interpreter is missing from the runtime base.",
            hint="Link statically or pick a runtime base built on the same libc.",
            context={"binary": binary_name, "interpreter": linkage.interpreter},
        )
    missing = tuple(
        library
        for library in linkage.needed
        if not any(f"{directory}/{library}" in available for directory in LIBRARY_DIRS)
    )
    if missing:
        raise AssemblyError(
            "Executable needs shared libraries absent from the runtime base.",
            hint="Install the libraries in the runtime base or link them statically.",
            context={"binary": binary_name, "missing": ",".join(missing)},
        )


__all__ = ["ELF_MACHINE", "LIBRARY_DIRS", "Linkage", "ensure_runnable", "read_linkage"]
