"""Toolchain package installation into a builder environment."""

from __future__ import annotations

import shlex
import shutil
import subprocess
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from slimage.errors import EnvironmentSetupError, ValidationError
from slimage.models import PackageManager
from slimage.policy import Policy, ensure_network_allowed


@dataclass(frozen=True, slots=True)
class InstalledPackage:
    name: str
    paths: tuple[str, ...] = ()


class PackageInstaller(Protocol):
    name: str

    def install(self, packages: tuple[str, ...], *, rootfs: Path) -> tuple[InstalledPackage, ...]:
        """Install packages into the given root filesystem."""

    def install_command(self, packages: tuple[str, ...]) -> str:
        """Return the shell command that installs packages inside a build manifest."""


@dataclass(slots=True)
class ApkInstaller:
    name: str = "apk"
    tool: str = "apk"
    policy: Policy = field(default_factory=Policy)

    def install(self, packages: tuple[str, ...], *, rootfs: Path) -> tuple[InstalledPackage, ...]:
        if not packages:
            return ()
        ensure_network_allowed(policy=self.policy, operation="apk_add")
        if shutil.which(self.tool) is None:
            raise EnvironmentSetupError(
                "Package installation requires `apk` in PATH.",
                hint="Run on an Alpine host, use the docker backend, or an offline repository.",
                context={"installer": self.name, "packages": ",".join(packages)},
            )
        command = [self.tool, "--root", str(rootfs), "add", "--no-cache", *packages]
        result = subprocess.run(command, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            raise EnvironmentSetupError(
                "Toolchain package installation failed.",
                hint="Check package names and registry availability.",
                context={
                    "installer": self.name,
                    "command": shlex.join(command),
                    "returncode": str(result.returncode),
                    "stderr": result.stderr,
                },
            )
        return tuple(InstalledPackage(name=package) for package in packages)

    def install_command(self, packages: tuple[str, ...]) -> str:
        return shlex.join([self.tool, "add", "--no-cache", *packages])


@dataclass(slots=True)
class AptInstaller:
    """Debian-family installer; only usable inside an emitted build manifest."""

    name: str = "apt"

    def install(self, packages: tuple[str, ...], *, rootfs: Path) -> tuple[InstalledPackage, ...]:
        raise EnvironmentSetupError(
            "apt packages cannot be installed into a local builder environment.",
            hint="Use the docker backend for Debian-family builder bases.",
            context={"installer": self.name, "packages": ",".join(packages)},
        )

    def install_command(self, packages: tuple[str, ...]) -> str:
        return (
            "apt-get update && "
            + shlex.join(["apt-get", "install", "-y", "--no-install-recommends", *packages])
            + " && rm -rf /var/lib/apt/lists/*"
        )


@dataclass(slots=True)
class RepositoryInstaller:
    """Offline installer that unpacks ``<root>/<package>.tar`` archives."""

    root: Path
    name: str = "repository"

    def install(self, packages: tuple[str, ...], *, rootfs: Path) -> tuple[InstalledPackage, ...]:
        installed: list[InstalledPackage] = []
        for package in packages:
            archive_path = Path(self.root) / f"{package}.tar"
            if not archive_path.is_file():
                raise EnvironmentSetupError(
                    "Package not found in repository.",
                    hint="Add the package archive to the offline repository.",
                    context={
                        "installer": self.name,
                        "package": package,
                        "repository": str(self.root),
                    },
                )
            with tarfile.open(archive_path, mode="r:*") as archive:
                paths = tuple(
                    sorted(
                        "/" + member.name.removeprefix("./").lstrip("/")
                        for member in archive.getmembers()
                        if not member.isdir()
                    )
                )
                archive.extractall(rootfs, filter="tar")
            installed.append(InstalledPackage(name=package, paths=paths))
        return tuple(installed)

    def install_command(self, packages: tuple[str, ...]) -> str:
        raise ValidationError(
            "Offline repository packages cannot be emitted into a build manifest.",
            hint="Use the apk or apt package manager for emitted manifests.",
            context={"installer": self.name, "packages": ",".join(packages)},
        )


def get_installer(package_manager: PackageManager, *, policy: Policy | None = None) -> PackageInstaller:
    if package_manager == "apk":
        return ApkInstaller(policy=policy or Policy())
    if package_manager == "apt":
        return AptInstaller()
    raise ValidationError(
        "Unsupported package manager.",
        context={"package_manager": str(package_manager)},
    )


__all__ = [
    "AptInstaller",
    "ApkInstaller",
    "InstalledPackage",
    "PackageInstaller",
    "RepositoryInstaller",
    "get_installer",
]
