"""Build policy: what a pipeline run is allowed to do."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from slimage.errors import PolicyError

NetworkMode = Literal["online", "offline"]


@dataclass(frozen=True, slots=True)
class Policy:
    """Immutable build policy.

    ``require_frozen_lock`` rejects builds that are not checked against a
    lockfile. ``network_mode="offline"`` forbids registry package installs and
    maps to ``--network=none`` for container builds. ``verify_linkage`` runs
    the ELF interpreter and library check during runtime assembly.
    """

    require_frozen_lock: bool = False
    network_mode: NetworkMode = "online"
    verify_linkage: bool = True

    @property
    def offline(self) -> bool:
        return self.network_mode == "offline"


def ensure_build_policy(*, policy: Policy, frozen: bool, pipeline: str) -> None:
    if not frozen and policy.require_frozen_lock:
        raise PolicyError(
            "Policy requires builds to be checked against a lockfile.",
            hint="Pass frozen=True (or --frozen) with an up-to-date lockfile.",
            context={"operation": "build", "pipeline": pipeline},
        )


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if policy.offline:
        raise PolicyError(
            "Policy forbids network access for this build.",
            hint="Install toolchain packages from an offline repository instead.",
            context={"operation": operation},
        )
