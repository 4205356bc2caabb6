"""Pipeline orchestration: run both stages for one or many executables."""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from slimage.backends import LocalBackend, PipelineBackend
from slimage.bases import BaseImageStore
from slimage.errors import LockfileError
from slimage.lockfile import Lockfile, read_lockfile
from slimage.models import BuildRequest, PipelineConfig, PipelineResult, SourceTree
from slimage.observability import StructuredLogger
from slimage.policy import Policy, ensure_build_policy


@dataclass(frozen=True, slots=True)
class PipelineJob:
    config: PipelineConfig
    source: SourceTree
    backend: PipelineBackend
    output_dir: Path
    policy: Policy = field(default_factory=Policy)
    frozen: bool = False
    lock_path: Path | None = None


def default_lock_path(config: PipelineConfig, output_dir: str | Path) -> Path:
    return Path(output_dir) / f"{config.binary_name}.lock"


def base_digests(store: BaseImageStore, config: PipelineConfig) -> dict[str, str]:
    return {
        "builder": store.digest(config.builder.base),
        "runtime": store.digest(config.runtime.base),
    }


def build_pipeline(
    config: PipelineConfig,
    source: SourceTree,
    *,
    backend: PipelineBackend,
    output_dir: str | Path,
    policy: Policy | None = None,
    logger: StructuredLogger | None = None,
    frozen: bool = False,
    lock_path: str | Path | None = None,
) -> PipelineResult:
    """Build one runtime image: builder stage, then runtime assembly.

    Every failure is fatal and propagates unchanged.  In frozen mode the
    lockfile must match the current configuration and source tree before any
    stage runs, and a locked executable digest is handed to the backend,
    which checks it before the image is written.
    """
    policy = policy or Policy()
    ensure_build_policy(policy=policy, frozen=frozen, pipeline=config.binary_name)
    # Reports embed this run only; the caller's logger receives a copy.
    run_logger = StructuredLogger()
    try:
        return _run_pipeline(
            config,
            source,
            backend=backend,
            output_dir=output_dir,
            policy=policy,
            logger=run_logger,
            frozen=frozen,
            lock_path=lock_path,
        )
    finally:
        if logger is not None:
            logger.extend(run_logger.records)


def _run_pipeline(
    config: PipelineConfig,
    source: SourceTree,
    *,
    backend: PipelineBackend,
    output_dir: str | Path,
    policy: Policy,
    logger: StructuredLogger,
    frozen: bool,
    lock_path: str | Path | None,
) -> PipelineResult:
    lock: Lockfile | None = None
    if frozen:
        path = Path(lock_path) if lock_path is not None else default_lock_path(config, output_dir)
        lock = read_lockfile(path)
        _assert_lock_matches(lock, config, source, backend=backend, path=path)

    request = BuildRequest(
        config=config,
        source=source,
        output_dir=Path(output_dir),
        policy=policy,
        expected_executable_digest=lock.executable_digest if lock is not None else None,
    )
    logger.log(
        operation="pipeline_start",
        pipeline=config.binary_name,
        stage=None,
        builder=None,
        message="Starting pipeline.",
        extra={"backend": backend.name, "frozen": frozen},
    )
    backend.prepare(request)
    try:
        result = backend.execute(request, logger=logger)
    finally:
        backend.cleanup(request)

    logger.log(
        operation="pipeline_complete",
        pipeline=config.binary_name,
        stage=None,
        builder=None,
        message="Completed pipeline.",
        extra={"image_ref": result.image_ref, "cache_hit": result.cache_hit},
    )
    return result


def build_many(jobs: Sequence[PipelineJob], *, max_workers: int | None = None) -> list[PipelineResult]:
    """Run independent pipelines concurrently; results follow job order.

    Each job gets its own logger and builder environment.  All jobs run to
    completion before the first failure (in job order) is re-raised.
    """
    if not jobs:
        return []
    with ThreadPoolExecutor(max_workers=max_workers or len(jobs)) as executor:
        futures = [
            executor.submit(
                build_pipeline,
                job.config,
                job.source,
                backend=job.backend,
                output_dir=job.output_dir,
                policy=job.policy,
                frozen=job.frozen,
                lock_path=job.lock_path,
            )
            for job in jobs
        ]
    return [future.result() for future in futures]


def _assert_lock_matches(
    lock: Lockfile,
    config: PipelineConfig,
    source: SourceTree,
    *,
    backend: PipelineBackend,
    path: Path,
) -> None:
    checks = [
        ("config_digest", lock.config_digest, config.digest()),
        ("source_digest", lock.source_digest, source.digest()),
    ]
    if isinstance(backend, LocalBackend):
        current = base_digests(backend.store, config)
        for role, digest in sorted(current.items()):
            locked = lock.bases.get(f"{role}_digest")
            if locked is not None:
                checks.append((f"{role}_digest", locked, digest))

    for name, expected, actual in checks:
        if expected != actual:
            raise LockfileError(
                "Frozen build lockfile is stale.",
                hint="Re-run `slimage lock` and commit the updated lockfile.",
                context={
                    "operation": "build",
                    "mode": "frozen",
                    "pipeline": config.binary_name,
                    "field": name,
                    "expected": expected,
                    "actual": actual,
                    "path": str(path),
                },
            )


__all__ = [
    "PipelineJob",
    "base_digests",
    "build_many",
    "build_pipeline",
    "default_lock_path",
]
