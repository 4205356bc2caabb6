"""Command line entry point: ``slimage build|dockerfile|lock|inspect``."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path

from slimage.backends import BACKENDS, DockerBackend, LocalBackend, PipelineBackend
from slimage.bases import BaseImageStore
from slimage.compiler import emit_dockerfile
from slimage.config import load_configs
from slimage.errors import SlimageError, ValidationError
from slimage.lockfile import build_lockfile, write_lockfile
from slimage.models import PipelineConfig, SourceTree
from slimage.observability import StructuredLogger
from slimage.oci import read_oci_layout
from slimage.packages import RepositoryInstaller
from slimage.pipeline import base_digests, build_pipeline, default_lock_path
from slimage.policy import Policy
from slimage.presets import PRESETS, get_preset


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slimage",
        description="Compile one executable in a builder stage and ship it in a minimal image.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    build = commands.add_parser("build", help="Run the two-stage pipeline.")
    _add_selection(build)
    build.add_argument("--source", required=True, help="Source tree root.")
    build.add_argument("--output", default="build", help="Output directory.")
    build.add_argument("--backend", choices=BACKENDS, default="local")
    build.add_argument("--bases", help="Base image store root (local backend).")
    build.add_argument("--packages-repo", help="Offline package repository (local backend).")
    build.add_argument("--cache", help="Executable cache directory (local backend).")
    build.add_argument("--frozen", action="store_true", help="Require a matching lockfile.")
    build.add_argument("--lock", help="Lockfile path (defaults to <output>/<name>.lock).")
    build.add_argument("--offline", action="store_true", help="Forbid network access.")
    build.add_argument(
        "--no-verify-linkage",
        action="store_true",
        help="Skip the ELF interpreter and library check.",
    )
    build.add_argument("--log-json", help="Write structured log records as JSON lines.")

    dockerfile = commands.add_parser("dockerfile", help="Emit a two-stage Dockerfile.")
    _add_selection(dockerfile)
    dockerfile.add_argument("--source", help="Source tree root (enables --locked detection).")
    dockerfile.add_argument("--output", required=True, help="Directory for the Dockerfile.")

    lock = commands.add_parser("lock", help="Write a lockfile for a pipeline.")
    _add_selection(lock)
    lock.add_argument("--source", required=True, help="Source tree root.")
    lock.add_argument("--bases", help="Base image store root; pins base archive digests.")
    lock.add_argument("--output", help="Lockfile path (defaults to build/<name>.lock).")

    inspect = commands.add_parser("inspect", help="Summarize an OCI image layout.")
    inspect.add_argument("layout", help="OCI image layout directory.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        payload = _dispatch(args)
    except SlimageError as exc:
        print(json.dumps(exc.to_dict(), indent=2, sort_keys=True), file=sys.stderr)
        return 1
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def _dispatch(args: argparse.Namespace) -> dict[str, object]:
    if args.command == "build":
        return _build(args)
    if args.command == "dockerfile":
        config = _select_config(args)
        source = SourceTree(root=Path(args.source)) if args.source else None
        emission = emit_dockerfile(config, args.output, source=source)
        return {"dockerfile": str(emission.path), "digest": emission.digest}
    if args.command == "lock":
        config = _select_config(args)
        digests = base_digests(BaseImageStore(args.bases), config) if args.bases else None
        lock = build_lockfile(config, SourceTree(root=Path(args.source)), base_digests=digests)
        path = write_lockfile(lock, args.output or default_lock_path(config, "build"))
        return {"lockfile": str(path), "config_digest": lock.config_digest}
    inspection = read_oci_layout(args.layout)
    return {
        "manifest_digest": inspection.manifest_digest,
        "ref_name": inspection.ref_name,
        "architecture": inspection.architecture,
        "command": list(inspection.command),
        "labels": inspection.labels,
        "added_paths": list(inspection.added_paths),
    }


def _build(args: argparse.Namespace) -> dict[str, object]:
    config = _select_config(args)
    policy = Policy(
        network_mode="offline" if args.offline else "online",
        verify_linkage=not args.no_verify_linkage,
    )
    logger = StructuredLogger()
    try:
        result = build_pipeline(
            config,
            SourceTree(root=Path(args.source)),
            backend=_backend(args),
            output_dir=args.output,
            policy=policy,
            logger=logger,
            frozen=args.frozen,
            lock_path=args.lock,
        )
    finally:
        if args.log_json:
            logger.to_json_lines(args.log_json)
    return {
        "binary": result.binary_name,
        "backend": result.backend,
        "image_ref": result.image_ref,
        "layout": str(result.layout_path) if result.layout_path else None,
        "report": str(result.report_path) if result.report_path else None,
        "cache_hit": result.cache_hit,
    }


def _backend(args: argparse.Namespace) -> PipelineBackend:
    if args.backend == "docker":
        return DockerBackend()
    if not args.bases:
        raise ValidationError(
            "The local backend needs a base image store.",
            hint="Pass --bases <dir> holding <name>/<version>/rootfs.tar archives.",
            context={"backend": "local"},
        )
    return LocalBackend(
        store=BaseImageStore(args.bases),
        installer=RepositoryInstaller(Path(args.packages_repo)) if args.packages_repo else None,
        cache_dir=Path(args.cache) if args.cache else None,
    )


def _add_selection(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--preset", choices=sorted(PRESETS), help="Built-in pipeline.")
    group.add_argument("--config", help="TOML file with [pipelines.<name>] tables.")
    parser.add_argument("--pipeline", help="Pipeline name within --config.")


def _select_config(args: argparse.Namespace) -> PipelineConfig:
    if args.preset:
        return get_preset(args.preset).config()
    configs = load_configs(args.config)
    if args.pipeline is None:
        if len(configs) == 1:
            return next(iter(configs.values()))
        raise ValidationError(
            "The configuration declares several pipelines.",
            hint=f"Pick one with --pipeline ({', '.join(configs)}).",
            context={"config": args.config},
        )
    if args.pipeline not in configs:
        raise ValidationError(
            "Unknown pipeline.",
            hint=f"Declared pipelines: {', '.join(configs)}.",
            context={"pipeline": args.pipeline, "config": args.config},
        )
    return configs[args.pipeline]


if __name__ == "__main__":
    raise SystemExit(main())
