"""Protocol for pipeline execution backends."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

from slimage.models import BuildRequest, PipelineResult
from slimage.observability import StructuredLogger


class PipelineBackend(Protocol):
    name: str

    def prepare(self, request: BuildRequest) -> None:
        """Prepare backend runtime resources."""

    def execute(self, request: BuildRequest, *, logger: StructuredLogger) -> PipelineResult:
        """Run both stages for one pipeline and return the produced image.

        When ``request.expected_executable_digest`` is set, a differing
        executable must fail the run before any image is published.
        """

    def cleanup(self, request: BuildRequest) -> None:
        """Release backend runtime resources."""


def pipeline_output_dir(request: BuildRequest) -> Path:
    return request.output_dir / request.config.binary_name


def write_report(path: Path, payload: dict[str, Any]) -> Path:
    """Write a backend report as canonical, human-readable JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return path
