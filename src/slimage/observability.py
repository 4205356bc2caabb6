"""Structured build records.

Each step of a pipeline appends one flat record naming the pipeline, the
stage (``None`` for pipeline-level events) and the build collaborator. The
records for a pipeline are embedded into its ``report.json``.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from slimage.errors import ValidationError

LEVELS = ("debug", "info", "warning", "error")


@dataclass(slots=True)
class StructuredLogger:
    records: list[dict[str, Any]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def log(
        self,
        *,
        operation: str,
        pipeline: str | None,
        stage: str | None,
        builder: str | None,
        message: str,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        if level not in LEVELS:
            raise ValidationError(
                "Unknown log level.",
                hint=f"Use one of: {', '.join(LEVELS)}.",
                context={"level": level},
            )
        record: dict[str, Any] = {
            "builder": builder,
            "level": level,
            "message": message,
            "operation": operation,
            "pipeline": pipeline,
            "stage": stage,
        }
        if extra:
            record["extra"] = extra
        with self._lock:
            self.records.append(record)

    def extend(self, records: list[dict[str, Any]]) -> None:
        with self._lock:
            self.records.extend(records)

    def records_for_pipeline(self, pipeline: str, *, stage: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            snapshot = list(self.records)
        return [
            record
            for record in snapshot
            if record["pipeline"] == pipeline and (stage is None or record["stage"] == stage)
        ]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            body = "".join(json.dumps(record, sort_keys=True) + "\n" for record in self.records)
        output_path.write_text(body, encoding="utf-8")
        return output_path
