"""Provenance labels attached to runtime images.

Labels are purely descriptive; they never influence how the image runs.
"""

from __future__ import annotations

from collections.abc import Mapping

from slimage.errors import ValidationError
from slimage.models import PipelineConfig

TITLE_LABEL = "org.opencontainers.image.title"
BASE_NAME_LABEL = "org.opencontainers.image.base.name"
BUILDER_BASE_LABEL = "io.slimage.builder.base"
SOURCE_DIGEST_LABEL = "io.slimage.source.digest"
EXECUTABLE_DIGEST_LABEL = "io.slimage.executable.digest"


def validate_labels(labels: Mapping[str, object]) -> dict[str, str]:
    validated: dict[str, str] = {}
    for key, value in labels.items():
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("Label keys must be non-empty strings.", context={"key": str(key)})
        if not isinstance(value, str):
            raise ValidationError(
                "Label values must be strings.",
                context={"key": key, "type": type(value).__name__},
            )
        validated[key] = value
    return dict(sorted(validated.items()))


def provenance_labels(
    config: PipelineConfig,
    *,
    source_digest: str | None = None,
    executable_digest: str | None = None,
) -> dict[str, str]:
    labels = {
        TITLE_LABEL: config.binary_name,
        BASE_NAME_LABEL: str(config.runtime.base),
        BUILDER_BASE_LABEL: str(config.builder.base),
    }
    if source_digest is not None:
        labels[SOURCE_DIGEST_LABEL] = f"sha256:{source_digest}"
    if executable_digest is not None:
        labels[EXECUTABLE_DIGEST_LABEL] = f"sha256:{executable_digest}"
    labels.update(validate_labels(config.runtime.labels))
    return dict(sorted(labels.items()))


__all__ = [
    "BASE_NAME_LABEL",
    "BUILDER_BASE_LABEL",
    "EXECUTABLE_DIGEST_LABEL",
    "SOURCE_DIGEST_LABEL",
    "TITLE_LABEL",
    "provenance_labels",
    "validate_labels",
]
