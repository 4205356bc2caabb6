"""Pipeline execution backends."""

from slimage.errors import ValidationError

from .base import PipelineBackend, pipeline_output_dir, write_report
from .docker import DockerBackend
from .local import LocalBackend

BACKENDS = ("local", "docker")


def get_backend(name: str, **kwargs: object) -> PipelineBackend:
    if name == "local":
        return LocalBackend(**kwargs)  # type: ignore[arg-type]
    if name == "docker":
        return DockerBackend(**kwargs)  # type: ignore[arg-type]
    raise ValidationError(
        "Unknown pipeline backend.",
        hint=f"Supported backends: {', '.join(BACKENDS)}.",
        context={"backend": name},
    )


__all__ = [
    "BACKENDS",
    "DockerBackend",
    "LocalBackend",
    "PipelineBackend",
    "get_backend",
    "pipeline_output_dir",
    "write_report",
]
