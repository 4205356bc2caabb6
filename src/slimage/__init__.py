"""Public package entrypoint for the slimage two-stage pipeline SDK."""

from .arena import BuilderEnvironment
from .backends import DockerBackend, LocalBackend, PipelineBackend, get_backend
from .bases import BaseImageStore
from .errors import (
    AssemblyError,
    BackendExecutionError,
    BuildError,
    EnvironmentSetupError,
    ErrorCode,
    LockfileError,
    PolicyError,
    ReproducibilityError,
    SlimageError,
    ValidationError,
)
from .models import (
    BaseImageRef,
    BuilderConfig,
    BuildRequest,
    CompiledExecutable,
    PipelineConfig,
    PipelineResult,
    RuntimeConfig,
    RuntimeImage,
    SourceTree,
)
from .observability import StructuredLogger
from .pipeline import PipelineJob, build_many, build_pipeline
from .policy import Policy
from .presets import knowbase, overmind
from .recipe import Recipe

__all__ = [
    "AssemblyError",
    "BackendExecutionError",
    "BaseImageRef",
    "BaseImageStore",
    "BuildError",
    "BuildRequest",
    "BuilderConfig",
    "BuilderEnvironment",
    "CompiledExecutable",
    "DockerBackend",
    "EnvironmentSetupError",
    "ErrorCode",
    "LocalBackend",
    "LockfileError",
    "PipelineBackend",
    "PipelineConfig",
    "PipelineJob",
    "PipelineResult",
    "Policy",
    "PolicyError",
    "Recipe",
    "ReproducibilityError",
    "RuntimeConfig",
    "RuntimeImage",
    "SlimageError",
    "SourceTree",
    "StructuredLogger",
    "ValidationError",
    "build_many",
    "build_pipeline",
    "get_backend",
    "knowbase",
    "overmind",
]
