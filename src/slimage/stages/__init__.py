"""Builder and runtime assembly stages."""

from .builder import BuilderStage, BuilderStageResult
from .runtime import EXECUTABLE_MODE, RuntimeAssemblyStage, missing_executable_hint

__all__ = [
    "BuilderStage",
    "BuilderStageResult",
    "EXECUTABLE_MODE",
    "RuntimeAssemblyStage",
    "missing_executable_hint",
]
