"""Pipeline failures, each tagged with a stable machine-readable code.

Every failure is fatal: nothing here is retried or downgraded. The CLI prints
:meth:`SlimageError.to_dict` so callers can branch on ``code`` instead of
parsing messages.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import ClassVar


class ErrorCode(StrEnum):
    VALIDATION = "E_VALIDATION"
    ENVIRONMENT = "E_ENVIRONMENT"
    BUILD = "E_BUILD"
    ASSEMBLY = "E_ASSEMBLY"
    BACKEND_EXECUTION = "E_BACKEND_EXECUTION"
    LOCKFILE = "E_LOCKFILE"
    REPRODUCIBILITY = "E_REPRODUCIBILITY"
    POLICY = "E_POLICY"


class SlimageError(Exception):
    error_code: ClassVar[ErrorCode]

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = self.error_code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        lines = [self.message]
        if self.hint:
            lines.append(f"Hint: {self.hint}")
        lines.extend(f"  {key}: {value}" for key, value in self.context.items() if value)
        return "\n".join(lines)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(SlimageError):
    """Configuration is malformed; raised before any stage runs."""

    error_code = ErrorCode.VALIDATION


class EnvironmentSetupError(SlimageError):
    """A base image or toolchain package could not be provided."""

    error_code = ErrorCode.ENVIRONMENT


class BuildError(SlimageError):
    """The build collaborator failed; ``diagnostics`` holds its output verbatim."""

    error_code = ErrorCode.BUILD

    def __init__(
        self,
        message: str,
        *,
        diagnostics: str = "",
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, hint=hint, context=context)
        self.diagnostics = diagnostics

    def to_dict(self) -> dict[str, object]:
        return {**super().to_dict(), "diagnostics": self.diagnostics}


class AssemblyError(SlimageError):
    error_code = ErrorCode.ASSEMBLY


class BackendExecutionError(SlimageError):
    error_code = ErrorCode.BACKEND_EXECUTION


class LockfileError(SlimageError):
    error_code = ErrorCode.LOCKFILE


class ReproducibilityError(SlimageError):
    error_code = ErrorCode.REPRODUCIBILITY


class PolicyError(SlimageError):
    error_code = ErrorCode.POLICY


__all__ = [
    "AssemblyError",
    "BackendExecutionError",
    "BuildError",
    "EnvironmentSetupError",
    "ErrorCode",
    "LockfileError",
    "PolicyError",
    "ReproducibilityError",
    "SlimageError",
    "ValidationError",
]
