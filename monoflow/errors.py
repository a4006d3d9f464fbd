"""Error types for monoflow.

Three families, matching how far an error is allowed to travel:

- ConfigurationError: bad workspace setup or arguments. Fatal before any
  task is scheduled.
- ChangeDetectionError: a git query failed while computing changes.
  Fatal, reported with the baseline that was being resolved.
- TaskExecutionFailure: one or more package scripts exited non-zero.
  Collected into the run report and raised only after the run is summarized.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TaskRun


class MonoflowError(Exception):
    """Base class for all errors reported by the CLI.

    Attributes:
        message: Human-readable description of what went wrong.
        hint: Optional suggestion printed after the message.
        exit_code: Process exit code the CLI should use.
    """

    exit_code = 1

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\n{self.hint}"
        return self.message


class ConfigurationError(MonoflowError):
    """Invalid workspace, manifest, config file, glob, ref, or flags."""


class ChangeDetectionError(MonoflowError):
    """A git operation failed while determining changed packages."""

    def __init__(
        self, message: str, *, baseline: str | None = None, hint: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.baseline = baseline

    def __str__(self) -> str:
        text = super().__str__()
        if self.baseline:
            return f"{text} (baseline: {self.baseline})"
        return text


class TaskExecutionFailure(MonoflowError):
    """One or more package scripts exited with a non-zero code."""

    def __init__(self, failures: list[TaskRun]) -> None:
        first = failures[0]
        super().__init__(
            f"Received non-zero exit code {first.exit_code} during execution"
        )
        self.failures = failures
        self.exit_code = first.exit_code or 1
