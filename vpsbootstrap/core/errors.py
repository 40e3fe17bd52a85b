"""
Error taxonomy for provisioning runs.

Input errors are recovered where they occur (the collector re-prompts).
Everything else is fatal for the current run: the pipeline runner turns
it into a failed ``PipelineResult`` and the CLI prints the step context
and cause before exiting.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vpsbootstrap.core.models.action import Receipt


class ProvisioningError(Exception):
    """Base class for every error raised by vpsbootstrap."""


class InputValidationError(ProvisioningError):
    """Operator input does not match the expected format."""

    def __init__(self, field: str, message: str, hints: list[str] | None = None):
        super().__init__(message)
        self.field = field
        self.message = message
        self.hints = hints or []


class PreconditionError(ProvisioningError):
    """The host is not in a state where the phase may start.

    Wrong OS release, wrong privilege level, missing handoff data, or
    another run holding the lock. Raised before any mutation.
    """


class StepExecutionError(ProvisioningError):
    """An external command inside a step returned non-success."""

    def __init__(self, step: str, message: str, receipt: Receipt | None = None):
        super().__init__(message)
        self.step = step
        self.message = message
        self.receipt = receipt

    @property
    def detail(self) -> str:
        """Captured stderr/stdout of the failing command, if any."""
        if self.receipt is None:
            return ""
        return (self.receipt.error or self.receipt.output or "").strip()


class ConfigValidationError(StepExecutionError):
    """A rewritten daemon configuration failed its syntax or effective-value check.

    By the time this is raised the original file has been restored.
    """


class UnsupportedPlatformError(ProvisioningError):
    """The host CPU architecture has no matching release artifact."""

    def __init__(self, machine: str):
        super().__init__(f"Unsupported architecture: {machine}")
        self.machine = machine
