"""
RunState — what the last runs of each phase did.

Serialized to ``<state_dir>/current.json`` after every run. It is a
convenience record for the operator (and for picking a
``--resume-from`` step); deleting it loses nothing the host itself
does not already reflect.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepRecord(BaseModel):
    """Outcome of one step in a recorded run."""

    name: str
    status: str = ""               # ok, skipped, failed
    reason: str = ""
    duration_ms: int = 0


class PhaseRecord(BaseModel):
    """Summary of the most recent run of a phase."""

    phase: str
    operation_id: str = ""
    started_at: str = ""
    ended_at: str = Field(default_factory=_now_iso)
    status: str = ""               # ok, failed
    dry_run: bool = False
    failed_step: str | None = None
    error: str | None = None
    steps: list[StepRecord] = Field(default_factory=list)

    @property
    def completed_steps(self) -> list[str]:
        return [s.name for s in self.steps if s.status == "ok"]


class RunState(BaseModel):
    """Root state model — serialized to current.json."""

    schema_version: int = 1

    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    hostname: str = ""
    username: str = ""

    phases: dict[str, PhaseRecord] = Field(default_factory=dict)

    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def record(self, entry: PhaseRecord) -> None:
        """Replace the stored record for ``entry.phase``."""
        self.phases[entry.phase] = entry
