"""
Action and Receipt models — the execution contract.

Steps never touch the host directly. They describe each side effect as
an Action, dispatch it through the adapter registry, and get a Receipt
back. Adapters never raise: a failed command is a Receipt with
``status="failed"`` and the captured stderr in ``error``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A single side effect requested by a step.

    ``read_only`` actions (checks such as ``exists`` or ``id -u``) are
    executed even in dry-run mode so idempotency checks stay truthful.
    """

    id: str                         # "<phase>:<step>:<op>"
    adapter: str                    # which adapter handles this
    step: str = ""                  # owning step name
    description: str = ""
    read_only: bool = False
    params: dict[str, Any] = Field(default_factory=dict)


class Receipt(BaseModel):
    """Outcome of one adapter execution."""

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    return_code: int | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        """A mutating action that was reported but not run (dry-run)."""
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
