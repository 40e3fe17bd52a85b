"""
Adapter base — the protocol contract between steps and host tools.

Steps only talk to adapters through this protocol (via the registry),
never directly to subprocess or the filesystem. That is what makes
dry-runs, mocks and per-command receipts possible.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from vpsbootstrap.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    dry_run: bool = False
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def timeout(self) -> int | None:
        value = self.params.get("timeout")
        return int(value) if value is not None else None


class Adapter(ABC):
    """One family of host side effects (commands, files, git, node).

    ``execute`` reports every outcome, including failures, as a
    Receipt; the step context decides whether a failed receipt aborts
    the step. Implementations are registered with AdapterRegistry.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry key that actions address, e.g. ``shell``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the backing tool is installed here; checked before every execution."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Check parameters before anything runs.

        Returns:
            (is_valid, error_message); the message is empty when valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Perform the action. Must not raise."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
