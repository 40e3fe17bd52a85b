"""
Mock adapter — universal test double for all adapter operations.

Used by ``--mock`` runs and by the test suite. Records every action it
receives and answers with success unless told otherwise per action ID.
Handlers can simulate side effects (e.g. creating the swap file that
``fallocate`` would have created).
"""

from __future__ import annotations

from typing import Callable

from vpsbootstrap.adapters.base import Adapter, ExecutionContext
from vpsbootstrap.core.models.action import Receipt

Handler = Callable[[ExecutionContext], Receipt | None]


class MockAdapter(Adapter):
    """Universal mock adapter.

    Response precedence for an action ID: handler, canned receipt,
    default success.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._handlers: dict[str, Handler] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def action_ids(self) -> list[str]:
        return [c.action.id for c in self._call_log]

    @property
    def commands(self) -> list[list[str]]:
        """argv of every call that carried one, in call order."""
        return [list(c.params["argv"]) for c in self._call_log if c.params.get("argv")]

    def calls_for(self, action_id: str) -> list[ExecutionContext]:
        return [c for c in self._call_log if c.action.id == action_id]

    def was_called(self, action_id: str) -> bool:
        return any(c.action.id == action_id for c in self._call_log)

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        """Set a custom response for a specific action ID."""
        self._responses[action_id] = receipt

    def set_output(self, action_id: str, output: str) -> None:
        self._responses[action_id] = Receipt.success(
            adapter=self._name, action_id=action_id, output=output
        )

    def set_failure(self, action_id: str, error: str = "Mock failure") -> None:
        """Configure a specific action to fail."""
        self._responses[action_id] = Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
            return_code=1,
        )

    def set_handler(self, action_id: str, handler: Handler) -> None:
        """Run ``handler`` for an action; a None return means default success."""
        self._handlers[action_id] = handler

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action_id = context.action.id

        if action_id in self._handlers:
            receipt = self._handlers[action_id](context)
            if receipt is not None:
                return receipt

        if action_id in self._responses:
            return self._responses[action_id].model_copy()

        return Receipt.success(
            adapter=self._name,
            action_id=action_id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log, handlers and custom responses."""
        self._call_log.clear()
        self._responses.clear()
        self._handlers.clear()
