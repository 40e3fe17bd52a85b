"""
Adapter registry — central dispatch for all adapter operations.

Steps never talk to adapters directly; every action goes through
``execute_action``, which validates, honours dry-run and mock mode, and
times the call. It never raises.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from vpsbootstrap.adapters.base import Adapter, ExecutionContext
from vpsbootstrap.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for adapters.

    Features:
        - Register adapters by name
        - Mock mode: answer every action with success, touching nothing
        - Dry-run: validate mutating actions and report them as skipped;
          read-only actions still execute
        - Availability: actions on an adapter whose tool is missing fail
          without running
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def execute_action(self, action: Action, dry_run: bool = False) -> Receipt:
        """Execute an action through the appropriate adapter.

        1. Resolve the adapter (or mock)
        2. Validate the action
        3. Skip when dry-running a mutating action
        4. Fail if the backing tool is not installed, else execute
        5. Return a Receipt (never raises)
        """
        start_time = time.monotonic()
        context = ExecutionContext(action=action, dry_run=dry_run, params=action.params)

        if self._mock_mode:
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output=f"[mock] {action.adapter}:{action.id} executed",
                metadata={"mock": True, "dry_run": dry_run},
            )

        adapter = self._adapters.get(action.adapter)

        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation error: {e}",
            )
        if not is_valid:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {error_msg}",
            )

        if dry_run and not action.read_only:
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] {action.description or action.id}",
                metadata={"dry_run": True},
            )

        try:
            available = adapter.is_available()
        except OSError as e:
            logger.debug("Availability check for %s failed: %s", action.adapter, e)
            available = False
        if not available:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"'{action.adapter}' is not available on this host",
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            # A broken adapter still yields a receipt
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt


def default_registry(home: Path, mock_mode: bool = False) -> AdapterRegistry:
    """Registry with every production adapter registered.

    ``home`` is the account whose nvm and pnpm installs the node
    adapter drives.
    """
    from vpsbootstrap.adapters.languages.node import NodeAdapter
    from vpsbootstrap.adapters.shell.command import ShellCommandAdapter
    from vpsbootstrap.adapters.shell.filesystem import FilesystemAdapter
    from vpsbootstrap.adapters.vcs.git import GitAdapter

    registry = AdapterRegistry(mock_mode=mock_mode)
    registry.register(ShellCommandAdapter())
    registry.register(FilesystemAdapter())
    registry.register(GitAdapter())
    registry.register(
        NodeAdapter(
            nvm_dir=home / ".nvm",
            pnpm_home=home / ".local" / "share" / "pnpm",
        )
    )
    return registry
