"""
Git adapter — repository retrieval over SSH.

Clones use a dedicated deploy key through ``GIT_SSH_COMMAND`` so the
operator's agent and default identities are never involved.
"""

from __future__ import annotations

import logging
import shlex
import shutil
from pathlib import Path

from vpsbootstrap.adapters.base import Adapter, ExecutionContext
from vpsbootstrap.adapters.shell.command import run_command
from vpsbootstrap.core.models.action import Receipt

logger = logging.getLogger(__name__)

_OPERATIONS = {"clone", "is_repo"}


def ssh_command_for_key(key_path: str) -> str:
    """``GIT_SSH_COMMAND`` value pinning a single identity file."""
    return " ".join(
        [
            "ssh",
            "-i",
            shlex.quote(key_path),
            "-o",
            "IdentitiesOnly=yes",
            "-o",
            "StrictHostKeyChecking=accept-new",
        ]
    )


class GitAdapter(Adapter):
    """Git operations.

    Action params:
        operation (str): 'clone' or 'is_repo'.
        url (str): Repository URL (for 'clone').
        dest (str): Target directory.
        key_path (str): Private key used for SSH transport (for 'clone').
        timeout (int): Timeout in seconds (default: 600).
    """

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in _OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_OPERATIONS))}"

        if not context.params.get("dest"):
            return False, "Missing required param: 'dest'"

        if operation == "clone" and not context.params.get("url"):
            return False, "Missing required param: 'url' for clone operation"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        dest = Path(context.params["dest"])

        if operation == "is_repo":
            is_repo = (dest / ".git").is_dir()
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=str(is_repo),
                metadata={"is_repo": is_repo, "path": str(dest)},
            )

        url = context.params["url"]
        env: dict[str, str] = {}
        key_path = context.params.get("key_path")
        if key_path:
            env["GIT_SSH_COMMAND"] = ssh_command_for_key(key_path)

        logger.info("Cloning %s into %s", url, dest)
        return run_command(
            self.name,
            context.action.id,
            ["git", "clone", url, str(dest)],
            cwd=str(dest.parent) if dest.parent.is_dir() else None,
            env_overrides=env,
            timeout=context.timeout or 600,
        )
