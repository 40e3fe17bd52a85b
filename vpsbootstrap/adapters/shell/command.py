"""
Shell command adapter — run host commands and capture their output.

``run_command`` is the single place ``subprocess.run`` is called; the
git and node adapters build their argv and delegate here.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from pathlib import Path
from typing import Any

from vpsbootstrap.adapters.base import Adapter, ExecutionContext
from vpsbootstrap.core.models.action import Receipt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600

# Keep receipts small; the tail of a build log is what matters.
_OUTPUT_TAIL = 4000


def _tail(text: str | None) -> str:
    if not text:
        return ""
    return text[-_OUTPUT_TAIL:].strip()


def run_command(
    adapter: str,
    action_id: str,
    argv: list[str],
    *,
    cwd: str | None = None,
    env_overrides: dict[str, str] | None = None,
    timeout: int | None = DEFAULT_TIMEOUT,
    input_text: str | None = None,
    interactive: bool = False,
) -> Receipt:
    """Run ``argv`` and wrap the outcome in a Receipt.

    Interactive commands (``passwd``) inherit the terminal: nothing is
    captured and no timeout applies.
    """
    env = None
    if env_overrides:
        env = os.environ.copy()
        env.update({k: str(v) for k, v in env_overrides.items()})

    display = shlex.join(argv)
    logger.debug("Executing: %s (cwd=%s)", display, cwd)
    start = time.monotonic()

    try:
        if interactive:
            result = subprocess.run(argv, cwd=cwd, env=env)
        else:
            result = subprocess.run(
                argv,
                cwd=cwd,
                env=env,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
    except subprocess.TimeoutExpired:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command timed out after {timeout}s: {display}",
            metadata={"command": display, "timeout": timeout},
        )
    except FileNotFoundError:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command not found: {argv[0]}",
            return_code=127,
            metadata={"command": display},
        )
    except OSError as e:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command execution error: {e}",
            metadata={"command": display},
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = _tail(getattr(result, "stdout", None))
    stderr = _tail(getattr(result, "stderr", None))

    if result.returncode == 0:
        return Receipt.success(
            adapter=adapter,
            action_id=action_id,
            output=stdout,
            return_code=0,
            duration_ms=elapsed_ms,
            metadata={"command": display, "stderr": stderr},
        )
    return Receipt.failure(
        adapter=adapter,
        action_id=action_id,
        error=stderr or stdout or f"Command exited with code {result.returncode}",
        return_code=result.returncode,
        duration_ms=elapsed_ms,
        metadata={"command": display, "stdout": stdout},
    )


def with_sudo(argv: list[str], sudo: bool) -> list[str]:
    """Prefix ``sudo`` unless already running as root."""
    if sudo and os.geteuid() != 0:
        return ["sudo", *argv]
    return list(argv)


class ShellCommandAdapter(Adapter):
    """Execute host commands and capture output.

    Action params:
        argv (list[str]): Command and arguments. Never run through a shell;
            steps that need a pipe pass ``["bash", "-c", "..."]`` explicitly.
        sudo (bool): Prefix with sudo when not root (default: False).
        cwd (str): Working directory.
        env (dict): Extra environment variables.
        input (str): Text fed to stdin.
        interactive (bool): Attach to the terminal (no capture, no timeout).
        timeout (int): Timeout in seconds (default: 600).
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        argv = context.params.get("argv")
        if not argv or not isinstance(argv, list):
            return False, "Missing required param: 'argv'"

        cwd = context.params.get("cwd")
        # Dry runs validate before earlier steps would have created cwd
        if cwd and not context.dry_run and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params: dict[str, Any] = context.params
        argv = with_sudo([str(a) for a in params["argv"]], params.get("sudo", False))
        return run_command(
            self.name,
            context.action.id,
            argv,
            cwd=params.get("cwd"),
            env_overrides=params.get("env"),
            timeout=context.timeout or DEFAULT_TIMEOUT,
            input_text=params.get("input"),
            interactive=params.get("interactive", False),
        )
