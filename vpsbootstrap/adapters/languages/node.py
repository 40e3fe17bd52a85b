"""
Node.js adapter — nvm-managed runtime, npm, pnpm and pm2.

nvm is a shell function, not a binary, so every command runs inside a
``bash -c`` script that sources ``nvm.sh`` first and puts ``PNPM_HOME``
on PATH. ``sudo`` commands (``pm2 startup``) carry that PATH across.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from vpsbootstrap.adapters.base import Adapter, ExecutionContext
from vpsbootstrap.adapters.shell.command import run_command
from vpsbootstrap.core.models.action import Receipt

logger = logging.getLogger(__name__)

_OPERATIONS = {"install-runtime", "run", "version"}


class NodeAdapter(Adapter):
    """Node.js toolchain adapter.

    Action params:
        operation (str): One of 'install-runtime', 'run', 'version'.
        version (str): Node version (for 'install-runtime').
        argv (list[str]): Command to run inside the nvm environment (for 'run').
        sudo (bool): Run ``argv`` through ``sudo env PATH=...`` (for 'run').
        cwd (str): Working directory.
        env (dict): Extra environment variables.
        timeout (int): Timeout in seconds (default: 600).
    """

    def __init__(self, nvm_dir: Path, pnpm_home: Path):
        self._nvm_dir = nvm_dir
        self._pnpm_home = pnpm_home

    @property
    def name(self) -> str:
        return "node"

    def is_available(self) -> bool:
        return (self._nvm_dir / "nvm.sh").is_file()

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in _OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_OPERATIONS))}"

        if operation == "install-runtime" and not context.params.get("version"):
            return False, "Missing required param: 'version' for install-runtime operation"

        if operation == "run" and not context.params.get("argv"):
            return False, "Missing required param: 'argv' for run operation"

        return True, ""

    def script(self, argv: list[str], sudo: bool = False) -> str:
        """Build the bash script that runs ``argv`` with nvm loaded."""
        command = shlex.join(argv)
        if sudo:
            command = f'sudo env "PATH=$PATH" {command}'
        return "\n".join(
            [
                f"export NVM_DIR={shlex.quote(str(self._nvm_dir))}",
                '. "$NVM_DIR/nvm.sh"',
                f"export PNPM_HOME={shlex.quote(str(self._pnpm_home))}",
                'export PATH="$PNPM_HOME:$PATH"',
                command,
            ]
        )

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]

        if operation == "install-runtime":
            argv = ["nvm", "install", context.params["version"]]
        elif operation == "version":
            argv = ["node", "--version"]
        else:
            argv = [str(a) for a in context.params["argv"]]

        receipt = run_command(
            self.name,
            context.action.id,
            ["bash", "-c", self.script(argv, sudo=context.params.get("sudo", False))],
            cwd=context.params.get("cwd"),
            env_overrides=context.params.get("env"),
            timeout=context.timeout or 600,
        )

        if operation == "version" and receipt.ok:
            # "v22.12.0" → "22.12.0"
            receipt.output = receipt.output.strip().lstrip("v")
        return receipt
