"""
Filesystem adapter — file and directory operations.

Provides a receipt-returning interface for the file edits the pipelines
make (hosts, fstab, sshd_config, authorized_keys, unit files) so they
can be dry-run and audited like any command.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from vpsbootstrap.adapters.base import Adapter, ExecutionContext
from vpsbootstrap.core.models.action import Receipt

logger = logging.getLogger(__name__)

_OPERATIONS = {"exists", "read", "write", "append", "mkdir", "copy", "remove"}


class FilesystemAdapter(Adapter):
    """File and directory operations with receipts.

    Action params:
        operation (str): One of 'exists', 'read', 'write', 'append',
            'mkdir', 'copy', 'remove'.
        path (str): Absolute target path.
        content (str): Content for 'write' and 'append'.
        mode (int): Permission bits applied after 'write' or 'mkdir'.
        dest (str): Destination for 'copy' (byte-for-byte, metadata kept).
    """

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True  # filesystem is always available

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"

        if operation not in _OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_OPERATIONS))}"

        path = context.params.get("path", "")
        if not path:
            return False, "Missing required param: 'path'"
        if not Path(path).is_absolute():
            return False, f"Path must be absolute: {path}"

        if operation in ("write", "append") and "content" not in context.params:
            return False, f"Missing required param: 'content' for {operation} operation"

        if operation == "copy" and not context.params.get("dest"):
            return False, "Missing required param: 'dest' for copy operation"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        target = Path(context.params["path"])

        try:
            handler = getattr(self, f"_{operation}")
            return handler(context, target)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "path": str(target)},
            )

    def _exists(self, ctx: ExecutionContext, target: Path) -> Receipt:
        exists = target.exists()
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=str(exists),
            metadata={"exists": exists, "is_dir": target.is_dir(), "path": str(target)},
        )

    def _read(self, ctx: ExecutionContext, target: Path) -> Receipt:
        if not target.is_file():
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"File not found: {target}",
            )
        content = target.read_text(encoding="utf-8")
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=content,
            metadata={"path": str(target), "size": len(content)},
        )

    def _write(self, ctx: ExecutionContext, target: Path) -> Receipt:
        content = ctx.params["content"]
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        self._chmod(ctx, target)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Written {len(content)} bytes to {target}",
            metadata={"path": str(target), "size": len(content)},
        )

    def _append(self, ctx: ExecutionContext, target: Path) -> Receipt:
        content = ctx.params["content"]
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("a", encoding="utf-8") as f:
            f.write(content)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Appended {len(content)} bytes to {target}",
            metadata={"path": str(target)},
        )

    def _mkdir(self, ctx: ExecutionContext, target: Path) -> Receipt:
        target.mkdir(parents=True, exist_ok=True)
        self._chmod(ctx, target)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Directory created: {target}",
            metadata={"path": str(target)},
        )

    def _copy(self, ctx: ExecutionContext, target: Path) -> Receipt:
        dest = Path(ctx.params["dest"])
        if not target.is_file():
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"File not found: {target}",
            )
        shutil.copy2(target, dest)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Copied {target} → {dest}",
            metadata={"path": str(target), "dest": str(dest)},
        )

    def _remove(self, ctx: ExecutionContext, target: Path) -> Receipt:
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()
        else:
            logger.debug("Nothing to remove at %s", target)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Removed {target}",
            metadata={"path": str(target)},
        )

    @staticmethod
    def _chmod(ctx: ExecutionContext, target: Path) -> None:
        mode = ctx.params.get("mode")
        if mode is not None:
            os.chmod(target, int(mode))
