"""
Swap file management.

Phase 1 creates a permanent swap file; phase 2 wraps the frontend build
in a temporary one. Both allocate the same way: ``fallocate`` first,
``dd`` when the filesystem does not support it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from vpsbootstrap.core.engine.executor import StepContext

logger = logging.getLogger(__name__)


def allocate_swap(ctx: StepContext, path: Path, size_mb: int, prefix: str = "") -> None:
    """Create, format and enable a swap file of ``size_mb`` MiB."""
    receipt = ctx.sh(
        f"{prefix}fallocate",
        ["fallocate", "-l", f"{size_mb}M", path],
        sudo=True,
        check=False,
    )
    if not receipt.ok:
        logger.info("fallocate unavailable for %s (%s), falling back to dd", path, receipt.error)
        ctx.sh(
            f"{prefix}dd",
            ["dd", "if=/dev/zero", f"of={path}", "bs=1M", f"count={size_mb}"],
            sudo=True,
            timeout=ctx.settings.long_command_timeout,
        )

    ctx.sh(f"{prefix}chmod", ["chmod", "600", path], sudo=True)
    ctx.sh(f"{prefix}mkswap", ["mkswap", path], sudo=True)
    ctx.sh(f"{prefix}swapon", ["swapon", path], sudo=True)


def release_swap(ctx: StepContext, path: Path, prefix: str = "") -> bool:
    """Disable and delete a swap file. Failures are reported, not raised."""
    off = ctx.sh(f"{prefix}swapoff", ["swapoff", path], sudo=True, check=False)
    rm = ctx.sh(f"{prefix}rm", ["rm", "-f", path], sudo=True, check=False)
    if off.ok and rm.ok:
        return True
    ctx.warn(f"Could not fully release swap file {path}: {off.error or rm.error}")
    return False


@contextmanager
def build_swap(ctx: StepContext, path: Path, size_mb: int) -> Iterator[Path]:
    """Temporary swap for the lifetime of the block.

    Released on normal exit and on any exception, including a failure
    half-way through allocation.
    """
    prefix = "build-swap-"
    try:
        allocate_swap(ctx, path, size_mb, prefix=prefix)
        yield path
    finally:
        release_swap(ctx, path, prefix=prefix)
