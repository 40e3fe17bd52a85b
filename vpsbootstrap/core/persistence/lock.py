"""
Run lock — one provisioning run per host at a time.

An exclusive, non-blocking ``flock`` on one host-wide file
(``/run/lock/vpsbootstrap.lock`` by default) shared by both phases, so
``setup-app`` cannot start while ``harden`` still runs as root. The
holder writes its PID into the file so a refused run can say who holds
it. The kernel drops the lock when the process exits, so a crashed run
never leaves a stale lock behind.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from types import TracebackType

from vpsbootstrap.core.errors import PreconditionError

logger = logging.getLogger(__name__)

# root creates the file in phase 1; the app user must still open it in phase 2
LOCK_MODE = 0o666


class RunLock:
    """Exclusive process lock used as a context manager."""

    def __init__(self, path: Path):
        self.path = path
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def holder_pid(self) -> int | None:
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return int(text) if text.isdigit() else None

    def _open(self) -> int:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT | os.O_EXCL, LOCK_MODE)
        except FileExistsError:
            # No O_CREAT here: protected_regular refuses it on another
            # user's file in a sticky directory such as /run/lock.
            return os.open(self.path, os.O_RDWR)
        os.fchmod(fd, LOCK_MODE)
        return fd

    def acquire(self) -> None:
        """Take the lock or raise PreconditionError naming the holder."""
        fd = self._open()
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            pid = self.holder_pid()
            holder = f"PID {pid}" if pid else "another process"
            raise PreconditionError(
                f"Another vpsbootstrap run is in progress ({holder}); lock: {self.path}"
            ) from None

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug("Acquired run lock %s", self.path)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            os.ftruncate(self._fd, 0)
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug("Released run lock %s", self.path)

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
