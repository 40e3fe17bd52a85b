"""
Audit ledger — append-only run history.

Every phase run (including dry runs and runs that fail at a step)
appends one entry to ``<state_dir>/audit.ndjson``. Entries are never
modified or deleted.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterator

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    phase: str = ""                # harden, setup-app

    # Who and where
    hostname: str = ""
    username: str = ""
    dry_run: bool = False
    resume_from: str | None = None

    # Results
    status: str = ""               # ok, failed
    steps_total: int = 0
    steps_completed: int = 0
    steps_skipped: int = 0
    failed_step: str | None = None
    error: str | None = None
    duration_ms: int = 0

    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Append-only audit ledger writer."""

    def __init__(self, path: Path):
        self._path = path

    @classmethod
    def for_state_dir(cls, state_dir: Path) -> AuditWriter:
        return cls(state_dir / AUDIT_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an entry. A write failure is logged, never raised."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s/%s", entry.phase, entry.operation_id)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def _entries(self) -> Iterator[AuditEntry]:
        """Yield entries oldest first; corrupt lines are logged and skipped."""
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Failed to read audit ledger %s: %s", self._path, e)
            return

        for number, raw in enumerate(lines, start=1):
            if not raw.strip():
                continue
            try:
                yield AuditEntry.model_validate_json(raw)
            except ValidationError as e:
                logger.warning("Skipping corrupt audit entry at line %d: %s", number, e)

    def read_all(self) -> list[AuditEntry]:
        return list(self._entries())

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """The last ``n`` runs, oldest first."""
        return list(deque(self._entries(), maxlen=n))
