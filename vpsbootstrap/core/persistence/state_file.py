"""
State file persistence — atomic read/write for RunState.

State is stored as JSON in ``<state_dir>/current.json``. Writes are
atomic (write to temp file, then rename) so a crash mid-write never
leaves a truncated file behind.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError

from vpsbootstrap.core.models.state import RunState

logger = logging.getLogger(__name__)

STATE_FILE = "current.json"


def state_path(state_dir: Path) -> Path:
    return state_dir / STATE_FILE


def load_state(path: Path) -> RunState:
    """Load run state from a JSON file.

    Returns a fresh RunState when the file is missing or unreadable.
    """
    if not path.is_file():
        logger.info("No state file at %s, starting fresh", path)
        return RunState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = RunState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s, starting fresh", path, e)
    except (OSError, ValidationError) as e:
        logger.warning("Cannot load state from %s: %s, starting fresh", path, e)
    return RunState()


def save_state(state: RunState, path: Path) -> None:
    """Save run state (atomic write)."""
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    content = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".state_", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
        logger.debug("State saved to %s", path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save state to %s: %s", path, e)
        raise
