"""
Phase handoff — the validated config, passed from phase 1 to phase 2.

Phase 1 runs as root and writes the file into the new user's home
(mode 600). Phase 2 runs as that user and loads it, so the operator
answers every question exactly once.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from vpsbootstrap.core.errors import PreconditionError
from vpsbootstrap.core.models.config import ProvisioningConfig
from vpsbootstrap.core.models.template import GeneratedFile

logger = logging.getLogger(__name__)


def render_handoff(config: ProvisioningConfig, path: Path) -> GeneratedFile:
    content = json.dumps(config.model_dump(mode="json"), indent=2) + "\n"
    return GeneratedFile(
        path=str(path),
        content=content,
        mode=0o600,
        reason="Configuration handoff for application setup",
    )


def load_handoff(path: Path) -> ProvisioningConfig | None:
    """Load the handoff written by phase 1.

    Returns None when there is none. A file that exists but does not
    validate is an error: silently re-asking would hide a tampered or
    truncated file.
    """
    if not path.is_file():
        logger.info("No handoff file at %s", path)
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ProvisioningConfig.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise PreconditionError(f"Invalid handoff file {path}: {e}") from e
