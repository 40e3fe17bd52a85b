"""
Configuration loader — settings and answers files.

Settings (versions, paths, sizes, timeouts) come from an optional YAML
file given with ``--config`` or ``$VPSB_CONFIG``; without one the
built-in defaults apply. Answers files pre-seed the operator questions.
Both are validated before anything runs.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from vpsbootstrap.core.models.settings import Settings

logger = logging.getLogger(__name__)

ENV_CONFIG = "VPSB_CONFIG"

ANSWER_FIELDS = frozenset(
    {
        "username",
        "hostname",
        "ssh_public_key",
        "ssh_port",
        "repository_url",
        "contact_email",
        "domain",
        "public_ip",
        "use_domain",
    }
)


class ConfigError(Exception):
    """A settings or answers file is missing or invalid."""


def _read_mapping(path: Path, kind: str) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"{kind} file not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{kind} file {path} must contain a YAML mapping")
    return raw


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from ``path`` (or ``$VPSB_CONFIG``), else defaults.

    Raises:
        ConfigError: If the file is missing, not YAML, or fails validation.
    """
    if path is None:
        env = os.environ.get(ENV_CONFIG)
        path = Path(env) if env else None

    if path is None:
        logger.debug("No settings file, using defaults")
        return Settings()

    logger.debug("Loading settings from %s", path)
    data = _read_mapping(path, "Settings")
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        errors = []
        for err in e.errors():
            loc = " → ".join(str(x) for x in err["loc"])
            errors.append(f"  {loc}: {err['msg']}")
        raise ConfigError(f"Invalid settings in {path}:\n" + "\n".join(errors)) from e


def load_answers(path: Path) -> dict[str, Any]:
    """Load an answers file.

    Values are validated later, field by field, by the collector. Only
    unknown keys are rejected here.
    """
    data = _read_mapping(path, "Answers")
    unknown = sorted(set(data) - ANSWER_FIELDS)
    if unknown:
        raise ConfigError(
            f"Unknown keys in answers file {path}: {', '.join(unknown)}. "
            f"Valid: {', '.join(sorted(ANSWER_FIELDS))}"
        )
    return data
