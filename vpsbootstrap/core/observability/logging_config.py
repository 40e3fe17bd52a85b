"""
Logging configuration — set up once by the CLI entry point.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
this config. Operator-facing output (prompts, step markers, summaries)
goes through click, not logging; logs go to stderr and optionally to
a file so a provisioning run leaves a trail on the host.

Level precedence:
    --debug  >  --verbose  >  --quiet  >  VPSB_LOG_LEVEL  >  WARNING

Optional file output via VPSB_LOG_FILE / VPSB_LOG_FILE_LEVEL.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LEVEL = "VPSB_LOG_LEVEL"
ENV_FILE = "VPSB_LOG_FILE"
ENV_FILE_LEVEL = "VPSB_LOG_FILE_LEVEL"

# ── Formats ─────────────────────────────────────────────────────

# Console: (threshold, format, datefmt), first match wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s %(name)s: %(message)s", "%H:%M:%S"),
)
_CONSOLE_DEFAULT = "%(message)s"

# File: dated, with the PID the run lock records
_FILE_FORMAT = "%(asctime)s [%(process)d] %(levelname)-5s %(name)s — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LEVEL, "WARNING")


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_CONSOLE_DEFAULT)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name.
        log_file: Optional log file path (default: $VPSB_LOG_FILE).
        log_file_level: File level (default: $VPSB_LOG_FILE_LEVEL, else ``level``).
    """
    console_level = _parse_level(level)
    log_file = log_file or os.environ.get(ENV_FILE)
    log_file_level = log_file_level or os.environ.get(ENV_FILE_LEVEL)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(console_level)

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        try:
            handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            # An unwritable log file never stops a provisioning run
            root.warning("Cannot open log file %s: %s", log_file, e)
        else:
            handler.setLevel(file_level)
            handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
            root.addHandler(handler)
            root.setLevel(min(console_level, file_level))

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    numeric = logging.getLevelName(level.upper()) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
