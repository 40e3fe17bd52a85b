"""
Generated file model — used by all generators.
"""

from __future__ import annotations

from pydantic import BaseModel


class GeneratedFile(BaseModel):
    """A file rendered by a generator, ready to be written to the host.

    Attributes:
        path:    Absolute destination path.
        content: Full file content.
        mode:    Permission bits to apply after writing (None = umask).
        reason:  Why this file exists, for logs.
    """

    path: str
    content: str
    mode: int | None = None
    reason: str = ""
