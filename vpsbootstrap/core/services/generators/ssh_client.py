"""
~/.ssh/config entry that routes github.com through the deploy key.
"""

from __future__ import annotations

from pathlib import Path

GITHUB_HOST = "github.com"


def github_host_block(key_path: Path) -> str:
    return (
        f"Host {GITHUB_HOST}\n"
        f"    HostName {GITHUB_HOST}\n"
        f"    User git\n"
        f"    IdentityFile {key_path}\n"
        f"    IdentitiesOnly yes\n"
    )


def has_github_host(existing: str) -> bool:
    """True when ``existing`` already declares a github.com Host entry."""
    for line in existing.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0].lower() == "host" and GITHUB_HOST in fields[1:]:
            return True
    return False
