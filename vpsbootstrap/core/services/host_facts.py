"""
Host facts — read-only facts about the machine we are provisioning.

OS release, privilege level, CPU architecture and the public IPv4
address. The parsing helpers are pure; the lookups that shell out are
small and never mutate anything.
"""

from __future__ import annotations

import getpass
import logging
import os
import platform
import re
import shlex
import socket
import subprocess

from vpsbootstrap.core.errors import PreconditionError, UnsupportedPlatformError
from vpsbootstrap.core.models.settings import Settings

logger = logging.getLogger(__name__)

# uname -m → PocketBase release suffix
RELEASE_ARCHES: dict[str, str] = {
    "x86_64": "linux_amd64",
    "aarch64": "linux_arm64",
    "arm64": "linux_arm64",
}

_INET_RE = re.compile(r"inet\s+(\d+(?:\.\d+){3})")


# ── OS release ─────────────────────────────────────────────────


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``/etc/os-release`` KEY=VALUE lines (shell quoting allowed)."""
    data: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip("\"'")]
        data[key.strip()] = parts[0] if parts else ""
    return data


def ensure_supported_os(settings: Settings) -> dict[str, str]:
    """Abort unless the host runs the expected distribution and version."""
    path = settings.paths.os_release
    try:
        release = parse_os_release(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise PreconditionError(f"Cannot read {path}: {e}") from e

    name = release.get("NAME", "")
    version = release.get("VERSION_ID", "")
    if settings.os_name not in name or not version.startswith(settings.os_version):
        pretty = release.get("PRETTY_NAME", f"{name} {version}".strip() or "unknown")
        raise PreconditionError(
            f"This tool is written for use with {settings.os_name} {settings.os_version} LTS. "
            f"Current system: {pretty}"
        )
    return release


# ── Privileges ─────────────────────────────────────────────────


def ensure_root() -> None:
    if os.geteuid() != 0:
        raise PreconditionError("Host hardening must run as root (try: sudo vpsbootstrap harden)")


def ensure_unprivileged_user(username: str) -> None:
    """Application setup runs as the account created during hardening."""
    if os.geteuid() == 0:
        raise PreconditionError(
            f"Application setup must not run as root. Log in as '{username}' and rerun."
        )
    current = current_username()
    if current != username:
        raise PreconditionError(
            f"Application setup is configured for '{username}' but is running as '{current}'."
        )


def current_username() -> str:
    return getpass.getuser()


def current_hostname() -> str:
    return socket.gethostname()


# ── Architecture ───────────────────────────────────────────────


def resolve_release_arch(machine: str | None = None) -> str:
    """Map the CPU architecture to a release artifact suffix.

    Raises:
        UnsupportedPlatformError: for anything but x86_64 and aarch64/arm64.
    """
    machine = machine if machine is not None else platform.machine()
    try:
        return RELEASE_ARCHES[machine]
    except KeyError:
        raise UnsupportedPlatformError(machine) from None


# ── Network ────────────────────────────────────────────────────


def parse_ip_addr(output: str) -> str | None:
    """First non-loopback IPv4 address in ``ip -4 addr show`` output."""
    for address in _INET_RE.findall(output):
        if not address.startswith("127."):
            return address
    return None


def parse_hostname_i(output: str) -> str | None:
    """First address printed by ``hostname -I``."""
    fields = output.split()
    return fields[0] if fields else None


def detect_public_ip() -> str | None:
    """Best-effort detection of the address operators will reach us on."""
    sources = (
        (["ip", "-4", "addr", "show"], parse_ip_addr),
        (["hostname", "-I"], parse_hostname_i),
    )
    for argv, parse in sources:
        try:
            r = subprocess.run(argv, capture_output=True, text=True, timeout=5)
        except (FileNotFoundError, subprocess.TimeoutExpired):
            continue
        if r.returncode == 0:
            address = parse(r.stdout)
            if address:
                return address
    logger.warning("Could not detect server IP address")
    return None
