"""
Input validation (pure).

Format checks for every operator-supplied value. Each validator returns
the normalised value or raises ``InputValidationError`` carrying the
message and hint lines the collector prints before re-prompting.
No I/O.
"""

from __future__ import annotations

import ipaddress
import random
import re

from vpsbootstrap.core.errors import InputValidationError

USERNAME_RE = re.compile(r"^[a-z][a-z0-9_]{1,31}$")
HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?$")
SSH_KEY_RE = re.compile(
    r"^(ssh-rsa|ssh-ed25519|ecdsa-sha2-nistp256|ecdsa-sha2-nistp384|ecdsa-sha2-nistp521)\s"
)
DOMAIN_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9-]{1,61}[a-zA-Z0-9]\.[a-zA-Z]{2,}$")

_REPO_PART = r"[A-Za-z0-9_.-]+"
_SSH_REPO_RE = re.compile(rf"^git@github\.com:{_REPO_PART}/{_REPO_PART}$")
_HTTPS_REPO_RE = re.compile(rf"^https://github\.com/({_REPO_PART})/({_REPO_PART})/?$")

HOSTNAME_MAX_LENGTH = 63
SSH_PORT_DEFAULT = 22
SSH_PORT_MIN = 1024
SSH_PORT_MAX = 65535

REPOSITORY_EXAMPLES = [
    "Examples:",
    "  HTTPS: https://github.com/username/repository",
    "  SSH: git@github.com:username/repository.git",
]


def _require(field: str, label: str, value: str | None) -> str:
    value = (value or "").strip()
    if not value:
        raise InputValidationError(field, f"{label} cannot be empty")
    return value


def validate_username(value: str | None) -> str:
    value = _require("username", "Username", value)
    if not USERNAME_RE.match(value):
        raise InputValidationError(
            "username",
            "Invalid username format. Username must:",
            [
                "- Start with a lowercase letter",
                "- Contain only lowercase letters, numbers, and underscores",
                "- Be between 2 and 32 characters long",
            ],
        )
    return value


def validate_hostname(value: str | None) -> str:
    value = _require("hostname", "Hostname", value)
    if len(value) > HOSTNAME_MAX_LENGTH or not HOSTNAME_RE.match(value):
        raise InputValidationError(
            "hostname",
            "Invalid hostname format. Hostname must:",
            [
                "- Start and end with a letter or number",
                "- Contain only letters, numbers, and hyphens",
                f"- Not exceed {HOSTNAME_MAX_LENGTH} characters",
            ],
        )
    return value


def validate_ssh_public_key(value: str | None) -> str:
    value = _require("ssh_public_key", "SSH key", value)
    if not SSH_KEY_RE.match(value):
        raise InputValidationError(
            "ssh_public_key",
            "Invalid SSH key format. The key should start with 'ssh-rsa', "
            "'ssh-ed25519', or similar.",
            ["Please make sure you've copied the entire key correctly."],
        )
    return value


def validate_domain(value: str | None) -> str:
    value = _require("domain", "Domain", value)
    if not DOMAIN_RE.match(value):
        raise InputValidationError(
            "domain",
            "Invalid domain format. Please enter a valid domain (e.g., example.com)",
        )
    return value


def validate_email(value: str | None) -> str:
    return _require("contact_email", "GitHub email", value)


def normalize_repository_url(value: str | None) -> str:
    """Return the SSH clone URL for a GitHub repository.

    ``git@github.com:owner/repo[.git]`` is returned unchanged.
    ``https://github.com/owner/repo[.git][/]`` is rewritten to
    ``git@github.com:owner/repo.git``. Anything else is rejected.
    """
    value = _require("repository_url", "GitHub repository URL", value)

    if _SSH_REPO_RE.match(value):
        return value

    m = _HTTPS_REPO_RE.match(value)
    if m:
        owner, repo = m.group(1), m.group(2)
        if repo.endswith(".git"):
            repo = repo[: -len(".git")]
        if repo:
            return f"git@github.com:{owner}/{repo}.git"

    raise InputValidationError(
        "repository_url",
        "Invalid GitHub URL format. Please enter a valid GitHub repository URL",
        list(REPOSITORY_EXAMPLES),
    )


def validate_ssh_port(value: int | str | None) -> int:
    """Accept 22 or an unprivileged port in ``[1024, 65535]``."""
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        raise InputValidationError("ssh_port", f"SSH port must be a number, got {value!r}")
    if port != SSH_PORT_DEFAULT and not SSH_PORT_MIN <= port <= SSH_PORT_MAX:
        raise InputValidationError(
            "ssh_port",
            f"SSH port must be {SSH_PORT_DEFAULT} or between {SSH_PORT_MIN} and {SSH_PORT_MAX}",
        )
    return port


def generate_ssh_port(rng: random.Random | None = None) -> int:
    """Draw a uniform random port in ``[1024, 65535]`` inclusive."""
    return (rng or random).randint(SSH_PORT_MIN, SSH_PORT_MAX)


def validate_ip_address(value: str | None) -> str:
    """Dotted-quad IPv4 only; the IP-mode site block and URLs assume it."""
    value = _require("public_ip", "Server IP address", value)
    try:
        return str(ipaddress.IPv4Address(value))
    except ValueError:
        raise InputValidationError("public_ip", f"Not a valid IPv4 address: {value}")
