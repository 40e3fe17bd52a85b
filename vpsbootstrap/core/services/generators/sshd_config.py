"""
sshd_config rewriter — set the hardening directives in an existing file.

Each directive replaces the first active or commented-out occurrence
in the global section (``#Port 22`` becomes ``Port 2222``). Directives
that do not appear at all are inserted before the first ``Match``
block, since anything after it only applies to that match.

The login directives also go into a drop-in, and ``sshd -T`` output is
checked against them once sshd has loaded everything.
"""

from __future__ import annotations

import re

from vpsbootstrap.core.models.template import GeneratedFile

_MATCH_RE = re.compile(r"^\s*Match\s", re.IGNORECASE)


def _directives(port: int | None) -> list[tuple[str, str]]:
    directives = [("PermitRootLogin", "no"), ("PasswordAuthentication", "no")]
    if port is not None:
        directives.insert(0, ("Port", str(port)))
    return directives


def _directive_re(key: str) -> re.Pattern[str]:
    return re.compile(rf"^\s*#?\s*{re.escape(key)}\s+\S", re.IGNORECASE)


def set_directive(lines: list[str], key: str, value: str) -> list[str]:
    """Return ``lines`` with ``key value`` set once in the global section."""
    pattern = _directive_re(key)
    out: list[str] = []
    done = False
    match_at: int | None = None

    for line in lines:
        if match_at is None and _MATCH_RE.match(line):
            match_at = len(out)
        if not done and match_at is None and pattern.match(line):
            out.append(f"{key} {value}")
            done = True
            continue
        if done and match_at is None and pattern.match(line) and not line.lstrip().startswith("#"):
            # A second active occurrence would be ignored by sshd anyway; drop it.
            continue
        out.append(line)

    if not done:
        insert_at = match_at if match_at is not None else len(out)
        out.insert(insert_at, f"{key} {value}")
    return out


def harden_sshd_config(
    original: str,
    *,
    port: int | None = None,
    path: str = "/etc/ssh/sshd_config",
) -> GeneratedFile:
    """Disable root and password logins; move to ``port`` when given."""
    lines = original.splitlines()

    for key, value in _directives(port):
        lines = set_directive(lines, key, value)

    return GeneratedFile(
        path=path,
        content="\n".join(lines) + "\n",
        reason="Disable root login and password authentication"
        + (f", listen on port {port}" if port is not None else ""),
    )


def harden_sshd_dropin(*, path: str) -> GeneratedFile:
    """The login directives as a drop-in under ``sshd_config.d``.

    Ubuntu's ``sshd_config`` includes ``sshd_config.d/*.conf`` before its
    own settings and sshd keeps the first value it reads, so a drop-in
    that sorts ahead of the others (``50-cloud-init.conf`` among them)
    wins over both. ``Port`` stays in the main file only: repeated Port
    lines add listeners rather than override each other.
    """
    lines = ["# Managed by vpsbootstrap"]
    lines += [f"{key} {value}" for key, value in _directives(None)]
    return GeneratedFile(
        path=path,
        content="\n".join(lines) + "\n",
        mode=0o644,
        reason="Hardening directives ahead of other drop-ins",
    )


def parse_effective_config(output: str) -> dict[str, list[str]]:
    """Parse ``sshd -T`` output into lowercase keys and their values."""
    effective: dict[str, list[str]] = {}
    for line in output.splitlines():
        key, _, value = line.strip().partition(" ")
        if key:
            effective.setdefault(key.lower(), []).append(value.strip())
    return effective


def effective_mismatches(effective: dict[str, list[str]], *, port: int) -> list[str]:
    """Hardening directives the running configuration does not honour."""
    problems = []
    for key, value in _directives(port):
        actual = effective.get(key.lower(), [])
        if key == "Port":
            ok = value in actual
        else:
            ok = actual[:1] == [value]
        if not ok:
            shown = " ".join(actual) or "unset"
            problems.append(f"{key} is {shown}, expected {value}")
    return problems
