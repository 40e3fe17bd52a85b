"""
Phase 1 — host hardening (runs as root).

    system-update → hostname → swap → packages → user → authorized-key
    → sshd → firewall → handoff

Each step is fatal on failure. Steps with a ``check`` are skipped when
their effect is already present, so a rerun after a failure only redoes
what is missing.
"""

from __future__ import annotations

import logging

from vpsbootstrap.core.engine.executor import Step, StepContext
from vpsbootstrap.core.errors import ConfigValidationError
from vpsbootstrap.core.models.config import ProvisioningConfig
from vpsbootstrap.core.models.settings import Settings
from vpsbootstrap.core.models.template import GeneratedFile
from vpsbootstrap.core.persistence.handoff import render_handoff
from vpsbootstrap.core.services.generators.sshd_config import (
    effective_mismatches,
    harden_sshd_config,
    harden_sshd_dropin,
    parse_effective_config,
)
from vpsbootstrap.core.services.generators.systemd_units import (
    generate_ssh_port_script,
    generate_ssh_port_unit,
)
from vpsbootstrap.core.services.swap import allocate_swap

logger = logging.getLogger(__name__)

PHASE = "harden"

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
BASE_PACKAGES = ["ufw", "unzip"]
SSH_PORT_UNIT = "enable-ssh-port.service"


def _has_line(text: str | None, line: str) -> bool:
    return text is not None and line in (l.strip() for l in text.splitlines())


# ── system-update ──────────────────────────────────────────────


def _system_update(ctx: StepContext) -> None:
    long = ctx.settings.long_command_timeout
    ctx.sh("update", ["apt-get", "update"], env=APT_ENV, timeout=long)
    ctx.sh("upgrade", ["apt-get", "upgrade", "-y"], env=APT_ENV, timeout=long)


# ── hostname ───────────────────────────────────────────────────


def _hosts_line(ctx: StepContext) -> str:
    return f"127.0.0.1 {ctx.config.hostname}"


def _hostname_done(ctx: StepContext) -> bool:
    hosts = ctx.read(ctx.settings.paths.hosts_file, op="read-hosts", check=False)
    if not _has_line(hosts, _hosts_line(ctx)):
        return False
    current = ctx.sh("current", ["hostname"], read_only=True, check=False)
    return current.ok and current.output.strip() == ctx.config.hostname


def _hostname(ctx: StepContext) -> None:
    hostname = ctx.config.hostname
    ctx.sh("set-hostname", ["hostnamectl", "set-hostname", hostname])

    hosts_file = ctx.settings.paths.hosts_file
    hosts = ctx.read(hosts_file, op="read-hosts", check=False)
    if not _has_line(hosts, _hosts_line(ctx)):
        ctx.fs("hosts", "append", hosts_file, content=_hosts_line(ctx) + "\n")


# ── swap ───────────────────────────────────────────────────────


def _swap_done(ctx: StepContext) -> bool:
    return ctx.exists(ctx.settings.paths.swapfile)


def _swap(ctx: StepContext) -> None:
    paths = ctx.settings.paths
    allocate_swap(ctx, paths.swapfile, ctx.settings.swap_size_mb)

    entry = f"{paths.swapfile} none swap sw 0 0"
    fstab = ctx.read(paths.fstab, op="read-fstab", check=False)
    if not _has_line(fstab, entry):
        ctx.fs("fstab", "append", paths.fstab, content=entry + "\n")


# ── packages ───────────────────────────────────────────────────


def _packages(ctx: StepContext) -> None:
    ctx.sh(
        "install",
        ["apt-get", "install", "-y", *BASE_PACKAGES],
        env=APT_ENV,
        timeout=ctx.settings.long_command_timeout,
    )


# ── user ───────────────────────────────────────────────────────


def _user(ctx: StepContext) -> None:
    username = ctx.config.username

    lookup = ctx.sh("lookup", ["id", "-u", username], read_only=True, check=False)
    if lookup.ok:
        ctx.echo(f"User {username} already exists")
    else:
        ctx.sh("useradd", ["useradd", "-m", "-s", "/bin/bash", username])

    ctx.sh("usermod", ["usermod", "-aG", "sudo", username])

    ctx.echo(f"Set a password for {username} (needed for sudo):")
    while True:
        receipt = ctx.sh("passwd", ["passwd", username], interactive=True, check=False)
        if not receipt.failed:
            break
        ctx.warn("Password was not set, please try again")

    ctx.write(
        "sudoers",
        GeneratedFile(
            path=str(ctx.settings.paths.sudoers_dir / username),
            content=f"{username} ALL=(ALL) ALL\n",
            mode=0o440,
            reason="sudo membership",
        ),
    )


# ── authorized-key ─────────────────────────────────────────────


def _authorized_key(ctx: StepContext) -> None:
    username = ctx.config.username
    ssh_dir = ctx.settings.home_for(username) / ".ssh"
    keys_file = ssh_dir / "authorized_keys"

    ctx.fs("mkdir", "mkdir", ssh_dir, mode=0o700)

    existing = ctx.read(keys_file, op="read-keys", check=False) or ""
    key = ctx.config.ssh_public_key
    if _has_line(existing, key):
        content = existing
    else:
        content = existing + ("" if not existing or existing.endswith("\n") else "\n") + key + "\n"

    ctx.write(
        "write",
        GeneratedFile(path=str(keys_file), content=content, mode=0o600, reason="Operator key"),
    )
    ctx.sh("chown", ["chown", "-R", f"{username}:{username}", ssh_dir])


# ── sshd ───────────────────────────────────────────────────────


def _restore_sshd(ctx: StepContext, previous_dropin: str | None) -> None:
    paths = ctx.settings.paths
    ctx.fs("restore", "copy", paths.sshd_config_backup, dest=str(paths.sshd_config))
    if previous_dropin is None:
        ctx.fs("remove-dropin", "remove", paths.sshd_dropin)
    else:
        ctx.write(
            "restore-dropin",
            GeneratedFile(path=str(paths.sshd_dropin), content=previous_dropin, mode=0o644),
        )


def _sshd(ctx: StepContext) -> None:
    """Rewrite sshd_config and the drop-in, verify, and reload, or restore and abort."""
    paths = ctx.settings.paths
    config_path = paths.sshd_config

    original = ctx.read(config_path)
    previous_dropin = ctx.read(paths.sshd_dropin, op="read-dropin", check=False)
    ctx.fs("backup", "copy", config_path, dest=str(paths.sshd_config_backup))

    port = ctx.config.ssh_port if ctx.config.port_changed else None
    ctx.write("rewrite", harden_sshd_config(original or "", port=port, path=str(config_path)))
    ctx.write("dropin", harden_sshd_dropin(path=str(paths.sshd_dropin)))

    test = ctx.sh("validate", ["sshd", "-t", "-f", config_path], check=False)
    if test.failed:
        _restore_sshd(ctx, previous_dropin)
        raise ConfigValidationError(
            "sshd",
            "SSH configuration test failed; original configuration restored",
            test,
        )

    # Mocked and dry-run receipts carry no real sshd output
    effective = ctx.sh("effective", ["sshd", "-T", "-f", config_path], check=False)
    if effective.failed:
        _restore_sshd(ctx, previous_dropin)
        raise ConfigValidationError(
            "sshd",
            "Could not read the effective SSH configuration; original configuration restored",
            effective,
        )
    if effective.ok and not effective.metadata.get("mock"):
        current = parse_effective_config(effective.output)
        problems = effective_mismatches(current, port=ctx.config.ssh_port)
        if problems:
            _restore_sshd(ctx, previous_dropin)
            raise ConfigValidationError(
                "sshd",
                f"Effective SSH configuration overrides hardening ({'; '.join(problems)}); "
                "original configuration restored",
            )

    reload = ctx.sh("reload", ["systemctl", "reload", "ssh"], check=False)
    if reload.failed:
        reload = ctx.sh("reload-sshd", ["systemctl", "reload", "sshd"], check=False)
        if reload.failed:
            ctx.warn("Could not reload the SSH service; changes apply after reboot")


# ── firewall ───────────────────────────────────────────────────


def _firewall(ctx: StepContext) -> None:
    ctx.sh("default-incoming", ["ufw", "default", "deny", "incoming"])
    ctx.sh("default-outgoing", ["ufw", "default", "allow", "outgoing"])
    ctx.sh("allow-ssh", ["ufw", "allow", "22/tcp"])

    if ctx.config.port_changed:
        paths = ctx.settings.paths
        ctx.write("port-script", generate_ssh_port_script(ctx.config.ssh_port, paths.ssh_port_script))
        ctx.write("port-unit", generate_ssh_port_unit(paths.ssh_port_script, paths.systemd_dir))
        ctx.sh("daemon-reload", ["systemctl", "daemon-reload"])
        ctx.sh("enable-port-unit", ["systemctl", "enable", SSH_PORT_UNIT])

    ctx.sh("allow-http", ["ufw", "allow", "80/tcp"])
    ctx.sh("allow-https", ["ufw", "allow", "443/tcp"])
    ctx.sh("enable", ["ufw", "--force", "enable"])


# ── handoff ────────────────────────────────────────────────────


def _handoff(ctx: StepContext) -> None:
    username = ctx.config.username
    path = ctx.settings.handoff_path(username)
    ctx.write("write", render_handoff(ctx.config, path))
    ctx.sh(
        "chown",
        ["chown", "-R", f"{username}:{username}", ctx.settings.home_for(username) / ".config"],
    )


def build_hardening_steps(settings: Settings | None = None) -> list[Step]:
    """The ordered phase-1 steps."""
    return [
        Step("system-update", _system_update, description="Update and upgrade system packages"),
        Step("hostname", _hostname, check=_hostname_done, description="Set hostname and hosts entry"),
        Step("swap", _swap, check=_swap_done, description="Create permanent swap file"),
        Step("packages", _packages, description="Install ufw and unzip"),
        Step("user", _user, description="Create sudo user with password"),
        Step("authorized-key", _authorized_key, description="Install operator SSH key"),
        Step("sshd", _sshd, description="Harden and validate sshd_config"),
        Step("firewall", _firewall, description="Configure ufw"),
        Step("handoff", _handoff, description="Save configuration for application setup"),
    ]


def harden_summary(config: ProvisioningConfig) -> list[str]:
    """Closing instructions printed after a successful run."""
    address = config.public_ip or config.site_address
    lines = ["Host hardening complete.", ""]
    if config.port_changed:
        lines += [
            f"IMPORTANT: the new SSH port ({config.ssh_port}) is enabled after a reboot.",
            "  1. After reboot, the new port will be active",
            f"  2. Test SSH access on the new port: ssh {config.username}@{address} -p {config.ssh_port}",
            "  3. Once confirmed working, run: sudo ufw delete allow 22/tcp",
            "",
        ]
    lines += [
        "Log out and log back in as the new user to continue:",
        f"  ssh {config.username}@{address} -p {config.ssh_port}",
        "",
        "Then run the application setup:",
        "  vpsbootstrap setup-app",
    ]
    return lines
