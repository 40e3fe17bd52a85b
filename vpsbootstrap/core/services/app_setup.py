"""
Phase 2 — application environment (runs as the unprivileged user).

    node → workspace → deploy-key → clone → env-file → build
    → pocketbase → pm2 → caddy

Privileged commands go through ``sudo``; privileged files are written
with ``sudo tee``. Node tooling runs through the node adapter so nvm
and pnpm are on PATH.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import Any

from vpsbootstrap.core.engine.executor import Step, StepContext
from vpsbootstrap.core.models.action import Receipt
from vpsbootstrap.core.models.config import ProvisioningConfig
from vpsbootstrap.core.models.settings import Settings
from vpsbootstrap.core.models.template import GeneratedFile
from vpsbootstrap.core.services.generators.caddyfile import application_urls, generate_caddyfile
from vpsbootstrap.core.services.generators.env_file import generate_env_file
from vpsbootstrap.core.services.generators.ssh_client import github_host_block, has_github_host
from vpsbootstrap.core.services.generators.systemd_units import (
    generate_caddy_unit,
    generate_pocketbase_unit,
)
from vpsbootstrap.core.services.host_facts import resolve_release_arch
from vpsbootstrap.core.services.swap import build_swap

logger = logging.getLogger(__name__)

PHASE = "setup-app"

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
CADDY_PREREQUISITES = ["debian-keyring", "debian-archive-keyring", "apt-transport-https", "curl"]
BUILD_ARTIFACTS = ["build", ".svelte-kit", "node_modules/.cache", "node_modules/.vite", "node_modules"]
DEPLOY_KEY_NAME = "github"


def _node(ctx: StepContext, op: str, argv: list[str], **kwargs: Any) -> Receipt:
    """Run ``argv`` with nvm and pnpm on PATH."""
    kwargs.setdefault("description", shlex.join(argv))
    kwargs.setdefault("timeout", ctx.settings.command_timeout)
    if "cwd" in kwargs:
        kwargs["cwd"] = str(kwargs["cwd"])
    return ctx.call(op, "node", operation="run", argv=argv, **kwargs)


def _home(ctx: StepContext) -> Path:
    return ctx.settings.home_for(ctx.config.username)


def _deploy_key(ctx: StepContext) -> Path:
    return _home(ctx) / ".ssh" / DEPLOY_KEY_NAME


# ── node ───────────────────────────────────────────────────────


def _node_done(ctx: StepContext) -> bool:
    installed = ctx.call("current-version", "node", operation="version", read_only=True, check=False)
    return installed.ok and installed.output == ctx.settings.versions.node


def _install_node(ctx: StepContext) -> None:
    settings = ctx.settings
    url = settings.nvm_install_url.format(version=settings.versions.nvm)
    ctx.sh(
        "install-nvm",
        ["bash", "-c", f"wget -qO- {shlex.quote(url)} | bash"],
        description=f"install nvm {settings.versions.nvm}",
        timeout=settings.long_command_timeout,
    )
    ctx.call(
        "install-node",
        "node",
        operation="install-runtime",
        version=settings.versions.node,
        description=f"nvm install {settings.versions.node}",
        timeout=settings.long_command_timeout,
    )


# ── workspace ──────────────────────────────────────────────────


def _workspace(ctx: StepContext) -> None:
    ctx.fs("mkdir", "mkdir", ctx.settings.app_dir(ctx.config.username))


# ── deploy-key ─────────────────────────────────────────────────


def _setup_deploy_key(ctx: StepContext) -> None:
    key = _deploy_key(ctx)
    ssh_dir = key.parent
    ctx.fs("mkdir", "mkdir", ssh_dir, mode=0o700)

    if ctx.exists(key, op="key-exists"):
        ctx.echo(f"Deploy key {key} already exists, reusing it")
    else:
        ctx.sh(
            "keygen",
            ["ssh-keygen", "-t", "ed25519", "-C", ctx.config.contact_email, "-f", key, "-N", ""],
        )

    client_config = ssh_dir / "config"
    existing = ctx.read(client_config, op="read-config", check=False) or ""
    if not has_github_host(existing):
        separator = "\n" if existing and not existing.endswith("\n") else ""
        ctx.write(
            "ssh-config",
            GeneratedFile(
                path=str(client_config),
                content=existing + separator + github_host_block(key),
                mode=0o600,
                reason="Route github.com through the deploy key",
            ),
        )

    public_key = ctx.read(key.with_suffix(".pub"), op="read-public", check=False)
    ctx.echo()
    ctx.echo("Here's your GitHub SSH key. Add this to your GitHub account settings at:")
    ctx.echo(ctx.settings.deploy_key_url)
    ctx.echo()
    ctx.echo(public_key.strip() if public_key else f"(generated at {key}.pub)")
    ctx.echo()

    if ctx.dry_run:
        ctx.echo("[dry-run] not waiting for the key to be added")
        return
    ctx.operator.pause("Press Enter after you've added the SSH key to your GitHub account...")


# ── clone ──────────────────────────────────────────────────────


def _clone_done(ctx: StepContext) -> bool:
    receipt = ctx.call(
        "is-repo",
        "git",
        operation="is_repo",
        dest=str(ctx.settings.frontend_dir(ctx.config.username)),
        read_only=True,
        check=False,
    )
    return bool(receipt.ok and receipt.metadata.get("is_repo"))


def _clone(ctx: StepContext) -> None:
    dest = ctx.settings.frontend_dir(ctx.config.username)
    ctx.call(
        "clone",
        "git",
        operation="clone",
        url=ctx.config.repository_url,
        dest=str(dest),
        key_path=str(_deploy_key(ctx)),
        description=f"git clone {ctx.config.repository_url}",
        timeout=ctx.settings.long_command_timeout,
    )


# ── env-file ───────────────────────────────────────────────────


def _env_file_done(ctx: StepContext) -> bool:
    return ctx.exists(ctx.settings.frontend_dir(ctx.config.username) / ".env")


def _env_file(ctx: StepContext) -> None:
    ctx.write("write", generate_env_file(ctx.settings.frontend_dir(ctx.config.username)))


# ── build ──────────────────────────────────────────────────────


def _build(ctx: StepContext) -> None:
    """Clean install and production build under a temporary swap file."""
    settings = ctx.settings
    frontend = settings.frontend_dir(ctx.config.username)
    long = settings.long_command_timeout

    with build_swap(ctx, settings.paths.build_swapfile, settings.build_swap_size_mb):
        ctx.sh("sync", ["sync"], sudo=True)
        ctx.sh("drop-caches", ["tee", settings.paths.drop_caches], sudo=True, input="3\n")
        ctx.sh("pkill", ["pkill", "node"], check=False)
        _node(ctx, "npm-cache", ["npm", "cache", "clean", "--force"])
        ctx.sh("clean", ["rm", "-rf", *BUILD_ARTIFACTS], cwd=str(frontend))
        ctx.sh(
            "install-pnpm",
            ["bash", "-c", f"curl -fsSL {shlex.quote(settings.pnpm_install_url)} | sh -"],
            description="install pnpm",
            timeout=long,
        )
        _node(ctx, "pnpm-install", ["pnpm", "install", "--force"], cwd=frontend, timeout=long)
        _node(
            ctx,
            "pnpm-build",
            ["pnpm", "run", "build"],
            cwd=frontend,
            env={
                "NODE_ENV": "production",
                "NODE_OPTIONS": f"--max-old-space-size={settings.build_heap_mb}",
            },
            timeout=long,
        )
        _node(ctx, "pnpm-prune", ["pnpm", "prune", "--production"], cwd=frontend, timeout=long)


# ── pocketbase ─────────────────────────────────────────────────


def _pocketbase(ctx: StepContext) -> None:
    settings = ctx.settings
    username = ctx.config.username

    # Before anything is downloaded
    arch = resolve_release_arch()

    backend = settings.backend_dir(username)
    archive = backend / settings.pocketbase_archive(arch)
    binary = backend / "pocketbase"

    ctx.fs("mkdir", "mkdir", backend)
    ctx.sh(
        "download",
        ["curl", "-fL", "-o", archive, settings.pocketbase_download_url(arch)],
        description=f"download PocketBase {settings.versions.pocketbase} ({arch})",
        timeout=settings.long_command_timeout,
    )
    ctx.sh("unzip", ["unzip", "-o", archive, "-d", backend])
    ctx.fs("remove-archive", "remove", archive)
    ctx.sh("chmod", ["chmod", "+x", binary])

    log_dir = settings.paths.backend_log_dir
    log_file = log_dir / "std.log"
    ctx.sh("log-dir", ["mkdir", "-p", log_dir], sudo=True)
    ctx.sh("log-file", ["touch", log_file], sudo=True)
    ctx.sh("log-owner", ["chown", "-R", f"{username}:{username}", log_dir], sudo=True)

    unit = generate_pocketbase_unit(
        username=username,
        binary=binary,
        log_file=log_file,
        systemd_dir=settings.paths.systemd_dir,
    )
    ctx.write("unit", unit, sudo=True)
    ctx.sh("daemon-reload", ["systemctl", "daemon-reload"], sudo=True)
    ctx.sh("enable", ["systemctl", "enable", "pocketbase"], sudo=True)
    ctx.sh("start", ["systemctl", "start", "pocketbase"], sudo=True)


# ── pm2 ────────────────────────────────────────────────────────


def _pm2(ctx: StepContext) -> None:
    settings = ctx.settings
    username = ctx.config.username
    frontend = settings.frontend_dir(username)
    name = settings.process_name

    _node(ctx, "install", ["npm", "install", "-g", "pm2"], timeout=settings.long_command_timeout)
    _node(
        ctx,
        "startup",
        ["pm2", "startup", "systemd", "-u", username, "--hp", str(_home(ctx))],
        sudo=True,
    )

    described = _node(ctx, "describe", ["pm2", "describe", name], read_only=True, check=False)
    if described.ok:
        _node(ctx, "restart", ["pm2", "restart", name], cwd=frontend)
    else:
        _node(ctx, "start", ["pm2", "start", "npm", "--name", name, "--", "start"], cwd=frontend)
    _node(ctx, "save", ["pm2", "save"])


# ── caddy ──────────────────────────────────────────────────────


def _caddy(ctx: StepContext) -> None:
    settings = ctx.settings
    paths = settings.paths
    long = settings.long_command_timeout

    ctx.sh("apt-update", ["apt-get", "update"], sudo=True, env=APT_ENV, timeout=long)
    ctx.sh(
        "prerequisites",
        ["apt-get", "install", "-y", *CADDY_PREREQUISITES],
        sudo=True,
        env=APT_ENV,
        timeout=long,
    )
    ctx.sh(
        "keyring",
        [
            "bash",
            "-c",
            f"curl -1sLf {shlex.quote(settings.caddy_gpg_url)} "
            f"| gpg --dearmor --yes -o {shlex.quote(str(paths.caddy_keyring))}",
        ],
        sudo=True,
        description="add Caddy signing key",
    )
    ctx.sh(
        "apt-source",
        [
            "bash",
            "-c",
            f"curl -1sLf {shlex.quote(settings.caddy_list_url)} > {shlex.quote(str(paths.caddy_apt_list))}",
        ],
        sudo=True,
        description="add Caddy apt repository",
    )
    ctx.sh("apt-update-caddy", ["apt-get", "update"], sudo=True, env=APT_ENV, timeout=long)
    ctx.sh("install", ["apt-get", "install", "-y", "caddy"], sudo=True, env=APT_ENV, timeout=long)

    caddyfile = generate_caddyfile(
        ctx.config,
        app_port=settings.app_port,
        backend_port=settings.backend_port,
        path=str(paths.caddyfile),
    )
    ctx.echo(f"Configuring Caddy: {caddyfile.reason}")
    ctx.write("caddyfile", caddyfile, sudo=True)

    ctx.sh("stop", ["systemctl", "stop", "caddy"], sudo=True)
    ctx.write("unit", generate_caddy_unit(paths.caddyfile, paths.systemd_dir), sudo=True)
    ctx.sh("daemon-reload", ["systemctl", "daemon-reload"], sudo=True)
    ctx.sh("restart", ["systemctl", "restart", "caddy"], sudo=True)


def build_app_steps(settings: Settings | None = None) -> list[Step]:
    """The ordered phase-2 steps."""
    return [
        Step("node", _install_node, check=_node_done, description="Install nvm and Node.js"),
        Step("workspace", _workspace, description="Create the application directory"),
        Step("deploy-key", _setup_deploy_key, description="Create GitHub deploy key and wait for it"),
        Step("clone", _clone, check=_clone_done, description="Clone the repository"),
        Step("env-file", _env_file, check=_env_file_done, description="Write placeholder .env"),
        Step("build", _build, description="Production build under temporary swap"),
        Step("pocketbase", _pocketbase, description="Install PocketBase as a service"),
        Step("pm2", _pm2, description="Run the application under pm2"),
        Step("caddy", _caddy, description="Install and configure Caddy"),
    ]


def app_summary(config: ProvisioningConfig) -> list[str]:
    """Closing instructions printed after a successful run."""
    urls = application_urls(config)
    lines = [
        "Application setup complete. Your applications are available at:",
        f"- Main application: {urls['app']}",
        f"- PocketBase admin: {urls['admin']}",
    ]
    if not config.use_domain:
        lines.append(
            "Note: When using IP address, you'll see certificate warnings "
            "because it's using self-signed certificates."
        )
    lines += [
        "",
        "Next steps:",
        "1. Replace the placeholder values in the application's .env file",
    ]
    if config.use_domain:
        lines.append("2. Keep the domain DNS records pointing to this server")
    else:
        lines.append("2. Set up your domain DNS records to point to this server")
    return lines
