"""
Settings — pinned versions, host paths, and tunables.

Defaults describe a stock Ubuntu 24.04 host and are what production
runs use. A YAML settings file may override any of them (see
``vpsbootstrap.core.config.loader``); tests point the paths into a
temporary directory.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

# Directory names under the user's home
APP_DIR = "app"
FRONTEND_DIR = "frontend"
BACKEND_DIR = "pocketbase"
HANDOFF_RELPATH = ".config/vpsbootstrap/config.json"

# Sorts ahead of the cloud-init drop-in
SSHD_DROPIN = "00-vpsbootstrap.conf"


class HostPaths(BaseModel):
    """Files and directories the pipelines read or write."""

    os_release: Path = Path("/etc/os-release")
    hosts_file: Path = Path("/etc/hosts")
    fstab: Path = Path("/etc/fstab")
    swapfile: Path = Path("/swapfile")
    build_swapfile: Path = Path("/swapfile_build")
    sshd_config: Path = Path("/etc/ssh/sshd_config")
    sshd_config_dir: Path = Path("/etc/ssh/sshd_config.d")
    sudoers_dir: Path = Path("/etc/sudoers.d")
    systemd_dir: Path = Path("/etc/systemd/system")
    ssh_port_script: Path = Path("/root/enable_ssh_port.sh")
    home_root: Path = Path("/home")
    caddyfile: Path = Path("/etc/caddy/Caddyfile")
    caddy_keyring: Path = Path("/usr/share/keyrings/caddy-stable-archive-keyring.gpg")
    caddy_apt_list: Path = Path("/etc/apt/sources.list.d/caddy-stable.list")
    backend_log_dir: Path = Path("/var/log/pocketbase")
    drop_caches: Path = Path("/proc/sys/vm/drop_caches")
    run_lock: Path = Path("/run/lock/vpsbootstrap.lock")
    state_dir: Path | None = None

    @property
    def sshd_config_backup(self) -> Path:
        return self.sshd_config.with_name(self.sshd_config.name + ".backup")

    @property
    def sshd_dropin(self) -> Path:
        return self.sshd_config_dir / SSHD_DROPIN


class Versions(BaseModel):
    """Pinned upstream versions."""

    nvm: str = "v0.40.1"
    node: str = "22.12.0"
    pocketbase: str = "0.23.8"


class Settings(BaseModel):
    """Root settings model."""

    # ── Target platform ─────────────────────────────────────────
    os_name: str = "Ubuntu"
    os_version: str = "24.04"

    # ── Sizing ──────────────────────────────────────────────────
    swap_size_mb: int = Field(default=4096, gt=0)
    build_swap_size_mb: int = Field(default=4096, gt=0)
    build_heap_mb: int = Field(default=2048, gt=0)

    # ── Services ────────────────────────────────────────────────
    app_port: int = 3000
    backend_port: int = 8090
    process_name: str = "webapp"

    # ── Timeouts (seconds) ──────────────────────────────────────
    command_timeout: int = Field(default=600, gt=0)
    long_command_timeout: int = Field(default=3600, gt=0)

    # ── Upstream locations ──────────────────────────────────────
    nvm_install_url: str = "https://raw.githubusercontent.com/nvm-sh/nvm/{version}/install.sh"
    pnpm_install_url: str = "https://get.pnpm.io/install.sh"
    pocketbase_url: str = (
        "https://github.com/pocketbase/pocketbase/releases/download/"
        "v{version}/pocketbase_{version}_{arch}.zip"
    )
    caddy_gpg_url: str = "https://dl.cloudsmith.io/public/caddy/stable/gpg.key"
    caddy_list_url: str = "https://dl.cloudsmith.io/public/caddy/stable/debian.deb.txt"
    deploy_key_url: str = "https://github.com/settings/ssh/new"

    paths: HostPaths = Field(default_factory=HostPaths)
    versions: Versions = Field(default_factory=Versions)

    def home_for(self, username: str) -> Path:
        return self.paths.home_root / username

    def app_dir(self, username: str) -> Path:
        return self.home_for(username) / APP_DIR

    def frontend_dir(self, username: str) -> Path:
        return self.app_dir(username) / FRONTEND_DIR

    def backend_dir(self, username: str) -> Path:
        return self.app_dir(username) / BACKEND_DIR

    def handoff_path(self, username: str) -> Path:
        return self.home_for(username) / HANDOFF_RELPATH

    def pocketbase_archive(self, arch: str) -> str:
        return f"pocketbase_{self.versions.pocketbase}_{arch}.zip"

    def pocketbase_download_url(self, arch: str) -> str:
        return self.pocketbase_url.format(version=self.versions.pocketbase, arch=arch)

    def resolve_state_dir(self) -> Path:
        """Where run state and the audit ledger live.

        Root runs keep them under /var/lib; user runs under the XDG
        state directory.
        """
        if self.paths.state_dir is not None:
            return self.paths.state_dir
        if os.geteuid() == 0:
            return Path("/var/lib/vpsbootstrap")
        xdg = os.environ.get("XDG_STATE_HOME")
        base = Path(xdg) if xdg else Path.home() / ".local" / "state"
        return base / "vpsbootstrap"
