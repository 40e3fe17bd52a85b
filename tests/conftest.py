"""
Shared test fixtures and configuration.

Host files live under ``tmp_path`` (settings paths point there), the
filesystem adapter is real, and every command-running adapter is a
MockAdapter recording what would have been executed.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from vpsbootstrap.adapters.mock import MockAdapter
from vpsbootstrap.adapters.registry import AdapterRegistry
from vpsbootstrap.adapters.shell.filesystem import FilesystemAdapter
from vpsbootstrap.core.engine.executor import PipelineResult, Step, run_pipeline
from vpsbootstrap.core.models.config import ProvisioningConfig
from vpsbootstrap.core.models.settings import HostPaths, Settings

SAMPLE_KEY = (
    "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOMqqnkVzrm0SdG6UOoqKLsabgH5C9okWi0dh2l9GKJl "
    "operator@laptop"
)

UBUNTU_RELEASE = textwrap.dedent("""\
    PRETTY_NAME="Ubuntu 24.04.1 LTS"
    NAME="Ubuntu"
    VERSION_ID="24.04"
    VERSION="24.04.1 LTS (Noble Numbat)"
    ID=ubuntu
    ID_LIKE=debian
""")

SSHD_CONFIG = textwrap.dedent("""\
    Include /etc/ssh/sshd_config.d/*.conf

    #Port 22
    #PermitRootLogin prohibit-password
    PasswordAuthentication yes
    KbdInteractiveAuthentication no
    UsePAM yes
    Subsystem sftp /usr/lib/openssh/sftp-server

    Match User anoncvs
        X11Forwarding no
""")

# Trimmed `sshd -T` output for a hardened host on port 22
SSHD_EFFECTIVE = textwrap.dedent("""\
    port 22
    addressfamily any
    permitrootlogin no
    pubkeyauthentication yes
    passwordauthentication no
    kbdinteractiveauthentication no
    usepam yes
""")


class ScriptedOperator:
    """Operator double: answers prompts from a script, records output."""

    def __init__(self, answers: list[str] | None = None):
        self.answers = list(answers or [])
        self.prompts: list[str] = []
        self.pauses: list[str] = []
        self.echoes: list[str] = []
        self.warnings: list[str] = []

    def prompt(self, text: str, default: str | None = None) -> str:
        self.prompts.append(text)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {text}")
        return self.answers.pop(0)

    def pause(self, text: str) -> None:
        self.pauses.append(text)

    def echo(self, text: str = "") -> None:
        self.echoes.append(text)

    def warn(self, text: str) -> None:
        self.warnings.append(text)

    @property
    def output(self) -> str:
        return "\n".join(self.echoes + self.warnings)


def simulate_swap(shell: MockAdapter, prefix: str) -> None:
    """Make the mocked allocation/removal commands touch the swap file.

    ``prefix`` is the action-ID prefix, e.g. ``harden:swap:``.
    """

    def allocate(ctx):
        Path(str(ctx.params["argv"][-1])).write_bytes(b"")

    def remove(ctx):
        Path(str(ctx.params["argv"][-1])).unlink(missing_ok=True)

    shell.set_handler(f"{prefix}fallocate", allocate)
    shell.set_handler(f"{prefix}rm", remove)


def run_steps(
    steps: list[Step],
    *,
    phase: str,
    config: ProvisioningConfig,
    settings: Settings,
    registry: AdapterRegistry,
    operator: ScriptedOperator,
    **kwargs,
) -> PipelineResult:
    return run_pipeline(
        steps,
        phase=phase,
        config=config,
        settings=settings,
        registry=registry,
        operator=operator,
        **kwargs,
    )


@pytest.fixture
def host(tmp_path: Path) -> Path:
    """A fake host root with the files the pipelines expect."""
    root = tmp_path / "host"
    for d in (
        "etc/ssh/sshd_config.d",
        "etc/sudoers.d",
        "etc/systemd/system",
        "etc/caddy",
        "home",
        "root",
        "proc",
        "var/log",
    ):
        (root / d).mkdir(parents=True)
    (root / "etc/os-release").write_text(UBUNTU_RELEASE)
    (root / "etc/hosts").write_text("127.0.0.1 localhost\n")
    (root / "etc/fstab").write_text("LABEL=cloudimg-rootfs / ext4 defaults 0 1\n")
    (root / "etc/ssh/sshd_config").write_text(SSHD_CONFIG)
    return root


@pytest.fixture
def settings(host: Path, tmp_path: Path) -> Settings:
    paths = HostPaths(
        os_release=host / "etc/os-release",
        hosts_file=host / "etc/hosts",
        fstab=host / "etc/fstab",
        swapfile=host / "swapfile",
        build_swapfile=host / "swapfile_build",
        sshd_config=host / "etc/ssh/sshd_config",
        sshd_config_dir=host / "etc/ssh/sshd_config.d",
        sudoers_dir=host / "etc/sudoers.d",
        systemd_dir=host / "etc/systemd/system",
        ssh_port_script=host / "root/enable_ssh_port.sh",
        home_root=host / "home",
        caddyfile=host / "etc/caddy/Caddyfile",
        caddy_keyring=host / "usr/share/keyrings/caddy.gpg",
        caddy_apt_list=host / "etc/apt/sources.list.d/caddy-stable.list",
        backend_log_dir=host / "var/log/pocketbase",
        drop_caches=host / "proc/drop_caches",
        run_lock=tmp_path / "run/vpsbootstrap.lock",
        state_dir=tmp_path / "state",
    )
    return Settings(paths=paths)


@pytest.fixture
def config() -> ProvisioningConfig:
    return ProvisioningConfig(
        username="deploy",
        hostname="web-01",
        ssh_public_key=SAMPLE_KEY,
        repository_url="git@github.com:acme/shop.git",
        contact_email="ops@example.com",
        public_ip="203.0.113.10",
    )


@pytest.fixture
def operator() -> ScriptedOperator:
    return ScriptedOperator()


@pytest.fixture
def shell() -> MockAdapter:
    return MockAdapter("shell")


@pytest.fixture
def node() -> MockAdapter:
    return MockAdapter("node")


@pytest.fixture
def git() -> MockAdapter:
    return MockAdapter("git")


@pytest.fixture
def registry(shell: MockAdapter, node: MockAdapter, git: MockAdapter) -> AdapterRegistry:
    registry = AdapterRegistry()
    registry.register(shell)
    registry.register(FilesystemAdapter())
    registry.register(node)
    registry.register(git)
    return registry
