"""
Tests for phase 2 — application environment against a fake host.
"""

import pytest

from conftest import run_steps, simulate_swap
from vpsbootstrap.core.models.action import Receipt
from vpsbootstrap.core.services.app_setup import PHASE, app_summary, build_app_steps

BUILD_SWAP = "setup-app:build:build-swap-"


def _only(*names: str):
    return [s for s in build_app_steps() if s.name in names]


def _run(steps, config, settings, registry, operator, **kw):
    return run_steps(steps, phase=PHASE, config=config, settings=settings, registry=registry, operator=operator, **kw)


@pytest.fixture
def home(host):
    path = host / "home/deploy"
    path.mkdir(parents=True)
    return path


@pytest.fixture(autouse=True)
def x86(monkeypatch):
    monkeypatch.setattr("platform.machine", lambda: "x86_64")


class TestStepOrder:
    def test_names(self):
        assert [s.name for s in build_app_steps()] == [
            "node",
            "workspace",
            "deploy-key",
            "clone",
            "env-file",
            "build",
            "pocketbase",
            "pm2",
            "caddy",
        ]


# ── Full run ────────────────────────────────────────────────────


class TestFullRun:
    def test_everything_applied(self, config, settings, registry, operator, shell, node, git, home, host):
        """A full mocked run writes every file the phase owns."""
        simulate_swap(shell, BUILD_SWAP)
        result = _run(build_app_steps(), config, settings, registry, operator)

        assert result.succeeded, result.cause
        assert (home / "app").is_dir()
        assert "Host github.com" in (home / ".ssh/config").read_text()
        assert operator.pauses == ["Press Enter after you've added the SSH key to your GitHub account..."]
        assert "https://github.com/settings/ssh/new" in operator.echoes
        assert git.calls_for("setup-app:clone:clone")[0].params["url"] == "git@github.com:acme/shop.git"
        assert (home / "app/frontend/.env").is_file()
        assert not settings.paths.build_swapfile.exists()
        assert node.was_called("setup-app:pm2:restart")


# ── node ────────────────────────────────────────────────────────


class TestNode:
    def test_skipped_when_pinned_version_present(self, config, settings, registry, operator, node, shell):
        """The pinned Node version already installed skips the step."""
        node.set_output("setup-app:node:current-version", "22.12.0")
        result = _run(_only("node"), config, settings, registry, operator)
        assert result.skipped == ["node"]
        assert not shell.was_called("setup-app:node:install-nvm")

    def test_installs_pinned_versions(self, config, settings, registry, operator, node, shell):
        """nvm and Node are installed at their pinned versions."""
        node.set_failure("setup-app:node:current-version", "nvm.sh: No such file")
        _run(_only("node"), config, settings, registry, operator)

        script = shell.calls_for("setup-app:node:install-nvm")[0].params["argv"][-1]
        assert "nvm-sh/nvm/v0.40.1/install.sh" in script
        install = node.calls_for("setup-app:node:install-node")[0]
        assert install.params["operation"] == "install-runtime"
        assert install.params["version"] == "22.12.0"


# ── deploy key / clone / env ────────────────────────────────────


class TestRepository:
    def test_keygen_command(self, config, settings, registry, operator, shell, home):
        _run(_only("deploy-key"), config, settings, registry, operator)
        argv = shell.calls_for("setup-app:deploy-key:keygen")[0].params["argv"]
        assert argv == [
            "ssh-keygen", "-t", "ed25519", "-C", "ops@example.com",
            "-f", str(home / ".ssh/github"), "-N", "",
        ]

    def test_existing_key_reused_and_printed(self, config, settings, registry, operator, shell, home):
        """A deploy key from an earlier run is shown again, not regenerated."""
        (home / ".ssh").mkdir()
        (home / ".ssh/github").write_text("PRIVATE")
        (home / ".ssh/github.pub").write_text("ssh-ed25519 AAAAdeploy ops@example.com\n")

        _run(_only("deploy-key"), config, settings, registry, operator)

        assert not shell.was_called("setup-app:deploy-key:keygen")
        assert "ssh-ed25519 AAAAdeploy ops@example.com" in operator.echoes

    def test_ssh_config_entry_not_duplicated(self, config, settings, registry, operator, home):
        """The github.com host block is written once."""
        _run(_only("deploy-key"), config, settings, registry, operator)
        _run(_only("deploy-key"), config, settings, registry, operator)
        assert (home / ".ssh/config").read_text().count("Host github.com") == 1

    def test_clone_skipped_when_repo_present(self, config, settings, registry, operator, git):
        """An existing checkout is left alone."""
        git.set_response(
            "setup-app:clone:is-repo",
            Receipt.success(adapter="git", action_id="setup-app:clone:is-repo", metadata={"is_repo": True}),
        )
        result = _run(_only("clone"), config, settings, registry, operator)
        assert result.skipped == ["clone"]
        assert not git.was_called("setup-app:clone:clone")

    def test_clone_uses_deploy_key(self, config, settings, registry, operator, git, home):
        _run(_only("clone"), config, settings, registry, operator)
        params = git.calls_for("setup-app:clone:clone")[0].params
        assert params["dest"] == str(home / "app/frontend")
        assert params["key_path"] == str(home / ".ssh/github")

    def test_env_file_kept_when_present(self, config, settings, registry, operator, home):
        """Operator edits to .env survive a rerun."""
        frontend = home / "app/frontend"
        frontend.mkdir(parents=True)
        (frontend / ".env").write_text("PRIVATE_RESEND_API_KEY=real\n")

        result = _run(_only("env-file"), config, settings, registry, operator)

        assert result.skipped == ["env-file"]
        assert (frontend / ".env").read_text() == "PRIVATE_RESEND_API_KEY=real\n"


# ── build ───────────────────────────────────────────────────────


class TestBuild:
    def test_build_sequence(self, config, settings, registry, operator, shell, node, home):
        """Clean, install, build and prune run in that order."""
        simulate_swap(shell, BUILD_SWAP)
        result = _run(_only("build"), config, settings, registry, operator)

        assert result.succeeded
        assert node.action_ids == [
            "setup-app:build:npm-cache",
            "setup-app:build:pnpm-install",
            "setup-app:build:pnpm-build",
            "setup-app:build:pnpm-prune",
        ]
        build = node.calls_for("setup-app:build:pnpm-build")[0].params
        assert build["env"] == {"NODE_ENV": "production", "NODE_OPTIONS": "--max-old-space-size=2048"}
        assert shell.calls_for("setup-app:build:drop-caches")[0].params["input"] == "3\n"
        assert shell.action_ids[0] == f"{BUILD_SWAP}fallocate"
        assert shell.action_ids[-2:] == [f"{BUILD_SWAP}swapoff", f"{BUILD_SWAP}rm"]

    def test_swap_released_when_build_fails(self, config, settings, registry, operator, shell, node, home):
        """The build swap file is removed even when the build fails."""
        simulate_swap(shell, BUILD_SWAP)
        node.set_failure("setup-app:build:pnpm-build", "JavaScript heap out of memory")

        result = _run(_only("build", "pocketbase"), config, settings, registry, operator)

        assert result.failed_step == "build"
        assert result.detail == "JavaScript heap out of memory"
        assert shell.was_called(f"{BUILD_SWAP}swapoff")
        assert not settings.paths.build_swapfile.exists()
        assert not node.was_called("setup-app:build:pnpm-prune")
        assert not shell.was_called("setup-app:pocketbase:download")

    def test_swap_released_when_allocation_fails(self, config, settings, registry, operator, shell):
        shell.set_failure(f"{BUILD_SWAP}fallocate")
        shell.set_failure(f"{BUILD_SWAP}dd", "No space left on device")

        result = _run(_only("build"), config, settings, registry, operator)

        assert result.failed_step == "build"
        assert shell.was_called(f"{BUILD_SWAP}rm")
        assert not shell.was_called("setup-app:build:sync")

    def test_pkill_failure_tolerated(self, config, settings, registry, operator, shell, home):
        """pkill finding nothing to stop does not fail the build."""
        shell.set_failure("setup-app:build:pkill", "")
        assert _run(_only("build"), config, settings, registry, operator).succeeded


# ── pocketbase ──────────────────────────────────────────────────


class TestPocketbase:
    def test_unsupported_arch_fails_before_download(self, config, settings, registry, operator, shell, monkeypatch):
        """An unknown CPU stops the step before anything is fetched."""
        monkeypatch.setattr("platform.machine", lambda: "riscv64")
        result = _run(_only("pocketbase"), config, settings, registry, operator)

        assert result.failed_step == "pocketbase"
        assert result.cause == "Unsupported architecture: riscv64"
        assert shell.call_count == 0

    @pytest.mark.parametrize("machine,arch", [("x86_64", "linux_amd64"), ("aarch64", "linux_arm64"), ("arm64", "linux_arm64")])
    def test_download_url(self, machine, arch, config, settings, registry, operator, shell, home, monkeypatch):
        """The release archive matches the CPU architecture."""
        monkeypatch.setattr("platform.machine", lambda: machine)
        _run(_only("pocketbase"), config, settings, registry, operator)
        url = shell.calls_for("setup-app:pocketbase:download")[0].params["argv"][-1]
        assert url == (
            "https://github.com/pocketbase/pocketbase/releases/download/"
            f"v0.23.8/pocketbase_0.23.8_{arch}.zip"
        )

    def test_service_installed(self, config, settings, registry, operator, shell, home):
        result = _run(_only("pocketbase"), config, settings, registry, operator)

        assert result.succeeded
        tee = shell.calls_for("setup-app:pocketbase:unit")[0].params
        assert tee["argv"] == ["tee", str(settings.paths.systemd_dir / "pocketbase.service")]
        assert "User           = deploy" in tee["input"]
        assert ["systemctl", "enable", "pocketbase"] in shell.commands
        assert shell.commands.index(["systemctl", "daemon-reload"]) < shell.commands.index(
            ["systemctl", "start", "pocketbase"]
        )


# ── pm2 / caddy ─────────────────────────────────────────────────


class TestPm2:
    def test_starts_when_not_running(self, config, settings, registry, operator, node, home):
        node.set_failure("setup-app:pm2:describe", "[PM2][WARN] webapp doesn't exist")
        _run(_only("pm2"), config, settings, registry, operator)

        start = node.calls_for("setup-app:pm2:start")[0].params
        assert start["argv"] == ["pm2", "start", "npm", "--name", "webapp", "--", "start"]
        assert start["cwd"] == str(home / "app/frontend")
        startup = node.calls_for("setup-app:pm2:startup")[0].params
        assert startup["sudo"] is True
        assert startup["argv"][-2:] == ["--hp", str(home)]

    def test_restarts_when_running(self, config, settings, registry, operator, node, home):
        """A process pm2 already knows is restarted, not started twice."""
        _run(_only("pm2"), config, settings, registry, operator)
        assert node.was_called("setup-app:pm2:restart")
        assert not node.was_called("setup-app:pm2:start")


class TestCaddy:
    def test_ip_mode_caddyfile(self, config, settings, registry, operator, shell):
        _run(_only("caddy"), config, settings, registry, operator)
        caddyfile = shell.calls_for("setup-app:caddy:caddyfile")[0].params["input"]
        assert "tls internal" in caddyfile
        assert "203.0.113.10 {" in caddyfile

    def test_domain_mode_caddyfile(self, config, settings, registry, operator, shell):
        domain = config.model_copy(update={"domain": "example.com", "use_domain": True})
        _run(_only("caddy"), domain, settings, registry, operator)
        caddyfile = shell.calls_for("setup-app:caddy:caddyfile")[0].params["input"]
        assert "pb.example.com {" in caddyfile
        assert "tls internal" not in caddyfile

    def test_unit_replaced_while_stopped(self, config, settings, registry, operator, shell):
        """Caddy is stopped before its unit file is replaced."""
        _run(_only("caddy"), config, settings, registry, operator)
        ids = shell.action_ids
        assert ids.index("setup-app:caddy:stop") < ids.index("setup-app:caddy:unit")
        assert ids.index("setup-app:caddy:unit") < ids.index("setup-app:caddy:daemon-reload")
        assert ids[-1] == "setup-app:caddy:restart"


# ── Dry run / summary ───────────────────────────────────────────


class TestDryRunAndSummary:
    def test_dry_run_does_not_wait_for_operator(self, config, settings, registry, operator, home):
        """Dry-run never blocks on the deploy-key confirmation."""
        result = _run(build_app_steps(), config, settings, registry, operator, dry_run=True)
        assert result.succeeded
        assert operator.pauses == []
        assert not (home / "app").exists()

    def test_ip_summary(self, config):
        """IP mode warns about the self-signed certificate."""
        text = "\n".join(app_summary(config))
        assert "https://203.0.113.10/pb/_" in text
        assert "self-signed" in text

    def test_domain_summary(self, config):
        text = "\n".join(app_summary(config.model_copy(update={"domain": "example.com", "use_domain": True})))
        assert "https://example.com" in text
        assert "https://pb.example.com/_" in text
        assert "self-signed" not in text
