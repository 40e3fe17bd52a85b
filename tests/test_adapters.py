"""
Tests for adapters — registry dispatch, mock, shell, filesystem, node, git.
"""

from pathlib import Path

from vpsbootstrap.adapters.base import ExecutionContext
from vpsbootstrap.adapters.languages.node import NodeAdapter
from vpsbootstrap.adapters.mock import MockAdapter
from vpsbootstrap.adapters.registry import AdapterRegistry, default_registry
from vpsbootstrap.adapters.shell.command import ShellCommandAdapter, run_command, with_sudo
from vpsbootstrap.adapters.shell.filesystem import FilesystemAdapter
from vpsbootstrap.adapters.vcs.git import GitAdapter, ssh_command_for_key
from vpsbootstrap.core.models.action import Action, Receipt


def _action(adapter: str, read_only: bool = False, **params) -> Action:
    return Action(id="p:s:op", adapter=adapter, step="s", read_only=read_only, params=params)


# ── Registry ────────────────────────────────────────────────────


class TestRegistry:
    def test_unknown_adapter_is_a_failed_receipt(self):
        """Actions for an unregistered adapter fail instead of raising."""
        receipt = AdapterRegistry().execute_action(_action("nope"))
        assert receipt.failed
        assert "No adapter registered" in receipt.error

    def test_validation_failure_is_a_failed_receipt(self):
        """Invalid params are reported on the receipt."""
        registry = AdapterRegistry()
        registry.register(FilesystemAdapter())
        receipt = registry.execute_action(_action("filesystem", operation="write", path="relative.txt", content=""))
        assert receipt.failed
        assert "Path must be absolute" in receipt.error

    def test_adapter_exception_is_contained(self):
        """An adapter that raises still yields a failed receipt."""
        class Exploding(MockAdapter):
            def execute(self, context):
                raise RuntimeError("kaboom")

        registry = AdapterRegistry()
        registry.register(Exploding("shell"))
        receipt = registry.execute_action(_action("shell", argv=["x"]))
        assert receipt.failed
        assert "kaboom" in receipt.error

    def test_dry_run_skips_mutations_only(self):
        """Dry-run skips mutations while read-only actions still run."""
        mock = MockAdapter("shell")
        registry = AdapterRegistry()
        registry.register(mock)

        skipped = registry.execute_action(_action("shell", argv=["rm", "-rf", "/"]), dry_run=True)
        read = registry.execute_action(_action("shell", read_only=True, argv=["id"]), dry_run=True)

        assert skipped.skipped
        assert "[dry-run]" in skipped.output
        assert read.ok
        assert mock.call_count == 1

    def test_mock_mode_touches_nothing(self, tmp_path):
        """Mock mode answers success without calling the adapter."""
        registry = AdapterRegistry(mock_mode=True)
        assert registry.mock_mode
        registry.register(FilesystemAdapter())
        target = tmp_path / "f"
        receipt = registry.execute_action(_action("filesystem", operation="write", path=str(target), content="x"))
        assert receipt.ok
        assert receipt.metadata["mock"] is True
        assert not target.exists()

    def test_default_registry(self, tmp_path):
        """The node adapter refuses to run until nvm is installed."""
        registry = default_registry(tmp_path)

        receipt = registry.execute_action(_action("node", read_only=True, operation="version"))

        assert receipt.failed
        assert receipt.error == "'node' is not available on this host"
        assert registry.execute_action(_action("filesystem", read_only=True, operation="exists", path=str(tmp_path))).ok

    def test_unavailable_adapter_not_executed(self):
        """A missing tool fails the action without running it."""
        mock = MockAdapter("git", available=False)
        registry = AdapterRegistry()
        registry.register(mock)

        receipt = registry.execute_action(_action("git", operation="clone"))

        assert receipt.failed
        assert "not available" in receipt.error
        assert mock.call_count == 0

    def test_dry_run_skips_before_availability(self):
        """Mutations on a tool a later step installs still dry-run cleanly."""
        registry = AdapterRegistry()
        registry.register(MockAdapter("node", available=False))
        assert registry.execute_action(_action("node", operation="install-runtime"), dry_run=True).skipped


# ── Mock ────────────────────────────────────────────────────────


class TestMockAdapter:
    def test_precedence(self):
        """Handler beats canned receipt beats default success."""
        mock = MockAdapter("shell")
        ctx = ExecutionContext(action=_action("shell", argv=["a"]), params={"argv": ["a"]})

        assert mock.execute(ctx).output == "[mock] executed"

        mock.set_output("p:s:op", "canned")
        assert mock.execute(ctx).output == "canned"

        mock.set_handler("p:s:op", lambda c: Receipt.success(adapter="shell", action_id="p:s:op", output="handled"))
        assert mock.execute(ctx).output == "handled"

        assert mock.call_count == 3
        assert mock.commands == [["a"], ["a"], ["a"]]

    def test_failure_and_reset(self):
        mock = MockAdapter("shell")
        mock.set_failure("p:s:op", "nope")
        ctx = ExecutionContext(action=_action("shell"), params={})
        receipt = mock.execute(ctx)
        assert receipt.failed
        assert receipt.return_code == 1

        mock.reset()
        assert mock.call_count == 0
        assert mock.execute(ctx).ok


# ── Shell ───────────────────────────────────────────────────────


class TestShell:
    def test_success_captures_stdout(self):
        receipt = run_command("shell", "id", ["echo", "hello"])
        assert receipt.ok
        assert receipt.output == "hello"
        assert receipt.return_code == 0

    def test_failure_captures_stderr(self):
        """A non-zero exit becomes a failed receipt carrying stderr."""
        receipt = run_command("shell", "id", ["sh", "-c", "echo oops >&2; exit 3"])
        assert receipt.failed
        assert receipt.error == "oops"
        assert receipt.return_code == 3

    def test_missing_binary(self):
        receipt = run_command("shell", "id", ["definitely-not-a-command-xyz"])
        assert receipt.failed
        assert receipt.return_code == 127

    def test_timeout(self):
        """A command past its timeout becomes a failed receipt."""
        receipt = run_command("shell", "id", ["sleep", "5"], timeout=1)
        assert receipt.failed
        assert "timed out" in receipt.error

    def test_stdin_and_env(self):
        """Input is piped to stdin and env overrides reach the child."""
        receipt = run_command(
            "shell",
            "id",
            ["sh", "-c", 'read line; echo "$line-$GREETING"'],
            input_text="hi\n",
            env_overrides={"GREETING": "there"},
        )
        assert receipt.output == "hi-there"

    def test_with_sudo(self, monkeypatch):
        """sudo is prepended only when not already root."""
        monkeypatch.setattr("os.geteuid", lambda: 1000)
        assert with_sudo(["ls"], True) == ["sudo", "ls"]
        assert with_sudo(["ls"], False) == ["ls"]
        monkeypatch.setattr("os.geteuid", lambda: 0)
        assert with_sudo(["ls"], True) == ["ls"]

    def test_missing_cwd_fails_validation_unless_dry_run(self, tmp_path):
        """A working directory created by an earlier step may be absent in dry-run."""
        registry = AdapterRegistry()
        registry.register(ShellCommandAdapter())
        action = _action("shell", argv=["ls"], cwd=str(tmp_path / "missing"))

        assert registry.execute_action(action).failed
        assert registry.execute_action(action, dry_run=True).skipped


# ── Filesystem ──────────────────────────────────────────────────


class TestFilesystem:
    def _run(self, **params) -> Receipt:
        registry = AdapterRegistry()
        registry.register(FilesystemAdapter())
        return registry.execute_action(_action("filesystem", **params))

    def test_write_append_read(self, tmp_path):
        target = tmp_path / "a" / "b.txt"
        assert self._run(operation="write", path=str(target), content="one\n", mode=0o640).ok
        assert self._run(operation="append", path=str(target), content="two\n").ok
        receipt = self._run(operation="read", path=str(target))
        assert receipt.output == "one\ntwo\n"
        assert (target.stat().st_mode & 0o777) == 0o640

    def test_copy_is_byte_for_byte(self, tmp_path):
        """Backups must restore the exact original bytes."""
        src = tmp_path / "src"
        src.write_bytes(b"Port 22\n\t# trailing  \n")
        dest = tmp_path / "dest"
        assert self._run(operation="copy", path=str(src), dest=str(dest)).ok
        assert dest.read_bytes() == src.read_bytes()

    def test_exists_and_remove(self, tmp_path):
        d = tmp_path / "dir"
        assert self._run(operation="mkdir", path=str(d), mode=0o700).ok
        (d / "f").write_text("x")
        exists = self._run(operation="exists", path=str(d))
        assert exists.metadata["exists"] is True
        assert exists.metadata["is_dir"] is True

        assert self._run(operation="remove", path=str(d)).ok
        assert not d.exists()
        assert self._run(operation="remove", path=str(d)).ok

    def test_unknown_operation(self, tmp_path):
        receipt = self._run(operation="chmod", path=str(tmp_path))
        assert receipt.failed
        assert "Unknown operation" in receipt.error


# ── Node / Git ──────────────────────────────────────────────────


class TestNode:
    def test_script_sources_nvm_and_pnpm(self):
        """Every node command runs with nvm loaded and pnpm on PATH."""
        adapter = NodeAdapter(nvm_dir=Path("/home/deploy/.nvm"), pnpm_home=Path("/home/deploy/.local/share/pnpm"))
        script = adapter.script(["pnpm", "run", "build"])
        lines = script.splitlines()
        assert lines[0] == "export NVM_DIR=/home/deploy/.nvm"
        assert '. "$NVM_DIR/nvm.sh"' in lines
        assert lines[-1] == "pnpm run build"

    def test_sudo_keeps_path(self):
        """sudo commands keep the nvm PATH."""
        adapter = NodeAdapter(nvm_dir=Path("/n"), pnpm_home=Path("/p"))
        script = adapter.script(["pm2", "startup", "systemd"], sudo=True)
        assert script.splitlines()[-1] == 'sudo env "PATH=$PATH" pm2 startup systemd'

    def test_validation(self):
        adapter = NodeAdapter(nvm_dir=Path("/n"), pnpm_home=Path("/p"))
        ok, _ = adapter.validate(ExecutionContext(action=_action("node"), params={"operation": "run"}))
        assert not ok
        ok, _ = adapter.validate(
            ExecutionContext(action=_action("node"), params={"operation": "install-runtime", "version": "22.12.0"})
        )
        assert ok


class TestGit:
    def test_is_repo(self, tmp_path):
        adapter = GitAdapter()
        ctx = ExecutionContext(action=_action("git"), params={"operation": "is_repo", "dest": str(tmp_path)})
        assert adapter.execute(ctx).metadata["is_repo"] is False
        (tmp_path / ".git").mkdir()
        assert adapter.execute(ctx).metadata["is_repo"] is True

    def test_clone_requires_url(self, tmp_path):
        ok, msg = GitAdapter().validate(
            ExecutionContext(action=_action("git"), params={"operation": "clone", "dest": str(tmp_path)})
        )
        assert not ok
        assert "url" in msg

    def test_ssh_command_pins_key(self):
        """Clones use only the deploy key."""
        cmd = ssh_command_for_key("/home/deploy/.ssh/github")
        assert cmd.startswith("ssh -i /home/deploy/.ssh/github")
        assert "IdentitiesOnly=yes" in cmd
