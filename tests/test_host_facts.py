"""
Tests for host facts — os-release, privileges, architecture, IP parsing.
"""

import pytest

from conftest import UBUNTU_RELEASE
from vpsbootstrap.core.errors import PreconditionError, UnsupportedPlatformError
from vpsbootstrap.core.services import host_facts
from vpsbootstrap.core.services.host_facts import (
    ensure_root,
    ensure_supported_os,
    ensure_unprivileged_user,
    parse_hostname_i,
    parse_ip_addr,
    parse_os_release,
    resolve_release_arch,
)

IP_ADDR_OUTPUT = """\
1: lo: <LOOPBACK,UP,LOWER_UP> mtu 65536 qdisc noqueue state UNKNOWN group default qlen 1000
    inet 127.0.0.1/8 scope host lo
       valid_lft forever preferred_lft forever
2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc fq_codel state UP group default qlen 1000
    inet 203.0.113.10/24 metric 100 brd 203.0.113.255 scope global dynamic eth0
       valid_lft 86000sec preferred_lft 86000sec
"""


class TestOsRelease:
    def test_parse(self):
        """Quoted and bare os-release values both parse."""
        data = parse_os_release(UBUNTU_RELEASE)
        assert data["NAME"] == "Ubuntu"
        assert data["VERSION_ID"] == "24.04"
        assert data["PRETTY_NAME"] == "Ubuntu 24.04.1 LTS"
        assert data["ID"] == "ubuntu"

    def test_supported(self, settings):
        assert ensure_supported_os(settings)["VERSION_ID"] == "24.04"

    def test_other_release_rejected(self, settings):
        """Another Ubuntu release is refused, naming what is installed."""
        settings.paths.os_release.write_text('NAME="Ubuntu"\nVERSION_ID="22.04"\nPRETTY_NAME="Ubuntu 22.04.4 LTS"\n')
        with pytest.raises(PreconditionError, match="Current system: Ubuntu 22.04.4 LTS"):
            ensure_supported_os(settings)

    def test_other_distribution_rejected(self, settings):
        settings.paths.os_release.write_text('NAME="Debian GNU/Linux"\nVERSION_ID="12"\n')
        with pytest.raises(PreconditionError, match="Ubuntu 24.04 LTS"):
            ensure_supported_os(settings)

    def test_unreadable(self, settings):
        settings.paths.os_release.unlink()
        with pytest.raises(PreconditionError, match="Cannot read"):
            ensure_supported_os(settings)


class TestPrivileges:
    def test_root_required_for_hardening(self, monkeypatch):
        monkeypatch.setattr("os.geteuid", lambda: 1000)
        with pytest.raises(PreconditionError, match="must run as root"):
            ensure_root()
        monkeypatch.setattr("os.geteuid", lambda: 0)
        ensure_root()

    def test_app_setup_refuses_root(self, monkeypatch):
        """App setup refuses to run as root."""
        monkeypatch.setattr("os.geteuid", lambda: 0)
        with pytest.raises(PreconditionError, match="must not run as root"):
            ensure_unprivileged_user("deploy")

    def test_app_setup_requires_configured_user(self, monkeypatch):
        """App setup must run as the account hardening created."""
        monkeypatch.setattr("os.geteuid", lambda: 1000)
        monkeypatch.setattr(host_facts, "current_username", lambda: "ubuntu")
        with pytest.raises(PreconditionError, match="configured for 'deploy'.*running as 'ubuntu'"):
            ensure_unprivileged_user("deploy")

        monkeypatch.setattr(host_facts, "current_username", lambda: "deploy")
        ensure_unprivileged_user("deploy")


class TestArchitecture:
    @pytest.mark.parametrize(
        "machine,expected",
        [("x86_64", "linux_amd64"), ("aarch64", "linux_arm64"), ("arm64", "linux_arm64")],
    )
    def test_supported(self, machine, expected):
        assert resolve_release_arch(machine) == expected

    def test_unsupported(self):
        """Unknown machines are named in the error."""
        with pytest.raises(UnsupportedPlatformError, match="Unsupported architecture: armv7l"):
            resolve_release_arch("armv7l")


class TestAddresses:
    def test_ip_addr_skips_loopback(self):
        """The first non-loopback IPv4 address wins."""
        assert parse_ip_addr(IP_ADDR_OUTPUT) == "203.0.113.10"

    def test_ip_addr_only_loopback(self):
        assert parse_ip_addr("    inet 127.0.0.1/8 scope host lo\n") is None

    def test_hostname_i(self):
        """The first address from hostname -I is used."""
        assert parse_hostname_i("203.0.113.10 10.0.0.5 2001:db8::1 \n") == "203.0.113.10"
        assert parse_hostname_i("\n") is None
