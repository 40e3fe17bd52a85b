"""
systemd unit generators.

- enable-ssh-port.service: oneshot that opens the new SSH port in ufw at
  boot, so the port only becomes reachable after the reboot that
  activates the new sshd config.
- pocketbase.service: the backend, restarted on failure with a fixed
  5 s backoff, logging appended to a file.
- caddy.service: the reverse proxy with resource limits and privilege
  dropping.
"""

from __future__ import annotations

from pathlib import Path

from vpsbootstrap.core.models.template import GeneratedFile


def generate_ssh_port_script(port: int, path: Path) -> GeneratedFile:
    return GeneratedFile(
        path=str(path),
        content=f"#!/bin/sh\nufw allow {port}/tcp\n",
        mode=0o755,
        reason=f"Open SSH port {port} at boot",
    )


def generate_ssh_port_unit(script: Path, systemd_dir: Path) -> GeneratedFile:
    content = f"""\
[Unit]
Description=Enable new SSH port in UFW
After=network.target

[Service]
Type=oneshot
ExecStart={script}
RemainAfterExit=true

[Install]
WantedBy=multi-user.target
"""
    return GeneratedFile(
        path=str(systemd_dir / "enable-ssh-port.service"),
        content=content,
        mode=0o644,
        reason="Oneshot unit opening the new SSH port",
    )


def generate_pocketbase_unit(
    *,
    username: str,
    binary: Path,
    log_file: Path,
    systemd_dir: Path,
) -> GeneratedFile:
    content = f"""\
[Unit]
Description = pocketbase

[Service]
Type           = simple
User           = {username}
Group          = {username}
LimitNOFILE    = 4096
Restart        = always
RestartSec     = 5s
StandardOutput = append:{log_file}
StandardError  = append:{log_file}
ExecStart      = {binary} serve

[Install]
WantedBy = multi-user.target
"""
    return GeneratedFile(
        path=str(systemd_dir / "pocketbase.service"),
        content=content,
        mode=0o644,
        reason="PocketBase backend service",
    )


def generate_caddy_unit(caddyfile: Path, systemd_dir: Path) -> GeneratedFile:
    content = f"""\
[Unit]
Description=Caddy web server
Documentation=https://caddyserver.com/docs/
After=network.target network-online.target
Requires=network-online.target

[Service]
Type=notify
User=caddy
Group=caddy
ExecStart=/usr/bin/caddy run --environ --config {caddyfile}
ExecReload=/usr/bin/caddy reload --config {caddyfile}
TimeoutStopSec=5s
LimitNOFILE=1048576
LimitNPROC=512
PrivateDevices=yes
PrivateTmp=true
ProtectSystem=full
AmbientCapabilities=CAP_NET_BIND_SERVICE

[Install]
WantedBy=multi-user.target
"""
    return GeneratedFile(
        path=str(systemd_dir / "caddy.service"),
        content=content,
        mode=0o644,
        reason="Caddy with resource limits and dropped privileges",
    )
