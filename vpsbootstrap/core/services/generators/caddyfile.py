"""
Caddyfile generator — reverse-proxy configuration in one of two modes.

Domain mode: two sites, each with an automatically issued certificate.
    <domain>     → application
    pb.<domain>  → backend

No-domain mode: a single site keyed by the server IP with an internal
(self-signed) certificate. ``/pb/*`` is stripped and proxied to the
backend, everything else goes to the application. HTTPS redirects are
disabled globally because no public CA issues for a bare IP.
"""

from __future__ import annotations

from vpsbootstrap.core.models.config import ProvisioningConfig
from vpsbootstrap.core.models.template import GeneratedFile

BACKEND_PREFIX = "/pb"
BACKEND_SUBDOMAIN = "pb"


def _domain_sites(domain: str, app_port: int, backend_port: int) -> str:
    return f"""\
# Main application
{domain} {{
    reverse_proxy localhost:{app_port}
}}

# PocketBase instance
{BACKEND_SUBDOMAIN}.{domain} {{
    reverse_proxy localhost:{backend_port}
}}
"""


def _ip_site(address: str, app_port: int, backend_port: int) -> str:
    return f"""\
{{
    # Use self-signed certificates for IP address
    auto_https disable_redirects
}}

# Main application and PocketBase
{address} {{
    tls internal

    handle {BACKEND_PREFIX}/* {{
        uri strip_prefix {BACKEND_PREFIX}
        reverse_proxy localhost:{backend_port}
    }}

    handle /* {{
        reverse_proxy localhost:{app_port}
    }}
}}
"""


def generate_caddyfile(
    config: ProvisioningConfig,
    *,
    app_port: int = 3000,
    backend_port: int = 8090,
    path: str = "/etc/caddy/Caddyfile",
) -> GeneratedFile:
    """Render the Caddyfile for the mode the operator chose."""
    address = config.site_address
    if config.use_domain and config.domain:
        content = _domain_sites(address, app_port, backend_port)
        reason = f"Domain mode for {address}"
    else:
        content = _ip_site(address, app_port, backend_port)
        reason = f"IP mode for {address} (self-signed)"

    return GeneratedFile(path=path, content=content, mode=0o644, reason=reason)


def application_urls(config: ProvisioningConfig) -> dict[str, str]:
    """Where the operator will find the app and the backend admin UI."""
    address = config.site_address
    if config.use_domain and config.domain:
        return {
            "app": f"https://{address}",
            "admin": f"https://{BACKEND_SUBDOMAIN}.{address}/_",
        }
    return {
        "app": f"https://{address}",
        "admin": f"https://{address}{BACKEND_PREFIX}/_",
    }
