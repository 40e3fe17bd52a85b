"""
.env generator — placeholder secrets for the cloned application.

Values are obvious placeholders; the operator replaces them by hand.
"""

from __future__ import annotations

from pathlib import Path

from vpsbootstrap.core.models.template import GeneratedFile

PLACEHOLDERS: dict[str, str] = {
    "PRIVATE_RESEND_API_KEY": "re_placeholder_resend_api_key",
    "PUBLIC_STRIPE_PUBLIC_KEY": "pk_test_placeholder_stripe_public",
    "PRIVATE_STRIPE_SECRET_KEY": "sk_test_placeholder_stripe_secret",
    "PRIVATE_PB_ADMIN_EMAIL": "admin@example.com",
    "PRIVATE_PB_ADMIN_PASSWORD": "placeholder_password",
    "PRIVATE_STRIPE_WEBHOOK_SECRET": "whsec_placeholder_webhook_secret",
    "PRIVATE_RESEND_AUDIENCE_ID": "aud_placeholder_audience_id",
}


def generate_env_file(app_dir: Path) -> GeneratedFile:
    content = "".join(f'{key}="{value}"\n' for key, value in PLACEHOLDERS.items())
    return GeneratedFile(
        path=str(app_dir / ".env"),
        content=content,
        mode=0o600,
        reason="Placeholder secrets",
    )
