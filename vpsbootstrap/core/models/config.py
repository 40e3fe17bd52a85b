"""
ProvisioningConfig — the validated operator input.

Built once by the input collector (or loaded from the phase-1 handoff
file) and passed read-only to every step. The model is frozen and every
field goes through the same validators the collector uses, so a
partially valid config cannot be constructed.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from vpsbootstrap.core.errors import InputValidationError
from vpsbootstrap.core.services import input_validation as iv


def _checked(fn, value):
    try:
        return fn(value)
    except InputValidationError as e:
        raise ValueError(" ".join([e.message, *e.hints])) from e


class ProvisioningConfig(BaseModel):
    """Everything both phases need to know about the target host."""

    model_config = ConfigDict(frozen=True)

    username: str
    hostname: str
    ssh_public_key: str
    ssh_port: int = iv.SSH_PORT_DEFAULT
    repository_url: str
    contact_email: str
    domain: str | None = None
    use_domain: bool = False
    public_ip: str | None = None

    @field_validator("username")
    @classmethod
    def _username(cls, v: str) -> str:
        return _checked(iv.validate_username, v)

    @field_validator("hostname")
    @classmethod
    def _hostname(cls, v: str) -> str:
        return _checked(iv.validate_hostname, v)

    @field_validator("ssh_public_key")
    @classmethod
    def _ssh_key(cls, v: str) -> str:
        return _checked(iv.validate_ssh_public_key, v)

    @field_validator("ssh_port")
    @classmethod
    def _ssh_port(cls, v: int) -> int:
        return _checked(iv.validate_ssh_port, v)

    @field_validator("repository_url")
    @classmethod
    def _repository(cls, v: str) -> str:
        return _checked(iv.normalize_repository_url, v)

    @field_validator("contact_email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _checked(iv.validate_email, v)

    @field_validator("domain")
    @classmethod
    def _domain(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return _checked(iv.validate_domain, v)

    @field_validator("public_ip")
    @classmethod
    def _public_ip(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return _checked(iv.validate_ip_address, v)

    @model_validator(mode="after")
    def _site_address(self) -> ProvisioningConfig:
        if self.use_domain and not self.domain:
            raise ValueError("use_domain requires a domain")
        if not self.use_domain and not self.public_ip:
            raise ValueError("public_ip is required when no domain is used")
        return self

    @property
    def port_changed(self) -> bool:
        """Whether sshd moves off the default port."""
        return self.ssh_port != iv.SSH_PORT_DEFAULT

    @property
    def site_address(self) -> str:
        """Public address the application is served on."""
        if self.use_domain and self.domain:
            return self.domain
        if not self.public_ip:
            raise InputValidationError("public_ip", "public_ip is required when no domain is used")
        return self.public_ip
