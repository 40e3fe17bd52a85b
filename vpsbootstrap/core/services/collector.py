"""
Input collector — ask the operator for everything, validate, build the config.

Every question is asked upfront, before the first host mutation, and
repeated until the answer validates. An answers file can pre-seed any
field; a seeded value that fails validation is reported and the
question falls back to the interactive prompt.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Callable

from vpsbootstrap.core.engine.executor import Operator
from vpsbootstrap.core.errors import InputValidationError
from vpsbootstrap.core.models.config import ProvisioningConfig
from vpsbootstrap.core.services import input_validation as iv
from vpsbootstrap.core.services.host_facts import detect_public_ip

logger = logging.getLogger(__name__)

SSH_KEY_HELP = """\
To get your SSH public key, follow these steps:
1. Open terminal on your local machine
2. Run: cat ~/.ssh/id_rsa.pub
3. If you don't have an SSH key, generate one using: ssh-keygen -t rsa -b 4096
4. Copy the entire content of the public key
"""

_YES = {"y", "yes"}
_NO = {"n", "no"}


class InputCollector:
    """Interactive (or answers-file driven) builder of ProvisioningConfig.

    Args:
        operator: Prompt/echo boundary.
        answers: Pre-seeded field values (from ``--answers``).
        rng: Random source for the SSH port draw.
        ip_detector: Returns the server's address, or None.
        defaults: Prompt defaults (phase 2 offers the current user/host).
    """

    def __init__(
        self,
        operator: Operator,
        *,
        answers: dict[str, Any] | None = None,
        rng: random.Random | None = None,
        ip_detector: Callable[[], str | None] = detect_public_ip,
        defaults: dict[str, str] | None = None,
    ):
        self.operator = operator
        self.answers = dict(answers or {})
        self.rng = rng
        self.ip_detector = ip_detector
        self.defaults = defaults or {}

    # ── Core loop ───────────────────────────────────────────────

    def _report(self, error: InputValidationError) -> None:
        self.operator.warn(error.message)
        for hint in error.hints:
            self.operator.echo(hint)

    def _seeded(self, field: str, validate: Callable[[Any], Any]) -> tuple[bool, Any]:
        if field not in self.answers or self.answers[field] is None:
            return False, None
        try:
            value = validate(self.answers[field])
        except InputValidationError as e:
            self.operator.warn(f"Ignoring {field} from answers file:")
            self._report(e)
            return False, None
        logger.debug("Using seeded %s", field)
        return True, value

    def _ask(self, field: str, text: str, validate: Callable[[str], Any]) -> Any:
        """Prompt until ``validate`` accepts the answer."""
        seeded, value = self._seeded(field, lambda v: validate(str(v)))
        if seeded:
            return value

        while True:
            answer = self.operator.prompt(text, self.defaults.get(field))
            try:
                return validate(answer)
            except InputValidationError as e:
                self._report(e)

    # ── Questions ───────────────────────────────────────────────

    def _ssh_port(self) -> int:
        seeded = self.answers.get("ssh_port")
        if isinstance(seeded, str) and seeded.strip().lower() == "random":
            port = iv.generate_ssh_port(self.rng)
            self.operator.echo(f"Generated random SSH port: {port}")
            return port

        ok, port = self._seeded("ssh_port", iv.validate_ssh_port)
        if ok:
            return port

        answer = self.operator.prompt(
            "Would you like to use a random SSH port instead of the default port 22? (y/n)"
        )
        if answer.strip().lower() in _YES:
            port = iv.generate_ssh_port(self.rng)
            self.operator.echo(f"Generated random SSH port: {port}")
            return port
        self.operator.echo(f"Using default SSH port: {iv.SSH_PORT_DEFAULT}")
        return iv.SSH_PORT_DEFAULT

    def _domain(self) -> str | None:
        def validate(value: str) -> str | None:
            value = value.strip()
            return iv.validate_domain(value) if value else None

        if "domain" in self.answers:
            seeded, value = self._seeded("domain", lambda v: validate(str(v)))
            if seeded or self.answers["domain"] is None:
                return value

        while True:
            answer = self.operator.prompt(
                "Enter your domain (e.g., example.com), or leave empty to serve on the IP address",
                self.defaults.get("domain", ""),
            )
            try:
                return validate(answer)
            except InputValidationError as e:
                self._report(e)

    def _public_ip(self) -> str:
        ok, address = self._seeded("public_ip", lambda v: iv.validate_ip_address(str(v)))
        if ok:
            return address

        detected = self.ip_detector()
        if detected:
            try:
                return iv.validate_ip_address(detected)
            except InputValidationError:
                logger.warning("Detected address %r is not valid", detected)

        self.operator.warn("Failed to detect server IP address")
        return self._ask("public_ip", "Enter this server's public IP address", iv.validate_ip_address)

    def _dns_ready(self, domain: str, address: str) -> bool:
        seeded = self.answers.get("use_domain")
        if isinstance(seeded, bool):
            return seeded
        if isinstance(seeded, str) and seeded.strip().lower() in _YES | _NO:
            return seeded.strip().lower() in _YES

        question = (
            f"Is your domain ({domain}) properly configured to point to "
            f"this server ({address})? (yes/no)"
        )
        while True:
            answer = self.operator.prompt(question).strip().lower()
            if answer.startswith("y"):
                return True
            if answer.startswith("n"):
                return False
            self.operator.echo("Please answer yes or no.")

    def _repository(self) -> str:
        url = self._ask(
            "repository_url",
            "Enter your GitHub repository URL (HTTPS or SSH format)",
            iv.normalize_repository_url,
        )
        self.operator.echo(f"Using repository URL: {url}")
        return url

    # ── Entry point ─────────────────────────────────────────────

    def collect(self) -> ProvisioningConfig:
        """Ask every question and return the validated config."""
        username = self._ask(
            "username",
            "Enter the username for the server (lowercase letters, numbers, and underscores only)",
            iv.validate_username,
        )
        hostname = self._ask(
            "hostname",
            "Enter the hostname for this server (letters, numbers, and hyphens only)",
            iv.validate_hostname,
        )

        if "ssh_public_key" not in self.answers:
            self.operator.echo(SSH_KEY_HELP)
        ssh_public_key = self._ask("ssh_public_key", "Enter your SSH public key", iv.validate_ssh_public_key)

        ssh_port = self._ssh_port()
        repository_url = self._repository()
        contact_email = self._ask("contact_email", "Enter your GitHub email", iv.validate_email)

        domain = self._domain()
        public_ip = self._public_ip()
        use_domain = self._dns_ready(domain, public_ip) if domain else False

        return ProvisioningConfig(
            username=username,
            hostname=hostname,
            ssh_public_key=ssh_public_key,
            ssh_port=ssh_port,
            repository_url=repository_url,
            contact_email=contact_email,
            domain=domain,
            use_domain=use_domain,
            public_ip=public_ip,
        )
