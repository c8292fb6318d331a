"""Generation and persistence of the stack's secret values."""

import logging
import secrets
import string
from dataclasses import dataclass

from .config_loader import ProvisionConfig
from .host import HostRunner


logger = logging.getLogger(__name__)

ENCRYPTION_KEY_VAR = "N8N_ENCRYPTION_KEY"
PASSWORD_VAR = "N8N_BASIC_AUTH_PASSWORD"
ENCRYPTION_KEY_BYTES = 24
PASSWORD_ALPHABET = string.ascii_letters + string.digits


def generate_encryption_key() -> str:
    """48 hex characters, same as ``openssl rand -hex 24``."""
    return secrets.token_hex(ENCRYPTION_KEY_BYTES)


def generate_password(length: int = 20) -> str:
    return ''.join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def parse_env(content: str) -> dict[str, str]:
    """Parse KEY=value lines, ignoring comments and blank lines."""
    env = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        env[key.strip()] = value
    return env


def render_env(env: dict[str, str]) -> str:
    """Render KEY='value' lines; compose takes single-quoted values literally."""
    lines = ["# Managed by n8n-provision. Keep this file; it holds the encryption key."]
    lines.extend(f"{key}='{value}'" for key, value in env.items())
    return "\n".join(lines) + "\n"


@dataclass
class StackSecrets:
    """Secret values referenced from the compose file."""
    encryption_key: str
    basic_auth_password: str
    key_created: bool = False
    password_created: bool = False

    def as_env(self) -> dict[str, str]:
        return {
            ENCRYPTION_KEY_VAR: self.encryption_key,
            PASSWORD_VAR: self.basic_auth_password,
        }


class SecretStore:
    """Reads secrets from the stack's .env file, generating what is missing."""

    def __init__(self, runner: HostRunner, config: ProvisionConfig):
        self.runner = runner
        self.config = config

    def read(self) -> dict[str, str]:
        content = self.runner.read_file(self.config.env_path)
        if content is None:
            return {}
        return parse_env(content)

    def load_or_create(self, rotate: bool = False) -> StackSecrets:
        """Reuse the stored encryption key unless rotate is set."""
        existing = self.read()

        key = existing.get(ENCRYPTION_KEY_VAR, "")
        key_created = False
        if rotate or not key:
            if rotate and key:
                logger.warning(
                    "Rotating %s: credentials already stored by n8n become unreadable",
                    ENCRYPTION_KEY_VAR,
                )
            key = generate_encryption_key()
            key_created = True

        password = self.config.basic_auth.password or existing.get(PASSWORD_VAR, "")
        password_created = False
        if not password:
            password = generate_password()
            password_created = True

        return StackSecrets(
            encryption_key=key,
            basic_auth_password=password,
            key_created=key_created,
            password_created=password_created,
        )

    def write(self, stack_secrets: StackSecrets) -> tuple[bool, str]:
        """Write the .env file readable by root only, keeping unknown keys."""
        env = self.read()
        env.update(stack_secrets.as_env())
        result = self.runner.write_file(self.config.env_path, render_env(env), mode="600")
        if result.success:
            return True, f"Secrets stored in {self.config.env_path}"
        return False, result.output
