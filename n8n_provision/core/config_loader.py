"""Configuration loader for the provisioning settings."""

import os
import re
from pathlib import Path, PurePosixPath
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError


CONFIG_FILENAME = "settings.yaml"
CONFIG_DIR_ENV = "N8N_PROVISION_CONFIG_DIR"
SYSTEMD_UNIT_DIR = "/etc/systemd/system"

DEFAULT_PACKAGES = [
    "curl",
    "ca-certificates",
    "gnupg",
    "lsb-release",
    "ufw",
    "apt-transport-https",
]

_HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_POSIX_USER = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")


class TargetConfig(BaseModel):
    """Host the stack is provisioned on."""
    host: str = "localhost"  # "localhost" runs commands on this machine
    user: str = "root"
    ssh_key: str = ""  # Path to private SSH key
    ssh_port: int = 22
    sudo: bool = True  # Prefix privileged commands with sudo

    @property
    def is_local(self) -> bool:
        """Whether commands run on the local machine."""
        return self.host in ("", "localhost", "127.0.0.1", "local")

    @property
    def ssh_key_path(self) -> Path:
        """Return expanded SSH key path."""
        if self.ssh_key:
            return Path(self.ssh_key).expanduser()
        return Path()


class BasicAuthConfig(BaseModel):
    """n8n basic authentication settings."""
    enabled: bool = True
    user: str = "admin"
    password: str = ""  # Empty: generated once and kept in the .env file

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        """The password is stored single-quoted in .env, which has no escape for quotes."""
        if "'" in v or "\n" in v or "\r" in v:
            raise ValueError("Password must not contain single quotes or line breaks")
        return v


class ProvisionConfig(BaseModel):
    """Desired state of the provisioned host."""
    domain: str
    email: str = ""
    service_user: str = "n8n"
    data_dir: str = "/opt/n8n"
    n8n_version: str = "latest"
    traefik_image: str = "traefik:v3.1"
    timezone: str = ""  # Empty: read /etc/timezone on the host
    firewall_ports: list[int] = Field(default_factory=lambda: [22, 80, 443])
    prerequisite_packages: list[str] = Field(default_factory=lambda: list(DEFAULT_PACKAGES))
    upgrade_system: bool = True
    unit_name: str = "n8n-stack"
    acme_staging: bool = False
    cert_resolver: str = "myresolver"
    basic_auth: BasicAuthConfig = Field(default_factory=BasicAuthConfig)
    target: TargetConfig = Field(default_factory=TargetConfig)

    @field_validator('domain')
    @classmethod
    def validate_domain(cls, v):
        """Validate the domain is a fully qualified host name."""
        v = v.strip().rstrip(".").lower()
        labels = v.split(".")
        if len(labels) < 2 or not all(_HOSTNAME_LABEL.match(label) for label in labels):
            raise ValueError(f"Invalid domain: {v!r}")
        return v

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate the ACME notification email (allow empty)."""
        v = v.strip()
        if v and not _EMAIL.match(v):
            raise ValueError(f"Invalid email address: {v!r}")
        return v

    @field_validator('service_user')
    @classmethod
    def validate_service_user(cls, v):
        """Validate the service account name."""
        if not _POSIX_USER.match(v):
            raise ValueError(f"Invalid user name: {v!r}")
        return v

    @field_validator('data_dir')
    @classmethod
    def validate_data_dir(cls, v):
        """Data directory must be an absolute path."""
        path = PurePosixPath(v)
        if not path.is_absolute() or str(path) == "/":
            raise ValueError(f"Data directory must be an absolute path below /: {v!r}")
        return str(path)

    @field_validator('firewall_ports')
    @classmethod
    def validate_ports(cls, v):
        """Validate TCP port numbers and drop duplicates."""
        for port in v:
            if not 0 < port < 65536:
                raise ValueError(f"Invalid port: {port}")
        return list(dict.fromkeys(v))

    @property
    def effective_email(self) -> str:
        """ACME email, defaulting to admin@<parent domain>."""
        if self.email:
            return self.email
        parent = self.domain.split(".", 1)[1] if self.domain.count(".") > 1 else self.domain
        return f"admin@{parent}"

    @property
    def compose_path(self) -> str:
        return f"{self.data_dir}/docker-compose.yml"

    @property
    def env_path(self) -> str:
        return f"{self.data_dir}/.env"

    @property
    def unit_path(self) -> str:
        return f"{SYSTEMD_UNIT_DIR}/{self.unit_name}.service"

    @property
    def n8n_image(self) -> str:
        return f"n8nio/n8n:{self.n8n_version}"


class ConfigLoader:
    """Loads and manages the provisioning configuration file."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize config loader with config directory."""
        if config_dir is None:
            config_dir = os.environ.get(CONFIG_DIR_ENV) or Path.cwd() / "config"
        self.config_dir = Path(config_dir)
        self._config: Optional[ProvisionConfig] = None

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    def _load_yaml(self) -> dict:
        """Load the settings YAML file."""
        if not self.config_file.exists():
            return {}

        with open(self.config_file) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_file} must contain a mapping")
        return data

    def _save_yaml(self, data: dict) -> None:
        """Save data to the settings YAML file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    def config_exists(self) -> bool:
        """Check if the configuration file exists."""
        return self.config_file.exists()

    def load_config(self, reload: bool = False, **overrides) -> ProvisionConfig:
        """Load the configuration, applying non-empty overrides on top of the file."""
        if self._config is None or reload or overrides:
            data = self._load_yaml()
            target = dict(data.get("target") or {})
            for key, value in overrides.items():
                if value is None:
                    continue
                if key == "host":
                    target["host"] = value
                else:
                    data[key] = value
            if target:
                data["target"] = target
            try:
                self._config = ProvisionConfig(**data)
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration in {self.config_file}:\n{e}") from e
        return self._config

    def save_config(self, config: ProvisionConfig) -> None:
        """Save the configuration."""
        self._save_yaml(config.model_dump())
        self._config = config

    def update_config(self, **kwargs) -> ProvisionConfig:
        """Update specific configuration fields."""
        config = self.load_config()
        data = config.model_dump()
        data.update({k: v for k, v in kwargs.items() if k in data})
        try:
            config = ProvisionConfig(**data)
        except ValidationError as e:
            raise ConfigError(str(e)) from e
        self.save_config(config)
        return config


# Global config loader instance
_config_loader: Optional[ConfigLoader] = None


def get_config_loader(config_dir: Optional[Path] = None) -> ConfigLoader:
    """Get or create the global config loader instance."""
    global _config_loader
    if _config_loader is None or config_dir is not None:
        _config_loader = ConfigLoader(config_dir)
    return _config_loader
