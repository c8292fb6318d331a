"""Core modules for n8n-provision."""

from .errors import ConfigError, ProvisionError, TemplateError
from .config_loader import (
    BasicAuthConfig,
    ConfigLoader,
    ProvisionConfig,
    TargetConfig,
    get_config_loader,
)
from .host import CommandResult, HostRunner, create_host_runner, get_host_runner
from .packages import AptManager
from .accounts import AccountManager
from .docker_manager import ContainerStatus, DockerManager
from .firewall import FirewallStatus, UfwManager
from .systemd import SystemdManager, render_unit
from .credentials import SecretStore, StackSecrets

__all__ = [
    "ConfigError",
    "ProvisionError",
    "TemplateError",
    "BasicAuthConfig",
    "ConfigLoader",
    "ProvisionConfig",
    "TargetConfig",
    "get_config_loader",
    "CommandResult",
    "HostRunner",
    "create_host_runner",
    "get_host_runner",
    "AptManager",
    "AccountManager",
    "ContainerStatus",
    "DockerManager",
    "FirewallStatus",
    "UfwManager",
    "SystemdManager",
    "render_unit",
    "SecretStore",
    "StackSecrets",
]
