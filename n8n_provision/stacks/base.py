"""Base stack class and stack registry."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from ..core.config_loader import ProvisionConfig


@dataclass
class StackConfig:
    """Values a stack needs to render its compose service."""
    settings: ProvisionConfig
    timezone: str = "UTC"
    env_vars: dict[str, str] = field(default_factory=dict)  # Extra environment entries


@dataclass
class StackInfo:
    """Information about a stack."""
    name: str
    display_name: str
    order: int = 0  # Position in the compose file
    dependencies: list[str] = field(default_factory=list)


class BaseStack(ABC):
    """Base class for the services in the compose file."""

    @property
    @abstractmethod
    def info(self) -> StackInfo:
        """Return stack information."""
        pass

    @abstractmethod
    def generate_service(self, config: StackConfig) -> dict:
        """Return the compose service definition."""
        pass

    def generate_volumes(self, config: StackConfig) -> dict:
        """Named volumes this service declares at the top level."""
        return {}

    def validate_config(self, config: StackConfig) -> tuple[bool, str]:
        """Validate stack configuration."""
        if not config.settings.domain:
            return False, "Domain is required"
        return True, "Configuration valid"


# Stack registry
_stack_registry: dict[str, type[BaseStack]] = {}


def register_stack(stack_class: type[BaseStack]) -> type[BaseStack]:
    """Decorator to register a stack class."""
    instance = stack_class()
    _stack_registry[instance.info.name] = stack_class
    return stack_class


def get_available_stacks() -> dict[str, StackInfo]:
    """Get all registered stacks in compose order."""
    infos = [cls().info for cls in _stack_registry.values()]
    return {info.name: info for info in sorted(infos, key=lambda i: i.order)}


def get_stack(name: str) -> Optional[BaseStack]:
    """Get a stack instance by name."""
    if name in _stack_registry:
        return _stack_registry[name]()
    return None
