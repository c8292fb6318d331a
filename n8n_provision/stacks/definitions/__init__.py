"""Stack definitions - import all to register them."""

from .traefik import TraefikStack
from .n8n import N8NStack

__all__ = [
    "TraefikStack",
    "N8NStack",
]
