"""TUI screens."""

from .provision import ProvisionScreen
from .logs import LogViewerScreen

__all__ = [
    "ProvisionScreen",
    "LogViewerScreen",
]
