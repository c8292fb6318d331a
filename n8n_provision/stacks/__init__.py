"""Stack management module."""

from .base import (
    BaseStack,
    StackConfig,
    StackInfo,
    get_available_stacks,
    get_stack,
    register_stack,
)
from .compose import ComposeRenderer, validate_compose
from . import definitions  # noqa: F401

__all__ = [
    "BaseStack",
    "StackConfig",
    "StackInfo",
    "ComposeRenderer",
    "get_available_stacks",
    "get_stack",
    "register_stack",
    "validate_compose",
]
