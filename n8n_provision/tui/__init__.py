"""Terminal UI."""

from .app import N8NProvisionApp, run_app

__all__ = ["N8NProvisionApp", "run_app"]
