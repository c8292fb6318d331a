"""Exceptions raised while provisioning a host."""


class ProvisionError(Exception):
    """Raised when a provisioning step fails and the run is aborted."""

    def __init__(self, step: str, message: str, output: str = ""):
        self.step = step
        self.message = message
        self.output = output
        super().__init__(f"{step}: {message}")


class TemplateError(Exception):
    """Raised when a rendered configuration artifact fails validation."""


class ConfigError(Exception):
    """Raised when the provisioning configuration cannot be loaded."""
